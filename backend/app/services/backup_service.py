"""
JSON backup export and import of the prompt library

Exports hold every non-deleted prompt with its tags and, for compound prompts,
components that point at other prompts by slug so a backup can be loaded
into another database. Imports run in a single transaction: compound
components are attached in a second pass once every prompt in the file
exists, and any error rolls the whole import back.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.compound_errors import (CompoundPromptError,
                                      MaxDepthExceededError)
from app.core.compound_types import ComponentRef
from app.core.logging_config import LoggingConfig
from app.core.metrics import prompt_imports_total
from app.models.prompt import CompoundPromptComponent, Prompt, PromptStatus
from app.services.compound_validation import (calculate_max_depth,
                                              check_circular_reference,
                                              max_nesting_depth,
                                              validate_component_structure)
from app.services.prompt_service import PromptService

logger = LoggingConfig.get_logger(__name__)

EXPORT_VERSION = "2.0"

DuplicateStrategy = Literal["skip", "update", "error"]
DUPLICATE_STRATEGIES = ("skip", "update", "error")


class ComponentData(BaseModel):
    position: int = Field(..., ge=0)
    component_prompt_slug: Optional[str] = None
    custom_text_before: Optional[str] = None
    custom_text_after: Optional[str] = None


class PromptData(BaseModel):
    """Portable representation of a prompt; no database IDs"""
    title: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=120, pattern=r"^[a-z0-9-]+$")
    prompt_text: Optional[str] = None
    description: Optional[str] = None
    example_output: Optional[str] = None
    category: str = Field(..., min_length=1, max_length=100)
    tags: List[str] = Field(default_factory=list)
    author_name: str = Field(..., min_length=1, max_length=255)
    author_url: Optional[str] = None
    status: PromptStatus
    featured: bool = False
    created_at: datetime
    updated_at: datetime
    approved_at: Optional[datetime] = None
    is_compound: bool = False
    max_depth: Optional[int] = Field(None, ge=1)
    components: Optional[List[ComponentData]] = None

    @model_validator(mode="after")
    def content_matches_kind(self) -> "PromptData":
        if self.is_compound and not self.components:
            raise ValueError("Compound prompts need at least one component")
        if not self.is_compound and not self.prompt_text:
            raise ValueError("Prompt text is required")
        return self


class ExportData(BaseModel):
    version: str = Field(..., pattern=r"^\d+\.\d+$")
    exported_at: datetime
    total_count: int = Field(..., ge=0)
    prompts: List[PromptData]


@dataclass
class ImportIssue:
    index: int
    message: str
    slug: Optional[str] = None


@dataclass
class ImportResult:
    total: int
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    dry_run: bool = False
    errors: List[ImportIssue] = field(default_factory=list)
    warnings: List[ImportIssue] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "total": self.total,
            "imported": self.imported,
            "skipped": self.skipped,
            "failed": self.failed,
            "dry_run": self.dry_run,
            "errors": [asdict(issue) for issue in self.errors],
            "warnings": [asdict(issue) for issue in self.warnings],
        }


class ImportAborted(Exception):
    """Stops the import transaction at one prompt"""

    def __init__(self, index: int, slug: str, message: str):
        super().__init__(message)
        self.issue = ImportIssue(index=index, slug=slug, message=message)


def _validation_issues(e: ValidationError) -> List[ImportIssue]:
    issues = []
    for error in e.errors():
        loc = list(error["loc"])
        index = loc[1] if len(loc) > 1 and loc[0] == "prompts" and isinstance(loc[1], int) else -1
        path = ".".join(str(part) for part in loc)
        issues.append(ImportIssue(index=index, message=f"{path}: {error['msg']}" if path else error["msg"]))
    return issues


class BackupService:
    """Service for exporting and importing the library as JSON"""

    def __init__(self, db: Session):
        self.db = db
        self.prompts = PromptService(db)

    # --- Export ---

    def export_all(self) -> ExportData:
        """Every non-deleted prompt, oldest first"""
        rows = (
            self.db.query(Prompt)
            .options(
                selectinload(Prompt.tags),
                selectinload(Prompt.components).selectinload(CompoundPromptComponent.component_prompt),
            )
            .filter(Prompt.deleted_at.is_(None))
            .order_by(Prompt.created_at.asc(), Prompt.id.asc())
            .all()
        )

        prompts = [self._to_data(prompt) for prompt in rows]
        logger.info(f"Exported {len(prompts)} prompts", extra={"count": len(prompts)})
        return ExportData(
            version=EXPORT_VERSION,
            exported_at=datetime.now(timezone.utc),
            total_count=len(prompts),
            prompts=prompts,
        )

    @staticmethod
    def _to_data(prompt: Prompt) -> PromptData:
        components = None
        if prompt.is_compound:
            components = [
                ComponentData(
                    position=c.position,
                    component_prompt_slug=c.component_prompt.slug if c.component_prompt else None,
                    custom_text_before=c.custom_text_before,
                    custom_text_after=c.custom_text_after,
                )
                for c in prompt.components
            ]
        return PromptData(
            title=prompt.title,
            slug=prompt.slug,
            prompt_text=prompt.prompt_text,
            description=prompt.description,
            example_output=prompt.example_output,
            category=prompt.category,
            tags=[tag.name for tag in prompt.tags],
            author_name=prompt.author_name,
            author_url=prompt.author_url,
            status=PromptStatus(prompt.status),
            featured=bool(prompt.featured),
            created_at=prompt.created_at,
            updated_at=prompt.updated_at,
            approved_at=prompt.approved_at,
            is_compound=bool(prompt.is_compound),
            max_depth=prompt.max_depth,
            components=components,
        )

    # --- Import ---

    async def import_all(
        self,
        raw: Union[str, bytes],
        on_duplicate: DuplicateStrategy = "skip",
        dry_run: bool = False,
    ) -> ImportResult:
        """Load a JSON backup

        Args:
            raw: Backup document
            on_duplicate: What to do with a slug that already exists: keep the
                stored prompt ("skip"), overwrite it ("update") or abort ("error")
            dry_run: Validate and count without writing anything

        Returns:
            ImportResult; ``errors`` is empty when the import was applied
        """
        if on_duplicate not in DUPLICATE_STRATEGIES:
            raise ValueError(f"Unknown duplicate strategy: {on_duplicate}")

        try:
            data = ExportData.model_validate_json(raw)
        except ValidationError as e:
            issues = _validation_issues(e)
            return ImportResult(total=0, failed=len(issues), dry_run=dry_run, errors=issues)

        result = ImportResult(total=len(data.prompts), dry_run=dry_run)
        seen: Dict[str, int] = {}
        for index, item in enumerate(data.prompts):
            if item.slug in seen:
                result.errors.append(ImportIssue(index, f"Slug also used by prompt {seen[item.slug]}", item.slug))
            seen[item.slug] = index
        if result.errors:
            result.failed = len(result.errors)
            return result

        if dry_run:
            for index, item in enumerate(data.prompts):
                if self._existing(item.slug) is not None and on_duplicate != "update":
                    result.skipped += 1
                    result.warnings.append(ImportIssue(index, "Would skip duplicate", item.slug))
                else:
                    result.imported += 1
            return result

        try:
            await self._apply(data.prompts, on_duplicate, result)
            self.db.commit()
        except ImportAborted as e:
            self.db.rollback()
            logger.warning(
                f"Backup import aborted at prompt {e.issue.index}: {e.issue.message}",
                extra={"slug": e.issue.slug},
            )
            prompt_imports_total.labels(source="backup", outcome="failed").inc()
            return ImportResult(
                total=result.total,
                failed=1,
                errors=[e.issue],
                warnings=result.warnings,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Backup import transaction failed: {e}", exc_info=True)
            raise

        prompt_imports_total.labels(source="backup", outcome="created").inc(result.imported)
        prompt_imports_total.labels(source="backup", outcome="skipped").inc(result.skipped)
        logger.info(
            "Backup import completed",
            extra={"total": result.total, "imported": result.imported, "skipped": result.skipped},
        )
        return result

    def _existing(self, slug: str) -> Optional[Prompt]:
        return self.db.query(Prompt).filter(Prompt.slug == slug).first()

    async def _apply(self, items: List[PromptData], on_duplicate: str, result: ImportResult) -> None:
        slug_to_id: Dict[str, str] = {}
        needs_components: List[int] = []

        for index, item in enumerate(items):
            existing = self._existing(item.slug)
            if existing is not None and existing.deleted_at is not None:
                raise ImportAborted(index, item.slug, "Slug belongs to a deleted prompt")

            if existing is not None and on_duplicate == "error":
                raise ImportAborted(index, item.slug, "Duplicate slug")

            if existing is not None and on_duplicate == "skip":
                result.skipped += 1
                result.warnings.append(ImportIssue(index, "Skipped duplicate", item.slug))
                slug_to_id[item.slug] = existing.id
                continue

            if existing is not None:
                prompt = existing
                self._fill(prompt, item)
                prompt.components.clear()
                self.prompts.replace_tags(prompt, item.tags)
                result.warnings.append(ImportIssue(index, "Updated existing prompt", item.slug))
            else:
                prompt = Prompt(slug=item.slug, created_at=item.created_at, updated_at=item.updated_at)
                self._fill(prompt, item)
                prompt.tags = self.prompts.get_or_create_tags(item.tags)
                self.db.add(prompt)

            self.db.flush()
            slug_to_id[item.slug] = prompt.id
            result.imported += 1
            if item.is_compound:
                needs_components.append(index)

        for index in needs_components:
            item = items[index]
            await self._attach_components(index, item, slug_to_id)

    @staticmethod
    def _fill(prompt: Prompt, item: PromptData) -> None:
        prompt.title = item.title
        prompt.prompt_text = None if item.is_compound else item.prompt_text
        prompt.description = item.description
        prompt.example_output = item.example_output
        prompt.category = item.category
        prompt.author_name = item.author_name
        prompt.author_url = item.author_url
        prompt.status = item.status.value
        prompt.featured = item.featured
        prompt.approved_at = item.approved_at
        prompt.is_compound = item.is_compound
        prompt.max_depth = item.max_depth if item.is_compound else None

    async def _attach_components(self, index: int, item: PromptData, slug_to_id: Dict[str, str]) -> None:
        prompt_id = slug_to_id[item.slug]
        refs = []
        for component in item.components:
            reference = None
            if component.component_prompt_slug:
                reference = slug_to_id.get(component.component_prompt_slug)
                if reference is None:
                    stored = self._existing(component.component_prompt_slug)
                    if stored is None or stored.deleted_at is not None:
                        raise ImportAborted(
                            index,
                            item.slug,
                            f'Component prompt "{component.component_prompt_slug}" not found',
                        )
                    reference = stored.id
            refs.append(ComponentRef(
                position=component.position,
                component_prompt_id=reference,
                text_before=component.custom_text_before,
                text_after=component.custom_text_after,
            ))

        prompt = self.db.get(Prompt, prompt_id)
        try:
            validate_component_structure(refs)
            prompt.components.extend(PromptService.build_components(refs))
            self.db.flush()

            fetcher = self.prompts.fetcher
            await check_circular_reference(prompt_id, fetcher)
            depth = await calculate_max_depth(prompt_id, fetcher)
            ceiling = prompt.max_depth or max_nesting_depth()
            if depth > ceiling:
                raise MaxDepthExceededError(ceiling, depth)
        except CompoundPromptError as e:
            raise ImportAborted(index, item.slug, e.message)

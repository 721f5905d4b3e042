"""
Bulk import of leaf prompts by administrators

Imported prompts are created already approved. A prompt whose explicit slug is
taken is skipped; one that cannot be stored is reported as failed without
stopping the rest of the batch.
"""
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.logging_config import LoggingConfig
from app.core.metrics import prompt_imports_total
from app.core.utils import slugify
from app.models.prompt import PromptStatus
from app.services.prompt_service import PromptService

logger = LoggingConfig.get_logger(__name__)

DEFAULT_AUTHOR_NAME = "Prompt Library"
MAX_PROMPTS_PER_IMPORT = 500
MAX_TAGS_PER_PROMPT = 20


class BulkImportPrompt(BaseModel):
    """One prompt of a bulk import; only title, text and category are required"""
    title: str = Field(..., min_length=1, max_length=255)
    prompt_text: str = Field(..., min_length=1, max_length=50000)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    author_name: Optional[str] = Field(None, max_length=255)
    author_url: Optional[str] = Field(None, max_length=500)
    tags: List[str] = Field(default_factory=list, max_length=MAX_TAGS_PER_PROMPT)
    featured: bool = False
    slug: Optional[str] = Field(None, max_length=120, pattern=r"^[a-z0-9-]*$")

    @field_validator("tags")
    @classmethod
    def tags_are_short(cls, tags: List[str]) -> List[str]:
        for tag in tags:
            if len(tag) > 50:
                raise ValueError(f"Tag must be 50 characters or less: {tag[:20]}...")
        return tags

    @field_validator("author_url")
    @classmethod
    def author_url_is_http(cls, url: Optional[str]) -> Optional[str]:
        if url and not url.startswith(("http://", "https://")):
            raise ValueError("Author URL must be a valid http(s) URL")
        return url


class BulkImportPayload(BaseModel):
    prompts: List[BulkImportPrompt] = Field(..., min_length=1, max_length=MAX_PROMPTS_PER_IMPORT)


def parse_bulk_import(raw: Union[str, bytes]) -> Tuple[Optional[BulkImportPayload], List[str]]:
    """Parse and validate a JSON bulk import document

    Returns:
        (payload, []) when valid, (None, error messages) otherwise
    """
    try:
        return BulkImportPayload.model_validate_json(raw), []
    except ValidationError as e:
        errors = []
        for error in e.errors():
            path = ".".join(str(part) for part in error["loc"])
            errors.append(f"{path}: {error['msg']}" if path else error["msg"])
        return None, errors


@dataclass
class BulkImportItemResult:
    title: str
    slug: str
    success: bool
    id: Optional[str] = None
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class BulkImportResult:
    total: int
    created: int = 0
    skipped: int = 0
    failed: int = 0
    results: List[BulkImportItemResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def message(self) -> str:
        parts = []
        if self.created:
            parts.append(f"{self.created} prompt{'s' if self.created != 1 else ''} created")
        if self.skipped:
            parts.append(f"{self.skipped} skipped (duplicates)")
        if self.failed:
            parts.append(f"{self.failed} failed")
        if not parts:
            return "No prompts were processed"
        return f"Processed {self.total} prompt{'s' if self.total != 1 else ''}: {', '.join(parts)}"

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "total": self.total,
            "created": self.created,
            "skipped": self.skipped,
            "failed": self.failed,
            "message": self.message,
            "results": [asdict(result) for result in self.results],
        }


class BulkImportService:
    """Creates approved prompts from a validated bulk import payload"""

    def __init__(self, db: Session):
        self.db = db
        self.prompts = PromptService(db)

    def process(self, payload: BulkImportPayload, actor: Optional[str] = None) -> BulkImportResult:
        result = BulkImportResult(total=len(payload.prompts))
        logger.info("Starting bulk import", extra={"total": result.total, "actor": actor})

        for item in payload.prompts:
            outcome = self._import_one(item)
            result.results.append(outcome)
            if not outcome.success:
                result.failed += 1
                prompt_imports_total.labels(source="bulk", outcome="failed").inc()
            elif outcome.skipped:
                result.skipped += 1
                prompt_imports_total.labels(source="bulk", outcome="skipped").inc()
            else:
                result.created += 1
                prompt_imports_total.labels(source="bulk", outcome="created").inc()

        logger.info(
            "Bulk import completed",
            extra={
                "total": result.total,
                "created": result.created,
                "skipped": result.skipped,
                "failed": result.failed,
                "actor": actor,
            },
        )
        return result

    def _import_one(self, item: BulkImportPrompt) -> BulkImportItemResult:
        title = item.title.strip()

        if item.slug and self.prompts.slug_exists(item.slug):
            logger.info(f"Skipping duplicate slug: {item.slug}", extra={"slug": item.slug})
            return BulkImportItemResult(
                title=title,
                slug=item.slug,
                success=True,
                skipped=True,
                error=f'Prompt with slug "{item.slug}" already exists',
            )

        try:
            prompt = self.prompts.create_prompt(
                title=title,
                prompt_text=item.prompt_text.strip(),
                category=item.category.strip(),
                author_name=(item.author_name or "").strip() or DEFAULT_AUTHOR_NAME,
                description=(item.description or "").strip() or None,
                author_url=(item.author_url or "").strip() or None,
                tags=item.tags,
                status=PromptStatus.APPROVED,
                slug=item.slug or None,
                featured=item.featured,
            )
        except (SQLAlchemyError, ValueError) as e:
            # create_prompt has rolled back and logged the cause
            return BulkImportItemResult(
                title=title,
                slug=item.slug or slugify(title),
                success=False,
                error=str(e),
            )

        return BulkImportItemResult(title=title, slug=prompt.slug, success=True, id=prompt.id)

"""
Prompt Service for managing library prompts, compound prompts and moderation
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from app.core.compound_errors import (InvalidComponentError,
                                      MaxDepthExceededError,
                                      PromptInUseError, PromptNotFoundError,
                                      PromptStateError)
from app.core.compound_types import ComponentRef
from app.core.logging_config import LoggingConfig
from app.core.metrics import prompt_moderation_actions_total
from app.core.utils import is_uuid, normalize_tag, slugify
from app.models.prompt import (CompoundPromptComponent, Prompt, PromptStatus,
                               Tag)
from app.services.compound_validation import (calculate_max_depth,
                                              max_nesting_depth,
                                              validate_component,
                                              validate_component_structure)
from app.services.prompt_fetcher import PromptFetcher

logger = LoggingConfig.get_logger(__name__)

MAX_SLUG_ATTEMPTS = 100
SORT_NEWEST = "newest"
SORT_ALPHABETICAL = "alphabetical"
SORT_OPTIONS = (SORT_NEWEST, SORT_ALPHABETICAL)


@dataclass
class PromptSearchFilters:
    """Filters for browsing approved prompts"""
    query: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)


def parse_tag_filter(param: Optional[str]) -> List[str]:
    """Split a comma-separated tag parameter"""
    if not param:
        return []
    return [tag.strip() for tag in param.split(",") if tag.strip()]


class PromptService:
    """Service for prompt CRUD, compound composition and moderation"""

    def __init__(self, db: Session):
        self.db = db
        self.fetcher = PromptFetcher(db)

    # --- Lookup ---

    def get_prompt(self, prompt_id: str) -> Optional[Prompt]:
        """Get prompt by ID (soft-deleted included)"""
        return self.db.query(Prompt).filter(Prompt.id == prompt_id).first()

    def get_by_identifier(self, identifier: str, public_only: bool = True) -> Optional[Prompt]:
        """Get prompt by UUID or slug

        Args:
            identifier: Prompt UUID or slug
            public_only: Only return approved, non-deleted prompts

        Returns:
            Prompt or None
        """
        query = self.db.query(Prompt).options(selectinload(Prompt.tags))
        if is_uuid(identifier):
            query = query.filter(Prompt.id == identifier.lower())
        else:
            query = query.filter(Prompt.slug == identifier)

        prompt = query.first()
        if prompt is None:
            return None
        if public_only and (prompt.status != PromptStatus.APPROVED.value or prompt.deleted_at is not None):
            logger.info(
                f"Prompt {identifier} is not public",
                extra={"identifier": identifier, "status": prompt.status, "deleted": prompt.deleted_at is not None},
            )
            return None
        return prompt

    def _public_query(self):
        return self.db.query(Prompt).filter(
            Prompt.status == PromptStatus.APPROVED.value,
            Prompt.deleted_at.is_(None),
        )

    def search_prompts(
        self,
        filters: PromptSearchFilters,
        sort: str = SORT_NEWEST,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Prompt], int]:
        """Search approved prompts

        Args:
            filters: Text query, category and tag slugs (all must match)
            sort: "newest" or "alphabetical"
            page: 1-based page number
            limit: Page size

        Returns:
            (prompts on the page, total matching prompts)
        """
        if sort not in SORT_OPTIONS:
            raise ValueError(f"Unknown sort order: {sort}")

        query = self._public_query()

        if filters.query and filters.query.strip():
            term = f"%{filters.query.strip()}%"
            query = query.filter(or_(
                Prompt.title.ilike(term),
                Prompt.description.ilike(term),
                Prompt.prompt_text.ilike(term),
            ))

        if filters.category and filters.category.strip():
            query = query.filter(Prompt.category == filters.category.strip())

        for tag_slug in filters.tags:
            query = query.filter(Prompt.tags.any(Tag.slug == tag_slug))

        total = query.count()

        if sort == SORT_ALPHABETICAL:
            query = query.order_by(Prompt.title.asc(), Prompt.id.asc())
        else:
            query = query.order_by(Prompt.created_at.desc(), Prompt.id.asc())

        prompts = (
            query.options(selectinload(Prompt.tags))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return prompts, total

    def list_categories(self) -> List[str]:
        """Distinct categories of approved prompts"""
        rows = (
            self._public_query()
            .with_entities(Prompt.category)
            .distinct()
            .order_by(Prompt.category.asc())
            .all()
        )
        return [row[0] for row in rows]

    def popular_tags(self, limit: int = 50) -> List[Tag]:
        """Tags by usage count"""
        return (
            self.db.query(Tag)
            .order_by(Tag.usage_count.desc(), Tag.name.asc())
            .limit(limit)
            .all()
        )

    def find_dependents(self, prompt_id: str) -> List[str]:
        """IDs of non-deleted compound prompts that reference ``prompt_id`` directly"""
        rows = (
            self.db.query(CompoundPromptComponent.compound_prompt_id)
            .join(Prompt, Prompt.id == CompoundPromptComponent.compound_prompt_id)
            .filter(
                CompoundPromptComponent.component_prompt_id == prompt_id,
                Prompt.deleted_at.is_(None),
            )
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    # --- Creation ---

    def generate_unique_slug(self, title: str, exclude_id: Optional[str] = None) -> str:
        """Slug derived from the title, suffixed until unused"""
        base_slug = slugify(title) or "prompt"
        slug = base_slug

        for attempt in range(1, MAX_SLUG_ATTEMPTS + 1):
            existing = self.db.query(Prompt.id).filter(Prompt.slug == slug).first()
            if existing is None or (exclude_id and existing[0] == exclude_id):
                return slug
            if attempt >= 50:
                slug = f"{base_slug}-{uuid4().hex[:6]}"
            else:
                slug = f"{base_slug}-{attempt}"

        raise ValueError(f'Unable to generate unique slug for title: "{title}"')

    def get_or_create_tags(self, names: Sequence[str]) -> List[Tag]:
        tags = []
        for name in dict.fromkeys(normalize_tag(n) for n in names):
            if not name:
                continue
            tag = self.db.query(Tag).filter(Tag.name == name).first()
            if tag is None:
                tag = Tag(name=name, slug=name, usage_count=0)
                self.db.add(tag)
            tag.usage_count += 1
            tags.append(tag)
        return tags

    def replace_tags(self, prompt: Prompt, names: Sequence[str]) -> None:
        """Swap the prompt's tags, keeping usage counts in step (not committed)"""
        for tag in prompt.tags:
            tag.usage_count = max(0, (tag.usage_count or 0) - 1)
        prompt.tags = self.get_or_create_tags(names)

    def slug_exists(self, slug: str) -> bool:
        """True if any prompt, deleted or not, owns the slug"""
        return self.db.query(Prompt.id).filter(Prompt.slug == slug).first() is not None

    def create_prompt(
        self,
        title: str,
        prompt_text: str,
        category: str,
        author_name: str,
        description: Optional[str] = None,
        example_output: Optional[str] = None,
        author_url: Optional[str] = None,
        tags: Sequence[str] = (),
        status: PromptStatus = PromptStatus.PENDING,
        slug: Optional[str] = None,
        featured: bool = False,
    ) -> Prompt:
        """Create a leaf prompt

        Args:
            slug: Use this slug instead of deriving one from the title; the
                caller checks that it is free

        Returns:
            Created Prompt object
        """
        try:
            prompt = Prompt(
                slug=slug or self.generate_unique_slug(title),
                title=title,
                prompt_text=prompt_text,
                description=description,
                example_output=example_output,
                category=category,
                author_name=author_name,
                author_url=author_url,
                status=status.value,
                featured=featured,
                approved_at=datetime.now(timezone.utc) if status == PromptStatus.APPROVED else None,
                is_compound=False,
            )
            prompt.tags = self.get_or_create_tags(tags)
            self.db.add(prompt)
            self.db.commit()
            self.db.refresh(prompt)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating prompt: {e}", exc_info=True)
            raise

        logger.info(
            f"Created prompt: {prompt.slug}",
            extra={"prompt_id": prompt.id, "category": category},
        )
        return prompt

    async def _check_components(
        self,
        components: Sequence[ComponentRef],
        max_depth: Optional[int],
        compound_id: Optional[str] = None,
    ) -> int:
        """Validate slots and references; returns the structural depth of the compound"""
        validate_component_structure(components)

        ceiling = max_nesting_depth()
        if max_depth is not None and not 1 <= max_depth <= ceiling:
            raise InvalidComponentError(
                f"max_depth must be between 1 and {ceiling}",
                {"max_depth": max_depth},
            )

        cache: dict = {}
        depth = 1
        for component in components:
            reference = component.component_prompt_id
            if not reference:
                continue
            if compound_id:
                await validate_component(compound_id, reference, self.fetcher)
            elif await self.fetcher(reference) is None:
                raise PromptNotFoundError(reference, f"Component prompt not found: {reference}")
            depth = max(depth, 1 + await calculate_max_depth(reference, self.fetcher, cache))

        if depth > ceiling:
            raise MaxDepthExceededError(ceiling, depth)
        if max_depth is not None and depth > max_depth:
            raise MaxDepthExceededError(
                max_depth,
                depth,
                f"Components nest {depth} levels deep but max_depth is {max_depth}",
            )
        return depth

    @staticmethod
    def build_components(components: Sequence[ComponentRef]) -> List[CompoundPromptComponent]:
        return [
            CompoundPromptComponent(
                component_prompt_id=c.component_prompt_id or None,
                position=c.position,
                custom_text_before=c.text_before,
                custom_text_after=c.text_after,
            )
            for c in components
        ]

    async def create_compound_prompt(
        self,
        title: str,
        category: str,
        author_name: str,
        components: Sequence[ComponentRef],
        description: Optional[str] = None,
        author_url: Optional[str] = None,
        tags: Sequence[str] = (),
        max_depth: Optional[int] = None,
        status: PromptStatus = PromptStatus.PENDING,
    ) -> Prompt:
        """Create a compound prompt from ordered component slots

        Args:
            components: Slots referencing other prompts and/or literal text
            max_depth: Owner-chosen expansion limit; None uses the configured default

        Raises:
            InvalidComponentError: slot layout or max_depth is invalid
            PromptNotFoundError: a referenced prompt does not exist
            MaxDepthExceededError: nesting is deeper than allowed
        """
        depth = await self._check_components(components, max_depth)

        try:
            prompt = Prompt(
                slug=self.generate_unique_slug(title),
                title=title,
                prompt_text=None,
                description=description,
                category=category,
                author_name=author_name,
                author_url=author_url,
                status=status.value,
                approved_at=datetime.now(timezone.utc) if status == PromptStatus.APPROVED else None,
                is_compound=True,
                max_depth=max_depth,
            )
            prompt.components = self.build_components(components)
            prompt.tags = self.get_or_create_tags(tags)
            self.db.add(prompt)
            self.db.commit()
            self.db.refresh(prompt)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating compound prompt: {e}", exc_info=True)
            raise

        logger.info(
            f"Created compound prompt: {prompt.slug}",
            extra={"prompt_id": prompt.id, "components": len(components), "depth": depth},
        )
        return prompt

    async def update_compound_components(
        self,
        prompt_id: str,
        components: Sequence[ComponentRef],
        max_depth: Optional[int] = None,
    ) -> Optional[Prompt]:
        """Replace the components of a compound prompt

        Returns:
            Updated Prompt or None if not found
        """
        prompt = self.get_prompt(prompt_id)
        if prompt is None or prompt.deleted_at is not None:
            return None
        if not prompt.is_compound:
            raise InvalidComponentError(f"Prompt {prompt_id} is not a compound prompt")

        effective_max_depth = max_depth if max_depth is not None else prompt.max_depth
        depth = await self._check_components(components, effective_max_depth, compound_id=prompt_id)

        try:
            prompt.components.clear()
            # Flush deletes first so new rows can reuse positions
            self.db.flush()
            prompt.components.extend(self.build_components(components))
            prompt.max_depth = effective_max_depth
            self.db.commit()
            self.db.refresh(prompt)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating compound prompt components: {e}", exc_info=True)
            raise

        logger.info(
            f"Updated components of compound prompt: {prompt.slug}",
            extra={"prompt_id": prompt_id, "components": len(components), "depth": depth},
        )
        return prompt

    # --- Moderation ---

    def _set_status(self, prompt_id: str, status: PromptStatus, reason: Optional[str] = None) -> Optional[Prompt]:
        prompt = self.get_prompt(prompt_id)
        if prompt is None:
            return None

        prompt.status = status.value
        prompt.rejection_reason = reason
        prompt.approved_at = datetime.now(timezone.utc) if status == PromptStatus.APPROVED else None
        try:
            self.db.commit()
            self.db.refresh(prompt)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error changing prompt status: {e}", exc_info=True)
            raise

        logger.info(
            f"Prompt {prompt.slug} is now {status.value}",
            extra={"prompt_id": prompt_id, "status": status.value},
        )
        return prompt

    def approve_prompt(self, prompt_id: str) -> Optional[Prompt]:
        prompt = self._set_status(prompt_id, PromptStatus.APPROVED)
        if prompt is not None:
            prompt_moderation_actions_total.labels(action="approve").inc()
        return prompt

    def reject_prompt(self, prompt_id: str, reason: str) -> Optional[Prompt]:
        prompt = self._set_status(prompt_id, PromptStatus.REJECTED, reason)
        if prompt is not None:
            prompt_moderation_actions_total.labels(action="reject").inc()
        return prompt

    def soft_delete_prompt(self, prompt_id: str) -> Optional[Prompt]:
        """Hide a prompt; refused while compound prompts still include it

        Raises:
            PromptStateError: if the prompt is already deleted
            PromptInUseError: if other compound prompts reference it
        """
        prompt = self.get_prompt(prompt_id)
        if prompt is None:
            return None
        if prompt.deleted_at is not None:
            raise PromptStateError(prompt_id, "Prompt is already deleted")

        dependents = self.find_dependents(prompt_id)
        if dependents:
            raise PromptInUseError(prompt_id, dependents)

        prompt.deleted_at = datetime.now(timezone.utc)
        try:
            self.db.commit()
            self.db.refresh(prompt)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting prompt: {e}", exc_info=True)
            raise

        prompt_moderation_actions_total.labels(action="delete").inc()
        logger.info(f"Soft-deleted prompt: {prompt.slug}", extra={"prompt_id": prompt_id})
        return prompt

    def restore_prompt(self, prompt_id: str) -> Optional[Prompt]:
        """Bring a soft-deleted prompt back

        Raises:
            PromptStateError: if the prompt is not deleted
            PromptNotFoundError: if a compound's component was deleted in the meantime
        """
        prompt = self.get_prompt(prompt_id)
        if prompt is None:
            return None
        if prompt.deleted_at is None:
            raise PromptStateError(prompt_id, "Prompt is not deleted")

        for component in prompt.components:
            reference = component.component_prompt_id
            if reference and self.fetcher.get(reference) is None:
                raise PromptNotFoundError(reference, f"Component prompt not found: {reference}")

        prompt.deleted_at = None
        try:
            self.db.commit()
            self.db.refresh(prompt)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error restoring prompt: {e}", exc_info=True)
            raise

        prompt_moderation_actions_total.labels(action="restore").inc()
        logger.info(f"Restored prompt: {prompt.slug}", extra={"prompt_id": prompt_id})
        return prompt

    # --- Counters ---

    def _increment(self, prompt_id: str, column) -> bool:
        updated = (
            self.db.query(Prompt)
            .filter(Prompt.id == prompt_id, Prompt.deleted_at.is_(None))
            .update({column: func.coalesce(column, 0) + 1}, synchronize_session=False)
        )
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating prompt counter: {e}", exc_info=True)
            raise
        return bool(updated)

    def record_view(self, prompt_id: str) -> bool:
        return self._increment(prompt_id, Prompt.view_count)

    def record_copy(self, prompt_id: str) -> bool:
        return self._increment(prompt_id, Prompt.copy_count)

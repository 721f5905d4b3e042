"""
Database-backed fetch capability for the compound resolver
"""
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from app.core.compound_types import ComponentRef, PromptNode
from app.models.prompt import Prompt


def to_prompt_node(prompt: Prompt) -> PromptNode:
    """Snapshot an ORM prompt (with its components) as a PromptNode"""
    return PromptNode(
        id=prompt.id,
        prompt_text=prompt.prompt_text,
        is_compound=bool(prompt.is_compound),
        max_depth=prompt.max_depth,
        components=tuple(
            ComponentRef(
                position=component.position,
                component_prompt_id=component.component_prompt_id,
                text_before=component.custom_text_before,
                text_after=component.custom_text_after,
            )
            for component in prompt.components
        ),
    )


class PromptFetcher:
    """Awaitable ``id -> PromptNode | None`` lookup over a session

    Soft-deleted prompts are reported as missing.
    """

    def __init__(self, db: Session):
        self.db = db
        self.queries = 0

    def get(self, prompt_id: str) -> Optional[PromptNode]:
        self.queries += 1
        prompt = (
            self.db.query(Prompt)
            .options(selectinload(Prompt.components))
            .filter(Prompt.id == prompt_id, Prompt.deleted_at.is_(None))
            .first()
        )
        return to_prompt_node(prompt) if prompt else None

    async def __call__(self, prompt_id: str) -> Optional[PromptNode]:
        return self.get(prompt_id)

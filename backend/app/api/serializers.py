"""
Public representations of prompts and tags

Only fields meant for anonymous consumers are exposed; moderation data and
counters stay internal.
"""
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel

from app.models.prompt import Prompt, Tag


class PublicTag(BaseModel):
    slug: str
    name: str


class PublicPrompt(BaseModel):
    id: str
    slug: str
    title: str
    description: Optional[str] = None
    prompt_text: Optional[str] = None
    resolved_text: str
    category: str
    author_name: str
    author_url: Optional[str] = None
    tags: List[PublicTag]
    is_compound: bool
    featured: bool
    created_at: str
    updated_at: str


def serialize_tag(tag: Tag) -> dict:
    return PublicTag(slug=tag.slug, name=tag.name).model_dump()


def serialize_prompt(prompt: Prompt, resolved_text: str) -> dict:
    """Public JSON for one prompt, with its pre-resolved text"""
    return PublicPrompt(
        id=prompt.id,
        slug=prompt.slug,
        title=prompt.title,
        description=prompt.description,
        prompt_text=prompt.prompt_text,
        resolved_text=resolved_text,
        category=prompt.category,
        author_name=prompt.author_name,
        author_url=prompt.author_url,
        tags=[PublicTag(slug=t.slug, name=t.name) for t in prompt.tags],
        is_compound=bool(prompt.is_compound),
        featured=bool(prompt.featured),
        created_at=prompt.created_at.isoformat(),
        updated_at=prompt.updated_at.isoformat(),
    ).model_dump()


def serialize_prompt_list(prompts: Iterable[Tuple[Prompt, str]]) -> List[dict]:
    return [serialize_prompt(prompt, text) for prompt, text in prompts]

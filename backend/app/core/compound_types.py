"""
Value types the compound resolver works on.

The resolver never touches ORM objects: callers hand it a fetch capability
returning these immutable snapshots, so it can run against the database or
against an in-memory map.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ComponentRef:
    """One slot of a compound prompt"""
    position: int
    component_prompt_id: Optional[str] = None
    text_before: Optional[str] = None
    text_after: Optional[str] = None


@dataclass(frozen=True)
class PromptNode:
    id: str
    prompt_text: Optional[str] = None
    is_compound: bool = False
    max_depth: Optional[int] = None
    components: Tuple[ComponentRef, ...] = ()


@dataclass
class ResolutionResult:
    resolved_text: str
    depth_reached: int
    used_prompt_ids: List[str] = field(default_factory=list)


PromptFetch = Callable[[str], Awaitable[Optional[PromptNode]]]


def ordered_components(components) -> List[ComponentRef]:
    """Components by ascending position; ties keep stored order (stable sort)"""
    return sorted(components, key=lambda c: c.position)


def map_fetcher(nodes: Dict[str, PromptNode]) -> PromptFetch:
    """Fetch capability backed by an id-indexed mapping"""

    async def fetch(prompt_id: str) -> Optional[PromptNode]:
        return nodes.get(prompt_id)

    return fetch

"""
Bulk resolution of prompts for list endpoints

Prompts are loaded breadth-first, one query per nesting level, into an
id-indexed map; each prompt is then resolved against that map. Failures are
collected per prompt rather than raised.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, selectinload

from app.core.compound_errors import ResolutionError
from app.core.compound_types import PromptNode, map_fetcher
from app.core.config import get_settings
from app.core.logging_config import LoggingConfig
from app.core.metrics import compound_bulk_resolution_size
from app.models.prompt import Prompt
from app.services.compound_resolution import resolve
from app.services.prompt_fetcher import to_prompt_node

logger = LoggingConfig.get_logger(__name__)


@dataclass
class BulkResolutionResult:
    resolved_texts: Dict[str, str] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    queries_executed: int = 0

    @property
    def success_count(self) -> int:
        return len(self.resolved_texts)

    @property
    def error_count(self) -> int:
        return len(self.errors)


def bulk_fetch_prompts_for_resolution(
    db: Session,
    prompt_ids: Sequence[str],
    max_depth: Optional[int] = None,
) -> Tuple[Dict[str, PromptNode], int]:
    """Load the given prompts and everything they reference

    Args:
        db: Database session
        prompt_ids: Root prompt IDs
        max_depth: Number of nesting levels to follow below the roots

    Returns:
        (map of prompt ID to PromptNode, number of queries executed)
    """
    if max_depth is None:
        max_depth = get_settings().compound_max_nesting_depth

    nodes: Dict[str, PromptNode] = {}
    level_ids = set(prompt_ids)
    queries = 0
    level = 0

    while level_ids and level <= max_depth:
        to_fetch = [pid for pid in level_ids if pid not in nodes]
        if not to_fetch:
            break

        prompts = (
            db.query(Prompt)
            .options(selectinload(Prompt.components))
            .filter(Prompt.id.in_(to_fetch), Prompt.deleted_at.is_(None))
            .all()
        )
        queries += 1

        next_ids = set()
        for prompt in prompts:
            node = to_prompt_node(prompt)
            nodes[node.id] = node
            if node.is_compound:
                next_ids.update(
                    c.component_prompt_id for c in node.components if c.component_prompt_id
                )

        level_ids = next_ids - set(nodes)
        level += 1

    return nodes, queries


async def bulk_resolve_prompts(db: Session, prompt_ids: Sequence[str]) -> BulkResolutionResult:
    """Resolve several prompts with a bounded number of queries"""
    result = BulkResolutionResult()
    if not prompt_ids:
        return result

    compound_bulk_resolution_size.observe(len(prompt_ids))
    nodes, result.queries_executed = bulk_fetch_prompts_for_resolution(db, prompt_ids)
    fetch = map_fetcher(nodes)

    for prompt_id in prompt_ids:
        node = nodes.get(prompt_id)
        if node is None:
            result.errors[prompt_id] = "Prompt not found"
            continue
        if not node.is_compound:
            result.resolved_texts[prompt_id] = node.prompt_text or ""
            continue
        try:
            result.resolved_texts[prompt_id] = await resolve(prompt_id, fetch)
        except ResolutionError as e:
            result.errors[prompt_id] = e.message

    if result.errors:
        logger.warning(
            f"Bulk resolution finished with {result.error_count} error(s)",
            extra={"errors": result.errors, "queries": result.queries_executed},
        )
    return result

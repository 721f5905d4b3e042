"""
Compound prompt resolution

Expands a compound prompt into the flat text a user copies. Each component
slot contributes ``text_before`` + resolved referenced prompt + ``text_after``,
in ascending position order, with no separators added. Nested compounds are
expanded recursively.

Depth is counted from the root (depth 0). A referenced prompt that would sit
deeper than the effective max depth fails the whole resolution, as does a
reference to a prompt already on the current ancestor path. The ancestor path
and depth are passed by value, so sibling subtrees can be expanded
concurrently without sharing state.
"""
import asyncio
import time
from typing import Iterable, List, Optional, Tuple

from app.core.compound_errors import (CircularReferenceError,
                                      MaxDepthExceededError,
                                      PromptNotFoundError, ResolutionError)
from app.core.compound_types import (ComponentRef, PromptFetch, PromptNode,
                                     ResolutionResult, ordered_components)
from app.core.config import get_settings
from app.core.logging_config import LoggingConfig
from app.core.metrics import (compound_resolution_duration_seconds,
                              compound_resolutions_total)

logger = LoggingConfig.get_logger(__name__)


def effective_max_depth(root: PromptNode, override: Optional[int] = None) -> int:
    """Depth limit for one resolution: explicit override, then the root's own, then the default"""
    if override is not None:
        return override
    if root.max_depth is not None:
        return root.max_depth
    return get_settings().compound_default_max_depth


def _merge_used(groups: Iterable[List[str]]) -> List[str]:
    merged: dict = {}
    for group in groups:
        merged.update(dict.fromkeys(group))
    return list(merged)


async def _expand_reference(
    prompt_id: str,
    fetch: PromptFetch,
    limit: int,
    depth: int,
    path: Tuple[str, ...],
    concurrent: bool,
) -> ResolutionResult:
    if prompt_id in path:
        raise CircularReferenceError(path + (prompt_id,))
    if depth + 1 > limit:
        raise MaxDepthExceededError(limit, depth + 1)

    node = await fetch(prompt_id)
    if node is None:
        raise PromptNotFoundError(prompt_id)
    return await _expand_node(node, fetch, limit, depth + 1, path, concurrent)


async def _expand_slot(
    slot: ComponentRef,
    fetch: PromptFetch,
    limit: int,
    depth: int,
    path: Tuple[str, ...],
    concurrent: bool,
) -> ResolutionResult:
    child = None
    if slot.component_prompt_id:
        child = await _expand_reference(slot.component_prompt_id, fetch, limit, depth, path, concurrent)

    text = (slot.text_before or "") + (child.resolved_text if child else "") + (slot.text_after or "")
    if child is None:
        return ResolutionResult(resolved_text=text, depth_reached=depth)
    return ResolutionResult(
        resolved_text=text,
        depth_reached=child.depth_reached,
        used_prompt_ids=child.used_prompt_ids,
    )


async def _expand_slots(
    slots: Iterable[ComponentRef],
    fetch: PromptFetch,
    limit: int,
    depth: int,
    path: Tuple[str, ...],
    concurrent: bool,
) -> List[ResolutionResult]:
    slots = ordered_components(slots)
    if concurrent:
        return await _run_siblings(
            [_expand_slot(slot, fetch, limit, depth, path, concurrent) for slot in slots]
        )
    return [await _expand_slot(slot, fetch, limit, depth, path, concurrent) for slot in slots]


async def _cancel_all(tasks: List[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


async def _run_siblings(coros: List) -> List[ResolutionResult]:
    """Run sibling expansions together; the first failure cancels the rest

    Results keep slot order. When several siblings have failed by the time
    the first failure is seen, the one in the earliest slot is raised.
    """
    if not coros:
        return []
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await _cancel_all(tasks)
        raise

    pending = [task for task in tasks if not task.done()]
    if pending:
        await _cancel_all(pending)

    failures = [task.exception() for task in tasks if not task.cancelled() and task.exception() is not None]
    if failures:
        raise failures[0]
    return [task.result() for task in tasks]


async def _expand_node(
    node: PromptNode,
    fetch: PromptFetch,
    limit: int,
    depth: int,
    ancestors: Tuple[str, ...],
    concurrent: bool,
) -> ResolutionResult:
    if not node.is_compound:
        return ResolutionResult(
            resolved_text=node.prompt_text or "",
            depth_reached=depth,
            used_prompt_ids=[node.id],
        )

    parts = await _expand_slots(node.components, fetch, limit, depth, ancestors + (node.id,), concurrent)
    return ResolutionResult(
        resolved_text="".join(part.resolved_text for part in parts),
        depth_reached=max([depth] + [part.depth_reached for part in parts]),
        used_prompt_ids=_merge_used([[node.id]] + [part.used_prompt_ids for part in parts]),
    )


async def resolve_with_details(
    root_id: str,
    fetch: PromptFetch,
    *,
    max_depth: Optional[int] = None,
    concurrent: bool = False,
) -> ResolutionResult:
    """Resolve a prompt and report how deep the expansion went and which prompts it used

    Args:
        root_id: ID of the prompt to resolve
        fetch: Awaitable lookup returning a PromptNode or None
        max_depth: Overrides the root prompt's own depth limit
        concurrent: Expand sibling components concurrently

    Returns:
        ResolutionResult with the flattened text

    Raises:
        PromptNotFoundError: root or any referenced prompt is missing
        MaxDepthExceededError: expansion would go past the depth limit
        CircularReferenceError: a prompt includes itself through its components
    """
    started = time.perf_counter()
    try:
        root = await fetch(root_id)
        if root is None:
            raise PromptNotFoundError(root_id)
        limit = effective_max_depth(root, max_depth)
        result = await _expand_node(root, fetch, limit, 0, (), concurrent)
    except ResolutionError as e:
        compound_resolutions_total.labels(outcome=e.code.lower()).inc()
        logger.debug(
            f"Resolution of prompt {root_id} failed: {e.message}",
            extra={"prompt_id": root_id, "error_code": e.code},
        )
        raise
    finally:
        compound_resolution_duration_seconds.observe(time.perf_counter() - started)

    compound_resolutions_total.labels(outcome="ok").inc()
    logger.debug(
        f"Resolved prompt {root_id}",
        extra={
            "prompt_id": root_id,
            "depth_reached": result.depth_reached,
            "used_prompts": len(result.used_prompt_ids),
        },
    )
    return result


async def resolve(
    root_id: str,
    fetch: PromptFetch,
    *,
    max_depth: Optional[int] = None,
    concurrent: bool = False,
) -> str:
    """Resolve a prompt (leaf or compound) to its final text"""
    result = await resolve_with_details(root_id, fetch, max_depth=max_depth, concurrent=concurrent)
    return result.resolved_text


async def preview_components(
    components: Iterable[ComponentRef],
    fetch: PromptFetch,
    *,
    compound_id: Optional[str] = None,
    max_depth: Optional[int] = None,
) -> str:
    """Resolve an unsaved component list as if it belonged to a compound at depth 0

    Pass ``compound_id`` when previewing edits of an existing compound so that
    components referring back to it are reported as circular.
    """
    limit = max_depth if max_depth is not None else get_settings().compound_default_max_depth
    path = (compound_id,) if compound_id else ()
    parts = await _expand_slots(components, fetch, limit, 0, path, False)
    return "".join(part.resolved_text for part in parts)


async def get_prompt_dependencies(root_id: str, fetch: PromptFetch) -> List[str]:
    """IDs of every prompt a resolution of ``root_id`` touches, root first"""
    result = await resolve_with_details(root_id, fetch)
    return result.used_prompt_ids

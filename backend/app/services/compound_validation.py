"""
Authoring-time checks for compound prompts: cycles, nesting depth and slot layout
"""
from typing import Dict, Iterable, Optional, Sequence

from app.core.compound_errors import (CircularReferenceError,
                                      InvalidComponentError,
                                      MaxDepthExceededError,
                                      PromptNotFoundError)
from app.core.compound_types import ComponentRef, PromptFetch
from app.core.config import get_settings
from app.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)


def max_nesting_depth() -> int:
    """Ceiling on nesting depth accepted when compound prompts are authored"""
    return get_settings().compound_max_nesting_depth


async def check_circular_reference(
    prompt_id: str,
    fetch: PromptFetch,
    ancestors: Sequence[str] = (),
) -> bool:
    """Walk every reference below ``prompt_id`` looking for a path back to an ancestor

    Args:
        prompt_id: Prompt to start from
        fetch: Awaitable prompt lookup
        ancestors: IDs already on the path (e.g. the compound being edited)

    Returns:
        True if no cycle exists

    Raises:
        CircularReferenceError: with the offending path
        PromptNotFoundError: if a referenced prompt is missing
    """
    path = tuple(ancestors)
    if prompt_id in path:
        raise CircularReferenceError(path + (prompt_id,))

    prompt = await fetch(prompt_id)
    if prompt is None:
        raise PromptNotFoundError(prompt_id)
    if not prompt.is_compound:
        return True

    for component in prompt.components:
        if component.component_prompt_id:
            await check_circular_reference(component.component_prompt_id, fetch, path + (prompt_id,))
    return True


async def calculate_max_depth(
    prompt_id: str,
    fetch: PromptFetch,
    cache: Optional[Dict[str, int]] = None,
) -> int:
    """Nesting depth of a prompt: 0 for leaves, 1 + deepest component for compounds

    Raises:
        MaxDepthExceededError: if the depth is above the authoring ceiling
        PromptNotFoundError: if a referenced prompt is missing
    """
    if cache is None:
        cache = {}
    if prompt_id in cache:
        return cache[prompt_id]

    prompt = await fetch(prompt_id)
    if prompt is None:
        raise PromptNotFoundError(prompt_id)

    references = [c.component_prompt_id for c in prompt.components if c.component_prompt_id]
    if not prompt.is_compound or not references:
        cache[prompt_id] = 0
        return 0

    deepest = 0
    for reference in references:
        deepest = max(deepest, await calculate_max_depth(reference, fetch, cache))

    depth = 1 + deepest
    ceiling = max_nesting_depth()
    if depth > ceiling:
        raise MaxDepthExceededError(ceiling, depth)

    cache[prompt_id] = depth
    return depth


async def validate_component(
    compound_prompt_id: str,
    component_prompt_id: str,
    fetch: PromptFetch,
) -> bool:
    """Check that ``component_prompt_id`` can be placed inside ``compound_prompt_id``"""
    component = await fetch(component_prompt_id)
    if component is None:
        raise PromptNotFoundError(component_prompt_id, f"Component prompt not found: {component_prompt_id}")

    if compound_prompt_id == component_prompt_id:
        raise CircularReferenceError(
            [compound_prompt_id, component_prompt_id],
            "A prompt cannot reference itself",
        )

    if component.is_compound:
        await check_circular_reference(component_prompt_id, fetch, (compound_prompt_id,))

    new_depth = 1 + await calculate_max_depth(component_prompt_id, fetch)
    ceiling = max_nesting_depth()
    if new_depth > ceiling:
        raise MaxDepthExceededError(
            ceiling,
            new_depth,
            f"Adding this component would exceed maximum nesting depth of {ceiling}",
        )
    return True


def validate_component_structure(components: Iterable[ComponentRef]) -> bool:
    """Slots must be non-empty, numbered 0..n-1, and each carry a reference or text"""
    components = list(components)
    if not components:
        raise InvalidComponentError("Compound prompt must have at least one component")

    positions = sorted(c.position for c in components)
    for expected, actual in enumerate(positions):
        if actual != expected:
            raise InvalidComponentError(
                f"Component positions must be consecutive starting from 0. "
                f"Expected {expected}, got {actual}",
                {"expected": expected, "actual": actual},
            )

    for component in components:
        has_text = component.text_before is not None or component.text_after is not None
        if not component.component_prompt_id and not has_text:
            raise InvalidComponentError(
                f"Component at position {component.position} has neither a component prompt nor custom text",
                {"position": component.position},
            )
    return True

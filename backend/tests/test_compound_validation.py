"""
Tests for authoring-time compound prompt checks
"""
import pytest

from app.core.compound_errors import (CircularReferenceError,
                                      InvalidComponentError,
                                      MaxDepthExceededError,
                                      PromptNotFoundError)
from app.core.compound_types import ComponentRef, PromptNode, map_fetcher
from app.services.compound_validation import (calculate_max_depth,
                                              check_circular_reference,
                                              validate_component,
                                              validate_component_structure)


def leaf(prompt_id):
    return PromptNode(id=prompt_id, prompt_text=prompt_id)


def compound(prompt_id, *refs):
    return PromptNode(
        id=prompt_id,
        is_compound=True,
        components=tuple(ComponentRef(position=i, component_prompt_id=r) for i, r in enumerate(refs)),
    )


def graph(*nodes):
    return map_fetcher({node.id: node for node in nodes})


@pytest.mark.asyncio
async def test_no_cycle_in_tree():
    fetch = graph(leaf("l"), compound("m", "l"), compound("r", "m", "l"))
    assert await check_circular_reference("r", fetch) is True


@pytest.mark.asyncio
async def test_cycle_through_ancestor():
    fetch = graph(compound("m", "edited"), compound("edited", "m"))
    with pytest.raises(CircularReferenceError) as exc_info:
        await check_circular_reference("m", fetch, ("edited",))
    assert exc_info.value.path == ["edited", "m", "edited"]


@pytest.mark.asyncio
async def test_calculate_depth():
    fetch = graph(leaf("l"), compound("m", "l"), compound("r", "m", "l"))
    assert await calculate_max_depth("l", fetch) == 0
    assert await calculate_max_depth("m", fetch) == 1
    assert await calculate_max_depth("r", fetch) == 2


@pytest.mark.asyncio
async def test_calculate_depth_above_ceiling():
    nodes = [leaf("l")] + [compound(f"c{i}", f"c{i + 1}" if i < 6 else "l") for i in range(1, 7)]
    with pytest.raises(MaxDepthExceededError):
        await calculate_max_depth("c1", graph(*nodes))


@pytest.mark.asyncio
async def test_validate_component_accepts_leaf():
    fetch = graph(leaf("l"), compound("c", "l"))
    assert await validate_component("c", "l", fetch) is True


@pytest.mark.asyncio
async def test_validate_component_rejects_self():
    fetch = graph(compound("c"))
    with pytest.raises(CircularReferenceError):
        await validate_component("c", "c", fetch)


@pytest.mark.asyncio
async def test_validate_component_rejects_indirect_cycle():
    fetch = graph(compound("c"), compound("other", "c"))
    with pytest.raises(CircularReferenceError):
        await validate_component("c", "other", fetch)


@pytest.mark.asyncio
async def test_validate_component_missing():
    with pytest.raises(PromptNotFoundError):
        await validate_component("c", "missing", graph(compound("c")))


@pytest.mark.asyncio
async def test_validate_component_too_deep():
    nodes = [leaf("l")] + [compound(f"c{i}", f"c{i + 1}" if i < 5 else "l") for i in range(1, 6)]
    fetch = graph(compound("new"), *nodes)
    # c1 is already 5 levels deep; nesting it once more passes the ceiling
    with pytest.raises(MaxDepthExceededError):
        await validate_component("new", "c1", fetch)


class TestComponentStructure:

    def test_valid_layout(self):
        components = [
            ComponentRef(position=1, text_before="x"),
            ComponentRef(position=0, component_prompt_id="a"),
        ]
        assert validate_component_structure(components) is True

    def test_empty_list(self):
        with pytest.raises(InvalidComponentError):
            validate_component_structure([])

    def test_gap_in_positions(self):
        components = [
            ComponentRef(position=0, component_prompt_id="a"),
            ComponentRef(position=2, component_prompt_id="b"),
        ]
        with pytest.raises(InvalidComponentError) as exc_info:
            validate_component_structure(components)
        assert exc_info.value.details == {"expected": 1, "actual": 2}

    def test_slot_without_reference_or_text(self):
        with pytest.raises(InvalidComponentError):
            validate_component_structure([ComponentRef(position=0)])

    def test_empty_text_counts_as_text(self):
        assert validate_component_structure([ComponentRef(position=0, text_after="")]) is True

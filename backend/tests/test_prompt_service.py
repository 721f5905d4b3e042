"""
Unit tests for PromptService
"""
from uuid import uuid4

import pytest

from app.core.compound_errors import (CircularReferenceError,
                                      InvalidComponentError,
                                      MaxDepthExceededError,
                                      PromptInUseError, PromptNotFoundError,
                                      PromptStateError)
from app.core.compound_types import ComponentRef
from app.models.prompt import Prompt, PromptStatus, Tag
from app.services.compound_resolution import resolve
from app.services.prompt_service import (SORT_ALPHABETICAL,
                                         PromptSearchFilters, PromptService,
                                         parse_tag_filter)


class TestPromptService:
    """Test cases for leaf prompts, lookup and moderation"""

    def test_create_prompt(self, prompt_service: PromptService):
        prompt = prompt_service.create_prompt(
            title="Code Review & Best Practices",
            prompt_text="Review this code",
            category="Coding",
            author_name="Ada",
            tags=["Python", "code review", "python"],
        )

        assert prompt.id
        assert prompt.slug == "code-review-best-practices"
        assert prompt.status == PromptStatus.PENDING.value
        assert prompt.is_compound is False
        assert sorted(t.slug for t in prompt.tags) == ["code-review", "python"]

    def test_slug_is_unique(self, make_prompt):
        first = make_prompt("Same Title", "one")
        second = make_prompt("Same Title", "two")
        assert first.slug == "same-title"
        assert second.slug == "same-title-1"

    def test_tag_usage_count(self, make_prompt, db):
        make_prompt("One", "1", tags=["shared"])
        make_prompt("Two", "2", tags=["shared", "solo"])
        tag = db.query(Tag).filter(Tag.slug == "shared").one()
        assert tag.usage_count == 2

    def test_get_prompt_not_found(self, prompt_service: PromptService):
        assert prompt_service.get_prompt(str(uuid4())) is None

    def test_get_by_identifier(self, prompt_service: PromptService, make_prompt):
        prompt = make_prompt("Find Me", "text")
        assert prompt_service.get_by_identifier("find-me").id == prompt.id
        assert prompt_service.get_by_identifier(prompt.id.upper()).id == prompt.id

    def test_get_by_identifier_hides_unapproved(self, prompt_service: PromptService, make_prompt):
        prompt = make_prompt("Pending", "text", status=PromptStatus.PENDING)
        assert prompt_service.get_by_identifier(prompt.slug) is None
        assert prompt_service.get_by_identifier(prompt.slug, public_only=False).id == prompt.id

    def test_moderation(self, prompt_service: PromptService, make_prompt):
        prompt = make_prompt("Review", "text", status=PromptStatus.PENDING)

        approved = prompt_service.approve_prompt(prompt.id)
        assert approved.status == PromptStatus.APPROVED.value
        assert approved.approved_at is not None

        rejected = prompt_service.reject_prompt(prompt.id, "Too vague")
        assert rejected.status == PromptStatus.REJECTED.value
        assert rejected.rejection_reason == "Too vague"
        assert rejected.approved_at is None

    def test_counters(self, prompt_service: PromptService, make_prompt, db):
        prompt = make_prompt("Counted", "text")
        assert prompt_service.record_view(prompt.id) is True
        assert prompt_service.record_copy(prompt.id) is True
        assert prompt_service.record_copy(prompt.id) is True
        db.expire_all()
        refreshed = db.get(Prompt, prompt.id)
        assert refreshed.view_count == 1
        assert refreshed.copy_count == 2

    def test_counter_on_missing_prompt(self, prompt_service: PromptService):
        assert prompt_service.record_view(str(uuid4())) is False


class TestSearch:

    def test_filters_and_pagination(self, prompt_service: PromptService, make_prompt):
        make_prompt("Alpha essay", "Write an essay", category="Writing", tags=["essay"])
        make_prompt("Beta code", "Write code", category="Coding", tags=["code", "python"])
        make_prompt("Gamma code", "Refactor", category="Coding", tags=["code"])
        make_prompt("Hidden", "Write", category="Coding", status=PromptStatus.PENDING)

        items, total = prompt_service.search_prompts(PromptSearchFilters(query="WRITE"))
        assert total == 2
        assert {p.title for p in items} == {"Alpha essay", "Beta code"}

        items, total = prompt_service.search_prompts(PromptSearchFilters(category="Coding"))
        assert total == 2

        items, total = prompt_service.search_prompts(PromptSearchFilters(tags=["code", "python"]))
        assert [p.title for p in items] == ["Beta code"]

        items, total = prompt_service.search_prompts(
            PromptSearchFilters(), sort=SORT_ALPHABETICAL, page=2, limit=2
        )
        assert total == 3
        assert [p.title for p in items] == ["Gamma code"]

    def test_unknown_sort(self, prompt_service: PromptService):
        with pytest.raises(ValueError):
            prompt_service.search_prompts(PromptSearchFilters(), sort="popular")

    def test_categories_and_tags(self, prompt_service: PromptService, make_prompt):
        make_prompt("One", "1", category="Writing", tags=["a"])
        make_prompt("Two", "2", category="Coding", tags=["a", "b"])
        make_prompt("Three", "3", category="Hidden", status=PromptStatus.REJECTED)

        assert prompt_service.list_categories() == ["Coding", "Writing"]
        assert [t.slug for t in prompt_service.popular_tags(1)] == ["a"]

    def test_parse_tag_filter(self):
        assert parse_tag_filter(None) == []
        assert parse_tag_filter(" a, ,b ") == ["a", "b"]


class TestCompoundPrompts:

    @pytest.mark.asyncio
    async def test_create_and_resolve(self, prompt_service: PromptService, make_prompt, make_compound):
        x = make_prompt("Greeting", "Hello")
        y = make_prompt("Subject", "World")
        root = await make_compound("Intro", [(x.id, "Intro:\n", "\n"), (y.id, None, None)])

        assert root.is_compound is True
        assert root.prompt_text is None
        assert [c.position for c in root.components] == [0, 1]
        assert await resolve(root.id, prompt_service.fetcher) == "Intro:\nHello\nWorld"

    @pytest.mark.asyncio
    async def test_missing_component(self, make_compound):
        with pytest.raises(PromptNotFoundError):
            await make_compound("Broken", [(str(uuid4()), None, None)])

    @pytest.mark.asyncio
    async def test_invalid_layout(self, prompt_service: PromptService):
        with pytest.raises(InvalidComponentError):
            await prompt_service.create_compound_prompt(
                title="Gap",
                category="Writing",
                author_name="Tester",
                components=[ComponentRef(position=1, text_before="x")],
            )

    @pytest.mark.asyncio
    async def test_max_depth_out_of_range(self, make_prompt, make_compound):
        x = make_prompt("Leaf", "x")
        with pytest.raises(InvalidComponentError):
            await make_compound("Too deep", [(x.id, None, None)], max_depth=6)
        with pytest.raises(InvalidComponentError):
            await make_compound("Too shallow", [(x.id, None, None)], max_depth=0)

    @pytest.mark.asyncio
    async def test_max_depth_below_structure(self, make_prompt, make_compound):
        x = make_prompt("Leaf", "x")
        mid = await make_compound("Mid", [(x.id, None, None)])
        with pytest.raises(MaxDepthExceededError):
            await make_compound("Root", [(mid.id, None, None)], max_depth=1)
        root = await make_compound("Root", [(mid.id, None, None)], max_depth=2)
        assert root.max_depth == 2

    @pytest.mark.asyncio
    async def test_update_components(self, prompt_service: PromptService, make_prompt, make_compound):
        a = make_prompt("A", "A")
        b = make_prompt("B", "B")
        root = await make_compound("Root", [(a.id, None, None), (b.id, "-", None)])

        updated = await prompt_service.update_compound_components(
            root.id,
            [ComponentRef(position=0, component_prompt_id=b.id), ComponentRef(position=1, text_after="!")],
        )
        assert len(updated.components) == 2
        assert await resolve(root.id, prompt_service.fetcher) == "B!"

    @pytest.mark.asyncio
    async def test_update_rejects_cycle(self, prompt_service: PromptService, make_prompt, make_compound):
        a = make_prompt("A", "A")
        root = await make_compound("Root", [(a.id, None, None)])
        outer = await make_compound("Outer", [(root.id, None, None)])

        with pytest.raises(CircularReferenceError):
            await prompt_service.update_compound_components(
                root.id, [ComponentRef(position=0, component_prompt_id=outer.id)]
            )

    @pytest.mark.asyncio
    async def test_update_leaf_is_rejected(self, prompt_service: PromptService, make_prompt):
        a = make_prompt("A", "A")
        with pytest.raises(InvalidComponentError):
            await prompt_service.update_compound_components(a.id, [ComponentRef(position=0, text_before="x")])

    @pytest.mark.asyncio
    async def test_update_missing_prompt(self, prompt_service: PromptService):
        result = await prompt_service.update_compound_components(
            str(uuid4()), [ComponentRef(position=0, text_before="x")]
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_soft_delete_refused_while_in_use(self, prompt_service: PromptService, make_prompt, make_compound):
        a = make_prompt("A", "A")
        root = await make_compound("Root", [(a.id, None, None)])

        with pytest.raises(PromptInUseError) as exc_info:
            prompt_service.soft_delete_prompt(a.id)
        assert exc_info.value.used_by == [root.id]

        prompt_service.soft_delete_prompt(root.id)
        deleted = prompt_service.soft_delete_prompt(a.id)
        assert deleted.deleted_at is not None
        assert await prompt_service.fetcher(a.id) is None

    @pytest.mark.asyncio
    async def test_pending_compound_also_blocks_deletion(self, prompt_service: PromptService, make_prompt, make_compound):
        a = make_prompt("A", "A")
        draft = await make_compound("Draft", [(a.id, None, None)], status=PromptStatus.PENDING)

        with pytest.raises(PromptInUseError) as exc_info:
            prompt_service.soft_delete_prompt(a.id)
        assert exc_info.value.used_by == [draft.id]
        assert prompt_service.find_dependents(a.id) == [draft.id]

    @pytest.mark.asyncio
    async def test_deleted_prompt_resolves_as_not_found(self, prompt_service: PromptService, make_prompt):
        a = make_prompt("A", "Alpha")
        assert await resolve(a.id, prompt_service.fetcher) == "Alpha"

        prompt_service.soft_delete_prompt(a.id)

        with pytest.raises(PromptNotFoundError) as exc_info:
            await resolve(a.id, prompt_service.fetcher)
        assert exc_info.value.prompt_id == a.id

    def test_delete_twice_is_refused(self, prompt_service: PromptService, make_prompt):
        a = make_prompt("A", "A")
        prompt_service.soft_delete_prompt(a.id)

        with pytest.raises(PromptStateError) as exc_info:
            prompt_service.soft_delete_prompt(a.id)
        assert exc_info.value.code == "INVALID_STATE"

    @pytest.mark.asyncio
    async def test_restore(self, prompt_service: PromptService, make_prompt):
        a = make_prompt("A", "Alpha")
        prompt_service.soft_delete_prompt(a.id)

        restored = prompt_service.restore_prompt(a.id)

        assert restored.deleted_at is None
        assert await resolve(a.id, prompt_service.fetcher) == "Alpha"
        with pytest.raises(PromptStateError):
            prompt_service.restore_prompt(a.id)

    def test_restore_missing_prompt(self, prompt_service: PromptService):
        assert prompt_service.restore_prompt(str(uuid4())) is None

    @pytest.mark.asyncio
    async def test_restore_compound_with_deleted_component(self, prompt_service: PromptService, make_prompt, make_compound):
        a = make_prompt("A", "A")
        root = await make_compound("Root", [(a.id, None, None)])
        prompt_service.soft_delete_prompt(root.id)
        prompt_service.soft_delete_prompt(a.id)

        with pytest.raises(PromptNotFoundError) as exc_info:
            prompt_service.restore_prompt(root.id)
        assert exc_info.value.prompt_id == a.id

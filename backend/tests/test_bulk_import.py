"""
Tests for admin bulk import
"""
import json

from app.models.prompt import Prompt, PromptStatus, Tag
from app.services.bulk_import_service import (DEFAULT_AUTHOR_NAME,
                                              BulkImportService,
                                              parse_bulk_import)


def document(*prompts):
    return json.dumps({"prompts": list(prompts)})


class TestParseBulkImport:

    def test_valid_document(self):
        payload, errors = parse_bulk_import(document(
            {"title": "Summarize", "prompt_text": "Summarize this", "category": "Writing", "tags": ["notes"]},
        ))
        assert errors == []
        assert payload.prompts[0].tags == ["notes"]
        assert payload.prompts[0].featured is False

    def test_missing_required_fields_are_reported_with_paths(self):
        payload, errors = parse_bulk_import(document({"title": "No text"}))
        assert payload is None
        assert any(error.startswith("prompts.0.prompt_text") for error in errors)
        assert any(error.startswith("prompts.0.category") for error in errors)

    def test_empty_prompt_list(self):
        payload, errors = parse_bulk_import(document())
        assert payload is None
        assert errors and errors[0].startswith("prompts")

    def test_bad_slug_and_url(self):
        payload, errors = parse_bulk_import(document({
            "title": "T", "prompt_text": "x", "category": "c",
            "slug": "Not A Slug", "author_url": "ftp://example.com",
        }))
        assert payload is None
        assert any("slug" in error for error in errors)
        assert any("author_url" in error for error in errors)

    def test_invalid_json(self):
        payload, errors = parse_bulk_import("{not json")
        assert payload is None
        assert len(errors) == 1


class TestBulkImportService:

    def test_creates_approved_prompts_with_defaults(self, db):
        payload, _ = parse_bulk_import(document(
            {"title": "  Summarize  ", "prompt_text": " Summarize this ", "category": "Writing", "tags": ["Notes", "notes"]},
            {"title": "Translate", "prompt_text": "Translate", "category": "Language", "author_name": "Ana", "featured": True},
        ))

        result = BulkImportService(db).process(payload, actor="admin")

        assert (result.total, result.created, result.skipped, result.failed) == (2, 2, 0, 0)
        assert result.success is True
        assert result.message == "Processed 2 prompts: 2 prompts created"

        summarize = db.query(Prompt).filter(Prompt.slug == "summarize").one()
        assert summarize.title == "Summarize"
        assert summarize.prompt_text == "Summarize this"
        assert summarize.status == PromptStatus.APPROVED.value
        assert summarize.author_name == DEFAULT_AUTHOR_NAME
        assert [tag.name for tag in summarize.tags] == ["notes"]
        assert db.query(Tag).filter(Tag.name == "notes").one().usage_count == 1

        translate = db.query(Prompt).filter(Prompt.slug == "translate").one()
        assert translate.author_name == "Ana"
        assert translate.featured is True

    def test_explicit_slug_is_used_and_duplicates_skipped(self, db, make_prompt):
        make_prompt("Existing", "text")
        payload, _ = parse_bulk_import(document(
            {"title": "Again", "prompt_text": "x", "category": "c", "slug": "existing"},
            {"title": "Fresh", "prompt_text": "y", "category": "c", "slug": "custom-fresh"},
        ))

        result = BulkImportService(db).process(payload)

        assert (result.created, result.skipped, result.failed) == (1, 1, 0)
        skipped, created = result.results
        assert skipped.skipped is True
        assert "already exists" in skipped.error
        assert created.slug == "custom-fresh"
        assert db.query(Prompt).filter(Prompt.slug == "custom-fresh").one().id == created.id

    def test_generated_slugs_do_not_collide(self, db, make_prompt):
        make_prompt("Outline", "text")
        payload, _ = parse_bulk_import(document({"title": "Outline", "prompt_text": "x", "category": "c"}))

        result = BulkImportService(db).process(payload)

        assert result.results[0].slug == "outline-1"
        assert result.skipped == 0

"""
Tests for the compound prompt management API
"""
import warnings
from uuid import uuid4

import pytest

from app.api.errors import to_http_error
from app.core.compound_errors import (CircularReferenceError,
                                      InvalidComponentError,
                                      MaxDepthExceededError,
                                      PromptInUseError, PromptNotFoundError,
                                      PromptStateError)
from app.models.prompt import Prompt


@pytest.fixture
def leaves(make_prompt):
    return {
        "hello": make_prompt("Hello", "Hello"),
        "world": make_prompt("World", "World"),
    }


def create_payload(components, **extra):
    payload = {
        "title": "Greeting",
        "category": "Writing",
        "author_name": "Tester",
        "components": components,
    }
    payload.update(extra)
    return payload


class TestCreateAndUpdate:

    def test_create(self, client, leaves):
        response = client.post(
            "/api/compound-prompts/",
            json=create_payload(
                [
                    {"position": 0, "component_prompt_id": leaves["hello"].id, "custom_text_before": "Intro:\n", "custom_text_after": "\n"},
                    {"position": 1, "component_prompt_id": leaves["world"].id},
                ],
                tags=["greeting"],
                max_depth=2,
            ),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["slug"] == "greeting"
        assert body["is_compound"] is True
        assert body["status"] == "PENDING"
        assert body["max_depth"] == 2
        assert [c["position"] for c in body["components"]] == [0, 1]

        resolved = client.get(f"/api/compound-prompts/{body['id']}/resolved").json()
        assert resolved["resolved_text"] == "Intro:\nHello\nWorld"
        assert resolved["depth_reached"] == 1
        assert resolved["used_prompt_ids"] == [body["id"], leaves["hello"].id, leaves["world"].id]

    def test_create_with_missing_component(self, client):
        missing = str(uuid4())
        response = client.post(
            "/api/compound-prompts/",
            json=create_payload([{"position": 0, "component_prompt_id": missing}]),
        )
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"
        assert response.json()["detail"]["prompt_id"] == missing

    def test_create_with_bad_positions(self, client, leaves):
        response = client.post(
            "/api/compound-prompts/",
            json=create_payload([{"position": 1, "component_prompt_id": leaves["hello"].id}]),
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_COMPONENT"

    def test_request_validation(self, client):
        response = client.post("/api/compound-prompts/", json=create_payload([]))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_components(self, client, leaves, make_compound):
        root = await make_compound("Root", [(leaves["hello"].id, None, None)])

        response = client.put(
            f"/api/compound-prompts/{root.id}/components",
            json={"components": [
                {"position": 0, "component_prompt_id": leaves["world"].id},
                {"position": 1, "custom_text_before": "?"},
            ]},
        )

        assert response.status_code == 200
        assert client.get(f"/api/compound-prompts/{root.id}/resolved").json()["resolved_text"] == "World?"

    @pytest.mark.asyncio
    async def test_update_creating_cycle(self, client, leaves, make_compound):
        inner = await make_compound("Inner", [(leaves["hello"].id, None, None)])
        outer = await make_compound("Outer", [(inner.id, None, None)])

        response = client.put(
            f"/api/compound-prompts/{inner.id}/components",
            json={"components": [{"position": 0, "component_prompt_id": outer.id}]},
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "CIRCULAR_REFERENCE"
        assert detail["path"] == [inner.id, outer.id, inner.id]

    def test_update_unknown_prompt(self, client):
        response = client.put(
            f"/api/compound-prompts/{uuid4()}/components",
            json={"components": [{"position": 0, "custom_text_before": "x"}]},
        )
        assert response.status_code == 404


class TestPreviewAndDependencies:

    def test_preview(self, client, leaves):
        response = client.post(
            "/api/compound-prompts/preview",
            json={"components": [
                {"position": 1, "component_prompt_id": leaves["world"].id},
                {"position": 0, "component_prompt_id": leaves["hello"].id, "custom_text_after": ", "},
            ]},
        )
        assert response.status_code == 200
        assert response.json() == {"resolved_text": "Hello, World"}

    def test_preview_depth_error(self, client, leaves):
        response = client.post(
            "/api/compound-prompts/preview",
            json={"components": [{"position": 0, "component_prompt_id": leaves["hello"].id}], "max_depth": 0},
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "MAX_DEPTH_EXCEEDED"

    @pytest.mark.asyncio
    async def test_dependencies(self, client, leaves, make_compound):
        inner = await make_compound("Inner", [(leaves["hello"].id, None, None)])
        outer = await make_compound("Outer", [(inner.id, None, None), (leaves["world"].id, None, None)])

        body = client.get(f"/api/compound-prompts/{inner.id}/dependencies").json()
        assert body["uses"] == [leaves["hello"].id]
        assert body["used_by"] == [outer.id]

        body = client.get(f"/api/compound-prompts/{outer.id}/dependencies").json()
        assert body["uses"] == [inner.id, leaves["hello"].id, leaves["world"].id]
        assert body["used_by"] == []

    def test_resolved_unknown_prompt(self, client):
        response = client.get(f"/api/compound-prompts/{uuid4()}/resolved")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"


class TestCopy:

    @pytest.mark.asyncio
    async def test_copy_records_and_returns_text(self, client, db, leaves, make_compound):
        root = await make_compound("Root", [(leaves["hello"].id, None, "!")])

        response = client.post(f"/api/prompts/{root.id}/copy")

        assert response.status_code == 200
        assert response.json()["resolved_text"] == "Hello!"
        db.expire_all()
        assert db.get(Prompt, root.id).copy_count == 1

    def test_copy_unknown_prompt(self, client):
        assert client.post(f"/api/prompts/{uuid4()}/copy").status_code == 404


class TestServiceEndpoints:

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_detailed_health(self, client, leaves):
        body = client.get("/health/detailed").json()
        assert body["components"]["database"]["status"] == "healthy"
        assert body["components"]["prompt_library"]["approved"] == 2

    def test_metrics(self, client, leaves):
        client.get("/api/v1/categories")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_request_id_header(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["x-request-id"] == "abc-123"


class TestErrorMapping:

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (PromptNotFoundError("p1"), 404),
            (PromptInUseError("p1", ["c1"]), 409),
            (PromptStateError("p1", "Prompt is already deleted"), 400),
            (InvalidComponentError("bad layout"), 422),
            (MaxDepthExceededError(2, 3), 422),
            (CircularReferenceError(["a", "b", "a"]), 422),
        ],
    )
    def test_status_codes(self, error, status_code):
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            http_error = to_http_error(error)

        assert http_error.status_code == status_code
        assert http_error.detail["code"] == error.code

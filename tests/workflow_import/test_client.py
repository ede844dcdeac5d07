from __future__ import annotations

import json
from typing import Callable, List

import httpx
import pytest

from app.workflow_import.client import N8nClient, extract_error_message
from app.workflow_import.config import N8nConfig
from app.workflow_import.errors import N8nApiError

CONFIG = N8nConfig(api_url="http://n8n.test", api_key="secret", webhook_base_url="https://hooks.example.com")


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> N8nClient:
    return N8nClient(CONFIG, transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ({"message": "top level"}, "top level"),
        ({"error": {"message": "nested"}}, "nested"),
        ({"error": "plain"}, "plain"),
        ("  raw text ", "raw text"),
        ({}, None),
    ],
)
def test_extract_error_message(body, expected) -> None:
    assert extract_error_message(body) == expected


@pytest.mark.asyncio
async def test_list_workflows_follows_cursor_and_sends_api_key() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.params.get("cursor") == "page-2":
            return httpx.Response(200, json={"data": [{"id": "2", "name": "B"}], "nextCursor": None})
        return httpx.Response(200, json={"data": [{"id": "1", "name": "A"}], "nextCursor": "page-2"})

    workflows = await _client(handler).list_workflows()

    assert [workflow["id"] for workflow in workflows] == ["1", "2"]
    assert len(seen) == 2
    assert all(request.headers["X-N8N-API-KEY"] == "secret" for request in seen)
    assert seen[0].url.path == "/api/v1/workflows"


@pytest.mark.asyncio
async def test_create_workflow_never_sends_tags() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "wf-9", "name": "A"})

    created = await _client(handler).create_workflow(
        {"name": "A", "nodes": [], "connections": {}, "settings": {"executionOrder": "v1"}, "tags": ["x"]}
    )

    assert created["id"] == "wf-9"
    assert captured["method"] == "POST"
    assert captured["body"] == {"name": "A", "nodes": [], "connections": {}, "settings": {"executionOrder": "v1"}}


@pytest.mark.asyncio
async def test_error_response_uses_nested_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "request/body must NOT have additional properties"}})

    with pytest.raises(N8nApiError) as excinfo:
        await _client(handler).update_workflow("wf-1", {"name": "A", "nodes": []})

    assert excinfo.value.status_code == 400
    assert str(excinfo.value) == "n8n API error (400): request/body must NOT have additional properties"


@pytest.mark.asyncio
async def test_error_response_falls_back_to_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream exploded")

    with pytest.raises(N8nApiError) as excinfo:
        await _client(handler).activate_workflow("wf-1")

    assert "upstream exploded" in str(excinfo.value)
    assert excinfo.value.response == "upstream exploded"


@pytest.mark.asyncio
async def test_transport_failure_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(N8nApiError) as excinfo:
        await _client(handler).get_workflow("wf-1")

    assert excinfo.value.status_code is None
    assert str(excinfo.value).startswith("Failed to connect to n8n")


@pytest.mark.asyncio
async def test_delete_accepts_empty_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        assert request.url.path == "/api/v1/workflows/wf-3"
        return httpx.Response(204)

    assert await _client(handler).delete_workflow("wf-3") is None


@pytest.mark.asyncio
async def test_find_workflow_by_name() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"id": "1", "name": "A"}, {"id": "2", "name": "B"}]})

    client = _client(handler)
    assert (await client.find_workflow_by_name("B"))["id"] == "2"
    assert await client.find_workflow_by_name("Z") is None


@pytest.mark.asyncio
async def test_health_check_never_raises() -> None:
    def healthy(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/healthz"
        return httpx.Response(200, json={"status": "ok"})

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    assert await _client(healthy).health_check() is True
    assert await _client(unreachable).health_check() is False


@pytest.mark.asyncio
async def test_connection_reports_invalid_api_key() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/healthz":
            return httpx.Response(200)
        return httpx.Response(401, json={"message": "unauthorized"})

    assert await _client(handler).test_connection() == {
        "success": False,
        "error": "Invalid API key or insufficient permissions",
    }


@pytest.mark.asyncio
async def test_connection_success() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/healthz":
            return httpx.Response(200)
        assert request.url.params["limit"] == "1"
        return httpx.Response(200, json={"data": []})

    assert await _client(handler).test_connection() == {"success": True, "error": None}


@pytest.mark.asyncio
async def test_health_report_counts_active_workflows() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/healthz":
            return httpx.Response(200)
        return httpx.Response(200, json={"data": [{"id": "1", "active": True}, {"id": "2", "active": False}]})

    report = await _client(handler).health_report()

    assert report["healthy"] is True
    assert report["workflow_count"] == 2
    assert report["active_workflows"] == 1


@pytest.mark.asyncio
async def test_workflow_webhooks_use_public_base_url() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "wf-1",
                "nodes": [
                    {"type": "n8n-nodes-base.webhook", "parameters": {"path": "start"}},
                    {"type": "n8n-nodes-base.formTrigger", "parameters": {"path": "intake"}},
                ],
            },
        )

    assert await _client(handler).get_workflow_webhooks("wf-1") == [
        "https://hooks.example.com/webhook/start",
        "https://hooks.example.com/form/intake",
    ]


@pytest.mark.asyncio
async def test_non_json_success_body_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html><body>Sign in to continue</body></html>")

    with pytest.raises(N8nApiError) as excinfo:
        await _client(handler).create_workflow({"name": "A", "nodes": []})

    assert excinfo.value.status_code == 200
    assert "non-JSON" in str(excinfo.value)

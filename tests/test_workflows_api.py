import json

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_workflow_service_factory
from app.core.config import AppSettings
from app.models.workflow_registry import ImportStatus
from app.workflow_import.errors import N8nApiError
from app.workflow_import.registry import WorkflowRegistryStore
from app.workflow_import.service import WorkflowImportService

ORDER = ["a.json", "b.json"]


@pytest.fixture()
def api(client: TestClient, workflows_dir, write_workflow, n8n_stub) -> TestClient:
    write_workflow("a.json", "A", webhook_path="start")
    write_workflow("b.json", "B", depends_on=["A"], credentials=True)
    settings = AppSettings(
        workflows_dir=str(workflows_dir),
        workflow_import_order=ORDER,
        phase1_delay_seconds=0,
        phase2_delay_seconds=0,
        activation_max_attempts=2,
        activation_initial_delay_seconds=0,
    )
    guard = client.app.state.run_guard

    def override_factory():
        def build(session):
            return WorkflowImportService(session, settings=settings, guard=guard, client=n8n_stub)

        return build

    client.app.dependency_overrides[get_workflow_service_factory] = override_factory
    yield client
    client.app.dependency_overrides.clear()


def test_liveness(client: TestClient) -> None:
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_n8n_health_report(api: TestClient, n8n_stub) -> None:
    n8n_stub.add_remote("Existing", active=True)

    body = api.get("/healthz/n8n").json()

    assert body["healthy"] is True
    assert body["active_workflows"] == 1


def test_status_before_import(api: TestClient) -> None:
    response = api.get("/api/v1/workflows")

    assert response.status_code == 200
    body = {item["filename"]: item for item in response.json()}
    assert body["a.json"]["import_status"] == "pending"
    assert body["a.json"]["trigger_paths"] == ["/webhook/start"]
    assert body["b.json"]["has_credentials"] is True


def test_validate_and_dependencies(api: TestClient) -> None:
    validation = api.post("/api/v1/workflows/validate").json()
    assert validation["valid"] is True
    assert validation["credential_workflows"] == 1

    graph = api.get("/api/v1/workflows/dependencies").json()
    assert graph["order"] == ["A", "B"]
    assert graph["has_cycle"] is False


def test_dry_run_does_not_touch_n8n(api: TestClient, n8n_stub) -> None:
    response = api.post("/api/v1/workflows/dry-run", json={"force_update": False})

    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["to_create"] == 2
    assert [workflow["action"] for workflow in body["workflows"]] == ["create", "create"]
    assert n8n_stub.calls == []


def test_import_then_registry_and_updates(api: TestClient, n8n_stub) -> None:
    response = api.post("/api/v1/workflows/import", json={})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "complete"
    assert {result["filename"]: result["status"] for result in body["results"]} == {
        "a.json": "imported",
        "b.json": "imported",
    }
    assert n8n_stub.names_called("activate") == ["A", "B"]

    registry = api.get("/api/v1/workflows/registry").json()
    assert {entry["workflow_file"] for entry in registry} == set(ORDER)
    assert all(entry["is_active"] for entry in registry)

    updates = api.get("/api/v1/workflows/updates").json()
    assert [update["has_update"] for update in updates] == [False, False]


def test_import_reports_activation_failures(api: TestClient, n8n_stub) -> None:
    n8n_stub.activation_failures["B"] = [N8nApiError("Workflow has no trigger node")]

    body = api.post("/api/v1/workflows/import").json()

    assert body["status"] == "error"
    assert body["failed_activations"][0]["filename"] == "b.json"


def test_import_stream_emits_ndjson_progress(api: TestClient) -> None:
    with api.stream("POST", "/api/v1/workflows/import-stream", json={}) as response:
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        lines = [json.loads(line) for line in response.iter_lines() if line]

    assert lines[0]["status"] == "importing"
    assert lines[-1]["status"] == "complete"
    assert {"creating", "activating"} <= {line["phase"] for line in lines}


def test_sync_marks_remote_deletions(api: TestClient, session, n8n_stub) -> None:
    WorkflowRegistryStore(session).upsert(
        "a.json",
        workflow_name="A",
        n8n_workflow_id="wf-missing",
        import_status=ImportStatus.IMPORTED,
        is_active=True,
    )

    body = api.post("/api/v1/workflows/sync").json()

    assert body["deleted"] == 1
    assert body["results"][0]["action"] == "marked_deleted"


def test_fix_stuck_resets_interrupted_rows(api: TestClient, session) -> None:
    WorkflowRegistryStore(session).upsert("a.json", import_status=ImportStatus.IMPORTING)

    response = api.post("/api/v1/workflows/fix-stuck")

    assert response.status_code == 200
    assert response.json() == {"reset_count": 1}


def test_retry_and_cleanup_failed_activations(api: TestClient, n8n_stub) -> None:
    n8n_stub.activation_failures["A"] = [N8nApiError("Workflow has no trigger node")]
    n8n_stub.activation_failures["B"] = [N8nApiError("Workflow has no trigger node")] * 2
    api.post("/api/v1/workflows/import")

    retried = api.post("/api/v1/workflows/retry-activations").json()
    assert {result["filename"]: result["status"] for result in retried} == {
        "a.json": "imported",
        "b.json": "activation_failed",
    }

    cleaned = api.post("/api/v1/workflows/cleanup", json={"policy": "delete"}).json()
    assert [(result["filename"], result["action"]) for result in cleaned] == [("b.json", "deleted")]
    assert n8n_stub.deleted_names == ["B"]


def test_second_operation_is_rejected_while_one_runs(api: TestClient) -> None:
    with api.app.state.run_guard.hold("import"):
        response = api.post("/api/v1/workflows/sync")
        stream_response = api.post("/api/v1/workflows/import-stream")

    assert response.status_code == 409
    assert response.json()["running"] == "import"
    assert stream_response.status_code == 409


def test_test_connection(api: TestClient) -> None:
    assert api.post("/api/v1/workflows/test-connection").json() == {"success": True, "error": None}


def test_unconfigured_n8n_returns_400(client: TestClient, workflows_dir) -> None:
    settings = AppSettings(workflows_dir=str(workflows_dir), n8n_api_url="", n8n_api_key="")
    guard = client.app.state.run_guard
    client.app.dependency_overrides[get_workflow_service_factory] = lambda: (
        lambda session: WorkflowImportService(session, settings=settings, guard=guard)
    )

    response = client.post("/api/v1/workflows/sync")
    client.app.dependency_overrides.clear()

    assert response.status_code == 400
    assert response.json()["detail"] == "n8n API is not configured"

import json
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("WFS_ENVIRONMENT", "test")
os.environ.setdefault("WFS_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("WFS_LOG_JSON", "false")
os.environ.setdefault("WFS_N8N_API_URL", "http://n8n.test")
os.environ.setdefault("WFS_N8N_API_KEY", "test-api-key")
os.environ.setdefault("WFS_PHASE1_DELAY_SECONDS", "0")
os.environ.setdefault("WFS_PHASE2_DELAY_SECONDS", "0")
os.environ.setdefault("WFS_ACTIVATION_INITIAL_DELAY_SECONDS", "0")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import get_settings  # noqa: E402

get_settings.cache_clear()

from app.core.database import SessionLocal, engine  # noqa: E402
from app.main import create_app  # noqa: E402
from app.models import Base  # noqa: E402
from app.workflow_import.config import ImportTimings  # noqa: E402
from app.workflow_import.errors import N8nApiError  # noqa: E402
from app.workflow_import.registry import WorkflowRegistryStore  # noqa: E402
from app.workflow_import.retry import RetryPolicy  # noqa: E402


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def store(session) -> WorkflowRegistryStore:
    return WorkflowRegistryStore(session)


@pytest.fixture()
def client() -> TestClient:  # noqa: ANN001
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def workflows_dir(tmp_path) -> Path:
    directory = tmp_path / "workflows"
    directory.mkdir()
    return directory


@pytest.fixture()
def write_workflow(workflows_dir) -> Callable[..., Path]:
    """Writes an n8n workflow file with optional subworkflow calls, trigger and credentials."""

    def _write(
        filename: str,
        name: str,
        *,
        depends_on: Iterable[str] = (),
        webhook_path: Optional[str] = None,
        credentials: bool = False,
        extra_node: Optional[dict] = None,
    ) -> Path:
        nodes = [{"name": "Start", "type": "n8n-nodes-base.manualTrigger", "parameters": {}}]
        for dependency in depends_on:
            nodes.append(
                {
                    "name": f"Call {dependency}",
                    "type": "n8n-nodes-base.executeWorkflow",
                    "parameters": {"workflowId": dependency},
                }
            )
        if webhook_path:
            nodes.append({"name": "Webhook", "type": "n8n-nodes-base.webhook", "parameters": {"path": webhook_path}})
        if credentials:
            nodes[0]["credentials"] = {"aws": {"id": "17", "name": "AWS account"}}
        if extra_node:
            nodes.append(extra_node)

        document = {
            "name": name,
            "nodes": nodes,
            "connections": {},
            "settings": {"executionOrder": "v1"},
            "tags": [{"id": "1", "name": "bundled"}],
        }
        path = workflows_dir / filename
        path.write_text(json.dumps(document, indent=2))
        return path

    return _write


class StubN8nClient:
    """In-memory stand-in for N8nClient that records every call."""

    def __init__(self) -> None:
        self.workflows: Dict[str, dict] = {}
        self.calls: List[tuple] = []
        self.payloads: List[dict] = []
        self.create_failures: Dict[str, N8nApiError] = {}
        self.activation_failures: Dict[str, List[Exception]] = {}
        self.delete_failures: Dict[str, N8nApiError] = {}
        self.deactivate_failures: Dict[str, N8nApiError] = {}
        self.deleted_names: List[str] = []
        self._next_id = 1

    def add_remote(self, name: str, *, active: bool = False, workflow_id: Optional[str] = None) -> str:
        workflow_id = workflow_id or f"wf-{self._next_id}"
        self._next_id += 1
        self.workflows[workflow_id] = {"id": workflow_id, "name": name, "active": active, "nodes": []}
        return workflow_id

    def names_called(self, method: str) -> List[str]:
        return [self.workflows.get(arg, {}).get("name", arg) for called, arg in self.calls if called == method]

    async def list_workflows(self) -> List[dict]:
        self.calls.append(("list", None))
        return [dict(workflow) for workflow in self.workflows.values()]

    async def find_workflow_by_name(self, name: str) -> Optional[dict]:
        for workflow in self.workflows.values():
            if workflow["name"] == name:
                return dict(workflow)
        return None

    async def get_workflow(self, workflow_id: str) -> dict:
        return dict(self.workflows[workflow_id])

    async def create_workflow(self, workflow: dict) -> dict:
        self.calls.append(("create", workflow["name"]))
        self.payloads.append(workflow)
        if workflow["name"] in self.create_failures:
            raise self.create_failures[workflow["name"]]
        workflow_id = self.add_remote(workflow["name"])
        self.workflows[workflow_id]["nodes"] = workflow["nodes"]
        return dict(self.workflows[workflow_id])

    async def update_workflow(self, workflow_id: str, workflow: dict) -> dict:
        self.calls.append(("update", workflow_id))
        self.payloads.append(workflow)
        self.workflows[workflow_id]["nodes"] = workflow["nodes"]
        return dict(self.workflows[workflow_id])

    async def delete_workflow(self, workflow_id: str) -> None:
        self.calls.append(("delete", workflow_id))
        self.deleted_names.append(self.workflows.get(workflow_id, {}).get("name", workflow_id))
        if workflow_id in self.delete_failures:
            raise self.delete_failures[workflow_id]
        self.workflows.pop(workflow_id, None)

    async def activate_workflow(self, workflow_id: str) -> dict:
        self.calls.append(("activate", workflow_id))
        name = self.workflows[workflow_id]["name"]
        pending = self.activation_failures.get(name)
        if pending:
            raise pending.pop(0)
        self.workflows[workflow_id]["active"] = True
        return {"id": workflow_id, "active": True}

    async def deactivate_workflow(self, workflow_id: str) -> dict:
        self.calls.append(("deactivate", workflow_id))
        if workflow_id in self.deactivate_failures:
            raise self.deactivate_failures[workflow_id]
        self.workflows[workflow_id]["active"] = False
        return {"id": workflow_id, "active": False}

    async def test_connection(self) -> dict:
        return {"success": True, "error": None}

    async def health_report(self) -> dict:
        active = sum(1 for workflow in self.workflows.values() if workflow["active"])
        return {
            "healthy": True,
            "health_endpoint": True,
            "api_access": True,
            "workflow_count": len(self.workflows),
            "active_workflows": active,
            "error": None,
        }


@pytest.fixture()
def n8n_stub() -> StubN8nClient:
    return StubN8nClient()


@pytest.fixture()
def fast_timings() -> ImportTimings:
    return ImportTimings(phase1_delay=0, phase2_delay=0)


@pytest.fixture()
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, initial_delay=0, backoff_factor=2.0)

"""Workflow import, activation and registry sync endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.api.dependencies import (
    WorkflowServiceFactory,
    get_run_guard,
    get_workflow_service,
    get_workflow_service_factory,
)
from app.core.database import session_scope
from app.schemas.workflow import (
    CleanupRequest,
    CleanupResultResponse,
    DependencyGraphResponse,
    DependencyNodeResponse,
    DryRunRequest,
    DryRunResponse,
    FixStuckResponse,
    ImportProgressResponse,
    ImportRequest,
    ImportResultResponse,
    RegistryEntryResponse,
    SyncProgressResponse,
    UpdateCheckResponse,
    ValidationResponse,
    WorkflowStatusResponse,
)
from app.workflow_import.errors import OperationInProgressError
from app.workflow_import.guard import RunGuard
from app.workflow_import.orchestrator import ImportOptions, ImportProgress
from app.workflow_import.service import WorkflowImportService

router = APIRouter()
logger = logging.getLogger("app.api.workflows")


def _options(payload: Optional[ImportRequest]) -> ImportOptions:
    payload = payload or ImportRequest()
    return ImportOptions(
        force_update=payload.force_update,
        validate_first=payload.validate_first,
        cleanup_on_activation_failure=payload.cleanup_on_activation_failure,
        cleanup_policy=payload.cleanup_policy,
    )


@router.get("", response_model=List[WorkflowStatusResponse], summary="Bundled workflows with registry state")
def workflow_status(service: WorkflowImportService = Depends(get_workflow_service)) -> List[WorkflowStatusResponse]:
    return [WorkflowStatusResponse.model_validate(item) for item in service.status()]


@router.get("/registry", response_model=List[RegistryEntryResponse])
def list_registry(service: WorkflowImportService = Depends(get_workflow_service)) -> List[RegistryEntryResponse]:
    return [RegistryEntryResponse.model_validate(entry) for entry in service.registry()]


@router.get("/updates", response_model=List[UpdateCheckResponse])
def list_updates(service: WorkflowImportService = Depends(get_workflow_service)) -> List[UpdateCheckResponse]:
    return [UpdateCheckResponse.model_validate(item) for item in service.updates()]


@router.get("/dependencies", response_model=DependencyGraphResponse)
def dependency_graph(service: WorkflowImportService = Depends(get_workflow_service)) -> DependencyGraphResponse:
    workflows, analysis = service.dependencies()
    return DependencyGraphResponse(
        workflows=[DependencyNodeResponse.model_validate(workflow) for workflow in workflows],
        has_cycle=analysis.has_cycle,
        cycles=analysis.cycles,
        order=analysis.order,
    )


@router.post("/validate", response_model=ValidationResponse)
def validate_workflows(service: WorkflowImportService = Depends(get_workflow_service)) -> ValidationResponse:
    return ValidationResponse.model_validate(service.validate())


@router.post("/dry-run", response_model=DryRunResponse)
def dry_run_import(
    payload: Optional[DryRunRequest] = None,
    service: WorkflowImportService = Depends(get_workflow_service),
) -> DryRunResponse:
    force_update = payload.force_update if payload else False
    return DryRunResponse.model_validate(service.dry_run(force_update=force_update))


@router.post("/import", response_model=ImportProgressResponse)
async def import_workflows(
    payload: Optional[ImportRequest] = None,
    service: WorkflowImportService = Depends(get_workflow_service),
) -> ImportProgressResponse:
    progress = await service.import_workflows(_options(payload))
    return ImportProgressResponse.model_validate(progress)


@router.post("/import-stream", summary="Import with newline-delimited JSON progress")
async def import_workflows_stream(
    payload: Optional[ImportRequest] = None,
    guard: RunGuard = Depends(get_run_guard),
    factory: WorkflowServiceFactory = Depends(get_workflow_service_factory),
) -> StreamingResponse:
    if guard.busy:
        raise OperationInProgressError(running=guard.current or "unknown", requested="import")
    options = _options(payload)

    async def stream() -> AsyncIterator[str]:
        queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
        cancel_event = asyncio.Event()

        def observe(progress: ImportProgress) -> None:
            queue.put_nowait(json.dumps(progress.to_dict(), default=str))

        async def run() -> None:
            try:
                with session_scope() as session:
                    await factory(session).import_workflows(options, observer=observe, cancel_event=cancel_event)
            except Exception as exc:  # noqa: BLE001
                logger.exception("workflow_import_stream_failed")
                queue.put_nowait(json.dumps({"status": "error", "error": str(exc)}))
            finally:
                queue.put_nowait(None)

        task = asyncio.create_task(run())
        try:
            while True:
                line = await queue.get()
                if line is None:
                    break
                yield line + "\n"
        finally:
            if not task.done():
                # Client went away; stop at the next await point.
                cancel_event.set()
                await task

    return StreamingResponse(stream(), media_type="application/x-ndjson")


@router.post("/sync", response_model=SyncProgressResponse)
async def sync_registry(service: WorkflowImportService = Depends(get_workflow_service)) -> SyncProgressResponse:
    return SyncProgressResponse.model_validate(await service.sync())


@router.post("/fix-stuck", response_model=FixStuckResponse)
def fix_stuck_imports(service: WorkflowImportService = Depends(get_workflow_service)) -> FixStuckResponse:
    return FixStuckResponse(reset_count=service.fix_stuck())


@router.post("/retry-activations", response_model=List[ImportResultResponse])
async def retry_activations(
    service: WorkflowImportService = Depends(get_workflow_service),
) -> List[ImportResultResponse]:
    return [ImportResultResponse.model_validate(result) for result in await service.retry_activations()]


@router.post("/cleanup", response_model=List[CleanupResultResponse])
async def cleanup_failed(
    payload: Optional[CleanupRequest] = None,
    service: WorkflowImportService = Depends(get_workflow_service),
) -> List[CleanupResultResponse]:
    policy = (payload or CleanupRequest()).policy
    return [CleanupResultResponse.model_validate(result) for result in await service.cleanup(policy)]


@router.post("/test-connection", summary="Check n8n reachability and API key")
async def test_connection(service: WorkflowImportService = Depends(get_workflow_service)) -> Dict[str, Any]:
    return await service.client().test_connection()


@router.get("/{workflow_id}/webhooks", response_model=List[str], summary="Trigger URLs of a deployed workflow")
async def workflow_webhooks(
    workflow_id: str,
    service: WorkflowImportService = Depends(get_workflow_service),
) -> List[str]:
    return await service.client().get_workflow_webhooks(workflow_id)

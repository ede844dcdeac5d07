"""Health check endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.api.dependencies import get_workflow_service
from app.workflow_import.service import WorkflowImportService

router = APIRouter()


@router.get("/healthz", summary="Liveness probe")
def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz/n8n", summary="n8n health endpoint and API access")
async def n8n_health(service: WorkflowImportService = Depends(get_workflow_service)) -> Dict[str, Any]:
    return await service.client().health_report()

"""Dependency injection helpers for FastAPI routes."""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_session
from app.workflow_import.guard import RunGuard
from app.workflow_import.service import WorkflowImportService

WorkflowServiceFactory = Callable[[Session], WorkflowImportService]


def get_db_session() -> Session:
    yield from get_session()


def get_run_guard(request: Request) -> RunGuard:
    return request.app.state.run_guard


def get_workflow_service_factory(guard: RunGuard = Depends(get_run_guard)) -> WorkflowServiceFactory:
    settings = get_settings()

    def build(session: Session) -> WorkflowImportService:
        return WorkflowImportService(session, settings=settings, guard=guard)

    return build


def get_workflow_service(
    session: Session = Depends(get_db_session),
    factory: WorkflowServiceFactory = Depends(get_workflow_service_factory),
) -> WorkflowImportService:
    return factory(session)

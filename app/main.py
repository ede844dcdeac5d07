"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.error_handlers import register_exception_handlers
from app.api.routers import get_api_router
from app.core.config import AppSettings, get_settings
from app.core.database import session_scope
from app.core.logging import configure_logging
from app.workflow_import.guard import RunGuard
from app.workflow_import.recovery import StuckImportRecovery
from app.workflow_import.registry import WorkflowRegistryStore

logger = logging.getLogger("app.main")


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: D401
    """Application lifespan context for startup/shutdown hooks."""

    settings: AppSettings = app.state.settings
    if settings.recover_stuck_imports_on_startup:
        with session_scope() as session:
            reset = StuckImportRecovery(WorkflowRegistryStore(session), guard=app.state.run_guard).run()
        logger.info("workflow_startup_recovery_finished", extra={"reset_count": reset})

    yield


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Application factory."""

    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Workflow Sync",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.run_guard = RunGuard()

    register_exception_handlers(app)
    app.include_router(get_api_router())
    return app


app = create_app()

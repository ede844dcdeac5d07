"""Exception handlers for the FastAPI app."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.workflow_import.errors import (
    ActivationRetryExhaustedError,
    N8nApiError,
    N8nNotConfiguredError,
    OperationInProgressError,
)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(N8nNotConfiguredError)
    async def not_configured_handler(request: Request, exc: N8nNotConfiguredError) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(OperationInProgressError)
    async def in_progress_handler(request: Request, exc: OperationInProgressError) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(status_code=409, content={"detail": str(exc), "running": exc.running})

    @app.exception_handler(N8nApiError)
    async def n8n_api_handler(request: Request, exc: N8nApiError) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(
            status_code=502,
            content={"detail": str(exc), "upstream_status": exc.status_code},
        )

    @app.exception_handler(ActivationRetryExhaustedError)
    async def retry_exhausted_handler(request: Request, exc: ActivationRetryExhaustedError) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(status_code=502, content={"detail": str(exc), "attempts": exc.attempts})

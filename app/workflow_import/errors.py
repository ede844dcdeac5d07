"""Exceptions raised by the workflow import engine."""

from __future__ import annotations

from typing import Any, Optional


class WorkflowImportError(Exception):
    """Base exception for workflow import operations."""


class N8nApiError(WorkflowImportError):
    """Raised when the n8n REST API returns an error or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class N8nNotConfiguredError(WorkflowImportError):
    """Raised when an operation needs the n8n API but no URL/key is configured."""

    def __init__(self, message: str = "n8n API is not configured") -> None:
        super().__init__(message)


class WorkflowFileError(WorkflowImportError):
    """Raised for a bundled workflow file that cannot be read or parsed."""

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"{filename}: {reason}")
        self.filename = filename
        self.reason = reason


class ActivationRetryExhaustedError(WorkflowImportError):
    """Raised when a retryable operation keeps failing until attempts run out."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class ImportCancelledError(WorkflowImportError):
    """Raised at an await point once the run's cancel signal is set."""

    def __init__(self, message: str = "Import cancelled") -> None:
        super().__init__(message)


class OperationInProgressError(WorkflowImportError):
    """Raised when another import/sync operation already holds the run guard."""

    def __init__(self, running: str, requested: str) -> None:
        super().__init__(f"Cannot start '{requested}': '{running}' is already in progress")
        self.running = running
        self.requested = requested

"""Import, activation and reconciliation of bundled n8n workflows."""

from __future__ import annotations

__all__ = [
    "N8nClient",
    "RunGuard",
    "TwoPhaseImportOrchestrator",
    "WorkflowImportService",
]

from .client import N8nClient  # noqa: E402
from .guard import RunGuard  # noqa: E402
from .orchestrator import TwoPhaseImportOrchestrator  # noqa: E402
from .service import WorkflowImportService  # noqa: E402

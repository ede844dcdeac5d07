"""Checksum based change detection against the workflow registry."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.models.workflow_registry import ImportStatus, WorkflowRegistryEntry
from app.workflow_import.loader import BundledWorkflow


class ImportAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


@dataclass(frozen=True)
class ChangeDecision:
    action: ImportAction
    reason: str


class ChangeDetector:
    """Decides whether a bundled workflow needs to be created, updated or skipped."""

    def __init__(self, *, force_update: bool = False) -> None:
        self._force_update = force_update

    def decide(self, workflow: BundledWorkflow, entry: Optional[WorkflowRegistryEntry]) -> ChangeDecision:
        if entry is None or not entry.n8n_workflow_id:
            return ChangeDecision(ImportAction.CREATE, "Workflow not yet imported")
        if self._force_update:
            return ChangeDecision(ImportAction.UPDATE, "Force update requested")
        if entry.local_checksum != workflow.checksum:
            return ChangeDecision(ImportAction.UPDATE, "Workflow content changed (checksum mismatch)")
        if entry.import_status != ImportStatus.IMPORTED:
            status = ImportStatus(entry.import_status).value
            return ChangeDecision(ImportAction.UPDATE, f"Previous import status: {status}")
        return ChangeDecision(ImportAction.SKIP, "Already imported with matching version")

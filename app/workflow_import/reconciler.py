"""Registry vs remote drift reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from app.models.workflow_registry import ImportStatus, WorkflowRegistryEntry
from app.workflow_import.registry import WorkflowRegistryStore

if TYPE_CHECKING:
    from app.workflow_import.client import N8nClient

logger = logging.getLogger("app.workflow_import.reconciler")

DELETED_REMOTELY_NOTE = "Workflow was deleted from n8n instance"


@dataclass
class SyncResult:
    filename: str
    workflow_name: str
    action: str = "no_change"
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SyncProgress:
    total: int = 0
    synced: int = 0
    deleted: int = 0
    state_changed: int = 0
    errors: int = 0
    results: List[SyncResult] = field(default_factory=list)


class RegistrySyncReconciler:
    """Repairs registry rows that drifted from the live n8n state.

    A row whose remote id is missing from the listing is reset to pending; a
    row whose active flag differs only has the flag updated.
    """

    def __init__(self, client: "N8nClient", store: WorkflowRegistryStore) -> None:
        self._client = client
        self._store = store

    async def sync(self) -> SyncProgress:
        remote = {str(workflow.get("id")): workflow for workflow in await self._client.list_workflows()}
        entries = self._store.list_entries()
        progress = SyncProgress(total=len(entries))

        for entry in entries:
            result = SyncResult(filename=entry.workflow_file, workflow_name=entry.workflow_name)
            try:
                self._reconcile(entry, remote, result, progress)
            except Exception as exc:
                self._store.session.rollback()
                logger.exception(
                    "workflow_sync_entry_failed",
                    extra={"workflow_file": result.filename},
                )
                result.action = "error"
                result.error = str(exc)
                progress.errors += 1
            else:
                progress.synced += 1
            progress.results.append(result)

        logger.info(
            "workflow_registry_synced",
            extra={
                "total": progress.total,
                "synced": progress.synced,
                "deleted": progress.deleted,
                "state_changed": progress.state_changed,
                "errors": progress.errors,
            },
        )
        return progress

    def _reconcile(
        self,
        entry: WorkflowRegistryEntry,
        remote: Dict[str, dict],
        result: SyncResult,
        progress: SyncProgress,
    ) -> None:
        if not entry.n8n_workflow_id:
            return

        remote_id = entry.n8n_workflow_id
        live = remote.get(remote_id)
        if live is None:
            previous = ImportStatus(entry.import_status).value
            self._store.upsert(
                entry.workflow_file,
                n8n_workflow_id=None,
                is_active=False,
                import_status=ImportStatus.PENDING,
                last_error=DELETED_REMOTELY_NOTE,
            )
            result.action = "marked_deleted"
            result.previous_status = previous
            result.new_status = ImportStatus.PENDING.value
            progress.deleted += 1
            logger.info(
                "workflow_deleted_remotely",
                extra={"workflow_file": entry.workflow_file, "workflow_id": remote_id},
            )
            return

        active = bool(live.get("active"))
        if active != entry.is_active:
            previous_active = entry.is_active
            self._store.upsert(entry.workflow_file, is_active=active)
            result.action = "marked_active" if active else "marked_inactive"
            result.previous_status = "active" if previous_active else "inactive"
            result.new_status = "active" if active else "inactive"
            progress.state_changed += 1
            logger.info(
                "workflow_active_state_changed",
                extra={"workflow_file": entry.workflow_file, "active": active},
            )

"""Best-effort rollback of workflows created by a failed Phase 1."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from app.models.workflow_registry import ImportStatus
from app.workflow_import.errors import N8nApiError
from app.workflow_import.registry import WorkflowRegistryStore

if TYPE_CHECKING:
    from app.workflow_import.client import N8nClient

logger = logging.getLogger("app.workflow_import.rollback")

ROLLBACK_NOTE = "Rolled back due to import failure"


@dataclass(frozen=True)
class CreatedWorkflow:
    filename: str
    workflow_id: str
    name: str


@dataclass
class RollbackResult:
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    restored: List[str] = field(default_factory=list)


class RollbackManager:
    """Deletes workflows created in the current run and resets their rows to pending.

    Not transactional: a failed delete is logged and the remaining items are
    still processed, leaving an orphan on the remote instance for the
    reconciler or an operator to clean up.
    """

    def __init__(self, client: "N8nClient", store: WorkflowRegistryStore) -> None:
        self._client = client
        self._store = store

    async def rollback(
        self,
        created: Sequence[CreatedWorkflow],
        *,
        snapshots: Optional[Dict[str, Optional[Dict[str, Any]]]] = None,
    ) -> RollbackResult:
        result = RollbackResult()
        logger.warning("workflow_rollback_started", extra={"count": len(created)})

        for workflow in created:
            try:
                await self._client.delete_workflow(workflow.workflow_id)
            except N8nApiError as exc:
                result.failed[workflow.filename] = str(exc)
                # The remote copy still exists, so the remote id is kept.
                self._store.upsert(
                    workflow.filename,
                    is_active=False,
                    import_status=ImportStatus.FAILED,
                    last_error=f"Rollback failed: {exc}",
                )
                logger.error(
                    "workflow_rollback_delete_failed",
                    extra={
                        "workflow_file": workflow.filename,
                        "workflow_id": workflow.workflow_id,
                        "error": str(exc),
                    },
                )
                continue

            self._store.upsert(
                workflow.filename,
                n8n_workflow_id=None,
                is_active=False,
                import_status=ImportStatus.PENDING,
                last_error=ROLLBACK_NOTE,
            )
            result.deleted.append(workflow.filename)
            logger.info(
                "workflow_rolled_back",
                extra={"workflow_file": workflow.filename, "workflow_id": workflow.workflow_id},
            )

        # Updated (not created) workflows keep their remote copy; only their row is put back.
        for filename, snapshot in (snapshots or {}).items():
            self._store.restore(filename, snapshot)
            result.restored.append(filename)

        return result

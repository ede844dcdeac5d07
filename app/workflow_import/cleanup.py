"""Cleanup of workflows whose Phase 2 activation permanently failed."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence

from app.models.workflow_registry import ImportStatus
from app.workflow_import.errors import N8nApiError
from app.workflow_import.registry import WorkflowRegistryStore

if TYPE_CHECKING:
    from app.workflow_import.client import N8nClient

logger = logging.getLogger("app.workflow_import.cleanup")


class CleanupPolicy(str, Enum):
    DEACTIVATE = "deactivate"
    DELETE = "delete"


@dataclass
class FailedActivation:
    filename: str
    workflow_id: str
    error: str
    cleaned: Optional[bool] = None


@dataclass
class CleanupResult:
    filename: str
    workflow_id: str
    action: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.action != "error"


class CleanupManager:
    def __init__(
        self,
        client: "N8nClient",
        store: WorkflowRegistryStore,
        *,
        policy: CleanupPolicy = CleanupPolicy.DEACTIVATE,
        reset_registry: bool = True,
    ) -> None:
        self._client = client
        self._store = store
        self._policy = CleanupPolicy(policy)
        self._reset_registry = reset_registry

    async def cleanup(self, failed: Sequence[FailedActivation]) -> List[CleanupResult]:
        """Apply the policy to each failed activation; items are independent."""

        logger.info(
            "workflow_cleanup_started",
            extra={"count": len(failed), "policy": self._policy.value},
        )
        results: List[CleanupResult] = []
        for item in failed:
            try:
                if self._policy is CleanupPolicy.DELETE:
                    results.append(await self._delete(item))
                else:
                    results.append(await self._deactivate(item))
            except N8nApiError as exc:
                logger.error(
                    "workflow_cleanup_failed",
                    extra={
                        "workflow_file": item.filename,
                        "workflow_id": item.workflow_id,
                        "policy": self._policy.value,
                        "error": str(exc),
                    },
                )
                results.append(CleanupResult(item.filename, item.workflow_id, "error", str(exc)))

        logger.info(
            "workflow_cleanup_finished",
            extra={
                "total": len(results),
                "cleaned": sum(1 for result in results if result.ok),
                "errors": sum(1 for result in results if not result.ok),
            },
        )
        return results

    async def _delete(self, item: FailedActivation) -> CleanupResult:
        await self._client.delete_workflow(item.workflow_id)
        if self._reset_registry:
            self._store.upsert(
                item.filename,
                n8n_workflow_id=None,
                is_active=False,
                import_status=ImportStatus.PENDING,
                last_error="Deleted after activation failure",
            )
        logger.info(
            "workflow_deleted_after_activation_failure",
            extra={"workflow_file": item.filename, "workflow_id": item.workflow_id},
        )
        return CleanupResult(item.filename, item.workflow_id, "deleted")

    async def _deactivate(self, item: FailedActivation) -> CleanupResult:
        try:
            await self._client.deactivate_workflow(item.workflow_id)
        except N8nApiError as exc:
            # Usually the workflow is already inactive.
            logger.debug(
                "workflow_deactivate_ignored",
                extra={"workflow_id": item.workflow_id, "error": str(exc)},
            )
        if self._reset_registry:
            self._store.upsert(
                item.filename,
                is_active=False,
                import_status=ImportStatus.FAILED,
                last_error=f"Activation failed: {item.error}",
            )
        logger.info(
            "workflow_deactivated_after_activation_failure",
            extra={"workflow_file": item.filename, "workflow_id": item.workflow_id},
        )
        return CleanupResult(item.filename, item.workflow_id, "deactivated")

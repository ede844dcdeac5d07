"""Persistence port for workflow registry rows."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.workflow_registry import TRANSIENT_STATUSES, ImportStatus, WorkflowRegistryEntry

logger = logging.getLogger("app.workflow_import.registry")

REGISTRY_FIELDS = (
    "workflow_name",
    "n8n_workflow_id",
    "local_version",
    "local_checksum",
    "trigger_paths",
    "is_active",
    "import_status",
    "last_import_at",
    "last_error",
    "retry_count",
)

STUCK_IMPORT_ERROR = "Reset: Previous import was interrupted"


class WorkflowRegistryStore:
    """Reads and upserts registry rows keyed by workflow filename.

    Every write commits immediately so each status transition survives a crash
    of the running import.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def get(self, filename: str) -> Optional[WorkflowRegistryEntry]:
        stmt = select(WorkflowRegistryEntry).where(WorkflowRegistryEntry.workflow_file == filename)
        return self._session.scalars(stmt).first()

    def list_entries(self, *, statuses: Optional[Iterable[ImportStatus]] = None) -> List[WorkflowRegistryEntry]:
        stmt = select(WorkflowRegistryEntry)
        if statuses is not None:
            stmt = stmt.where(WorkflowRegistryEntry.import_status.in_(list(statuses)))
        return list(self._session.scalars(stmt.order_by(WorkflowRegistryEntry.workflow_file)).all())

    def by_filename(self) -> Dict[str, WorkflowRegistryEntry]:
        return {entry.workflow_file: entry for entry in self.list_entries()}

    def upsert(self, filename: str, **fields: Any) -> WorkflowRegistryEntry:
        """Create or update the row for ``filename``.

        Only the supplied fields are written; passing ``None`` explicitly clears
        a nullable column.
        """

        unknown = set(fields) - set(REGISTRY_FIELDS)
        if unknown:
            raise ValueError(f"Unknown registry fields: {sorted(unknown)}")

        entry = self.get(filename)
        if entry is None:
            entry = WorkflowRegistryEntry(
                workflow_file=filename,
                workflow_name=fields.get("workflow_name") or filename.removesuffix(".json"),
                trigger_paths=[],
                is_active=False,
                import_status=ImportStatus.PENDING,
                retry_count=0,
                local_version="",
            )
            self._session.add(entry)

        for key, value in fields.items():
            if key == "trigger_paths" and value is not None:
                value = list(value)
            setattr(entry, key, value)

        # Only imported rows may be active.
        if entry.import_status != ImportStatus.IMPORTED and "is_active" not in fields:
            entry.is_active = False

        self._session.commit()
        return entry

    def increment_retry_count(self, filename: str) -> int:
        entry = self.get(filename)
        return (entry.retry_count if entry else 0) + 1

    def snapshot(self, filename: str) -> Optional[Dict[str, Any]]:
        """Copy of the row's registry fields, or None when no row exists."""

        entry = self.get(filename)
        if entry is None:
            return None
        data = {key: getattr(entry, key) for key in REGISTRY_FIELDS}
        data["trigger_paths"] = list(data["trigger_paths"] or [])
        return data

    def restore(self, filename: str, snapshot: Optional[Dict[str, Any]]) -> None:
        """Put a row back to a previous snapshot; a None snapshot removes the row."""

        if snapshot is None:
            entry = self.get(filename)
            if entry is not None:
                self._session.delete(entry)
                self._session.commit()
            return
        self.upsert(filename, **snapshot)

    def reset_stuck(self, error: str = STUCK_IMPORT_ERROR) -> int:
        """Reset rows left in importing/updating back to pending; returns the row count."""

        stmt = (
            update(WorkflowRegistryEntry)
            .where(WorkflowRegistryEntry.import_status.in_(list(TRANSIENT_STATUSES)))
            .values(import_status=ImportStatus.PENDING, is_active=False, last_error=error)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.commit()
        # Drop stale identity-map state for rows updated in bulk.
        self._session.expire_all()
        return result.rowcount or 0

"""Startup recovery for imports interrupted by a process restart."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import OperationalError, ProgrammingError

from app.workflow_import.guard import RunGuard
from app.workflow_import.registry import WorkflowRegistryStore

logger = logging.getLogger("app.workflow_import.recovery")

_MISSING_TABLE_MARKERS = ("no such table", "does not exist", "undefined table")


def _is_missing_table(exc: Exception) -> bool:
    message = str(exc).lower()
    return "workflow_registry" in message and any(marker in message for marker in _MISSING_TABLE_MARKERS)


class StuckImportRecovery:
    """Resets registry rows stuck in importing/updating.

    Those statuses only exist while an in-process run is executing, so after a
    restart they are always stale.
    """

    def __init__(self, store: WorkflowRegistryStore, *, guard: Optional[RunGuard] = None) -> None:
        self._store = store
        self._guard = guard

    def run(self) -> int:
        if self._guard is None:
            return self._reset()
        with self._guard.hold("fix-stuck"):
            return self._reset()

    def _reset(self) -> int:
        try:
            count = self._store.reset_stuck()
        except (OperationalError, ProgrammingError) as exc:
            if not _is_missing_table(exc):
                raise
            self._store.session.rollback()
            logger.debug("workflow_registry_missing_skip_reset")
            return 0

        if count:
            logger.warning("workflow_stuck_imports_reset", extra={"count": count})
        else:
            logger.debug("workflow_stuck_imports_none")
        return count

"""Single-run guard shared by every operation that writes the registry."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from app.workflow_import.errors import OperationInProgressError

logger = logging.getLogger("app.workflow_import.guard")


class RunGuard:
    """Non-blocking mutex: a second operation fails fast instead of waiting."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: Optional[str] = None

    @property
    def current(self) -> Optional[str]:
        return self._current

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            running = self._current or "unknown"
            logger.warning(
                "workflow_operation_rejected",
                extra={"requested": operation, "running": running},
            )
            raise OperationInProgressError(running=running, requested=operation)
        self._current = operation
        try:
            yield
        finally:
            self._current = None
            self._lock.release()

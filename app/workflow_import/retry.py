"""Retry policy and activation retry engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

from app.workflow_import.errors import ActivationRetryExhaustedError, ImportCancelledError

if TYPE_CHECKING:
    from app.workflow_import.client import N8nClient

LOGGER = logging.getLogger("app.workflow_import.retry")

T = TypeVar("T")

# Activation failures caused by n8n still publishing a referenced subworkflow.
TRANSIENT_ACTIVATION_PATTERNS = (
    "not published",
    "references workflow",
    "cannot publish",
    "not yet available",
    "failed to execute workflow",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential back-off policy: delay before retry n is initial_delay * backoff_factor**(n-1)."""

    max_attempts: int = 9
    initial_delay: float = 3.0
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        return self.initial_delay * (self.backoff_factor ** (attempt - 1))


def is_transient_activation_error(message: str) -> bool:
    """True when an activation error message indicates publishing lag."""

    lowered = (message or "").lower()
    return any(pattern in lowered for pattern in TRANSIENT_ACTIVATION_PATTERNS)


def raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ImportCancelledError()


async def pause(seconds: float, cancel_event: Optional[asyncio.Event] = None) -> None:
    """Sleep for ``seconds``, waking early with ImportCancelledError if cancelled."""

    raise_if_cancelled(cancel_event)
    if seconds <= 0:
        return
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise ImportCancelledError()


async def retry_with_policy(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    should_retry: Callable[[Exception], bool],
    cancel_event: Optional[asyncio.Event] = None,
    on_retry: Optional[Callable[[int, float, Exception], Any]] = None,
) -> T:
    """Run ``operation`` until it succeeds, a non-retryable error occurs, or attempts run out."""

    attempt = 0
    while True:
        attempt += 1
        raise_if_cancelled(cancel_event)
        try:
            return await operation()
        except ImportCancelledError:
            raise
        except Exception as exc:
            if not should_retry(exc):
                raise
            if attempt >= policy.max_attempts:
                raise ActivationRetryExhaustedError(attempt, exc) from exc
            delay = policy.delay_for(attempt)
            if on_retry is not None:
                on_retry(attempt, delay, exc)
            await pause(delay, cancel_event)


class ActivationRetryEngine:
    """Activates remote workflows, retrying only transient publishing errors."""

    def __init__(
        self,
        client: "N8nClient",
        policy: RetryPolicy,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        self._client = client
        self._policy = policy
        self._cancel_event = cancel_event

    async def activate(self, workflow_id: str, *, workflow_name: Optional[str] = None) -> dict:
        def log_retry(attempt: int, delay: float, exc: Exception) -> None:
            LOGGER.warning(
                "workflow_activation_retry",
                extra={
                    "workflow_id": workflow_id,
                    "workflow_name": workflow_name,
                    "attempt": attempt,
                    "max_attempts": self._policy.max_attempts,
                    "delay_seconds": delay,
                    "error": str(exc),
                },
            )

        return await retry_with_policy(
            lambda: self._client.activate_workflow(workflow_id),
            self._policy,
            should_retry=lambda exc: is_transient_activation_error(str(exc)),
            cancel_event=self._cancel_event,
            on_retry=log_retry,
        )

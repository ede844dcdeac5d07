"""Configuration helpers for the workflow import engine."""

from __future__ import annotations

from dataclasses import dataclass

from app.core.config import AppSettings, get_settings
from app.workflow_import.retry import RetryPolicy


@dataclass(frozen=True)
class N8nConfig:
    """Materialized n8n connection settings."""

    api_url: str
    api_key: str
    webhook_base_url: str


@dataclass(frozen=True)
class ImportTimings:
    """Pacing delays (seconds) applied after remote calls in each phase."""

    phase1_delay: float = 0.3
    phase2_delay: float = 3.0


def get_n8n_config(settings: AppSettings | None = None) -> N8nConfig | None:
    """Return the n8n connection config, or None when the API is not configured."""

    settings = settings or get_settings()
    if not settings.n8n_api_url or not settings.n8n_api_key:
        return None
    return N8nConfig(
        api_url=settings.n8n_api_url,
        api_key=settings.n8n_api_key,
        webhook_base_url=settings.n8n_webhook_base_url or settings.n8n_api_url,
    )


def get_import_timings(settings: AppSettings | None = None) -> ImportTimings:
    settings = settings or get_settings()
    return ImportTimings(
        phase1_delay=settings.phase1_delay_seconds,
        phase2_delay=settings.phase2_delay_seconds,
    )


def get_activation_retry_policy(settings: AppSettings | None = None) -> RetryPolicy:
    settings = settings or get_settings()
    return RetryPolicy(
        max_attempts=settings.activation_max_attempts,
        initial_delay=settings.activation_initial_delay_seconds,
        backoff_factor=settings.activation_backoff_factor,
    )

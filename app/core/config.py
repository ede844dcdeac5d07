"""Application configuration using Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_IMPORT_ORDER = [
    # Foundation subworkflows (no dependencies)
    "ai-product-factory-s3-subworkflow.json",
    "ai-product-factory-decision-logger-subworkflow.json",
    # Research subworkflow
    "ai-product-factory-perplexity-research-subworkflow.json",
    # Agent loops (depend on research)
    "ai-product-factory-scavenging-subworkflow.json",
    "ai-product-factory-vision-loop-subworkflow.json",
    "ai-product-factory-architecture-loop-subworkflow.json",
    # API and main entry points (depend on all above)
    "ai-product-factory-api-workflow.json",
    "ai-product-factory-main-workflow.json",
]


class AppSettings(BaseSettings):
    """Service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="WFS_",
        extra="ignore",
    )

    environment: Literal["local", "test", "staging", "production"] = Field(default="local")
    service_name: str = Field(default="workflow-sync")
    database_url: str = Field(default="sqlite:///./data/workflow_sync.db")
    sql_echo: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)
    workflows_dir: str = Field(default="./workflows")
    workflow_import_order: List[str] | str = Field(default_factory=lambda: list(DEFAULT_IMPORT_ORDER))
    n8n_api_url: str | None = Field(default=None)
    n8n_api_key: str | None = Field(default=None)
    n8n_webhook_base_url: str | None = Field(default=None)
    n8n_request_timeout: float = Field(default=30.0)
    phase1_delay_seconds: float = Field(default=0.3)
    phase2_delay_seconds: float = Field(default=3.0)
    activation_max_attempts: int = Field(default=9)
    activation_initial_delay_seconds: float = Field(default=3.0)
    activation_backoff_factor: float = Field(default=2.0)
    recover_stuck_imports_on_startup: bool = Field(default=True)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("workflow_import_order")
    @classmethod
    def parse_import_order(cls, value: str | List[str] | None) -> List[str]:
        if value is None or value == "":
            return list(DEFAULT_IMPORT_ORDER)
        if isinstance(value, str):
            return [name.strip() for name in value.split(",") if name.strip()]
        return value

    @field_validator(
        "n8n_api_url",
        "n8n_api_key",
        "n8n_webhook_base_url",
        mode="before",
    )
    @classmethod
    def empty_string_to_none(cls, value: str | None) -> str | None:
        if value == "":
            return None
        return value

    @field_validator("n8n_api_url", "n8n_webhook_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.rstrip("/")

    @field_validator("activation_max_attempts")
    @classmethod
    def ensure_positive_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("activation_max_attempts must be at least 1")
        return value


@lru_cache
def get_settings() -> AppSettings:
    """Return cached application settings instance."""

    return AppSettings()

"""SQLAlchemy ORM models for the workflow sync service."""

from app.models.base import Base  # noqa: F401
from app.models.workflow_registry import ImportStatus, WorkflowRegistryEntry  # noqa: F401

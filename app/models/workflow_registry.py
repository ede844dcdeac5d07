"""Registry rows tracking the deployment state of each bundled workflow."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin

JSONList = JSON().with_variant(JSONB(), "postgresql")


class ImportStatus(str, Enum):
    """Import state machine for a registry entry."""

    PENDING = "pending"
    IMPORTING = "importing"
    UPDATING = "updating"
    PENDING_ACTIVATION = "pending_activation"
    IMPORTED = "imported"
    FAILED = "failed"


# Only legitimate while an import run is executing in this process.
TRANSIENT_STATUSES = (ImportStatus.IMPORTING, ImportStatus.UPDATING)


class WorkflowRegistryEntry(TimestampMixin, Base):
    """One row per bundled workflow file, keyed by filename."""

    __tablename__ = "workflow_registry"
    __table_args__ = (
        Index("ix_workflow_registry_import_status", "import_status"),
        Index("ix_workflow_registry_n8n_workflow_id", "n8n_workflow_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    workflow_file: Mapped[str] = mapped_column(String(length=255), unique=True, nullable=False)
    workflow_name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    n8n_workflow_id: Mapped[Optional[str]] = mapped_column(String(length=100), nullable=True)
    local_version: Mapped[str] = mapped_column(String(length=50), nullable=False, default="")
    local_checksum: Mapped[Optional[str]] = mapped_column(String(length=64), nullable=True)
    trigger_paths: Mapped[list] = mapped_column(JSONList, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    import_status: Mapped[ImportStatus] = mapped_column(
        SqlEnum(
            ImportStatus,
            name="workflow_import_status",
            native_enum=False,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=ImportStatus.PENDING,
    )
    last_import_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def short_checksum(self) -> Optional[str]:
        return self.local_checksum[:8] if self.local_checksum else None

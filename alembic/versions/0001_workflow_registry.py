"""Workflow registry table."""

from __future__ import annotations
from typing import Union, Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_workflow_registry"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create workflow_registry keyed by workflow filename."""
    import_status_ref = sa.Enum(
        "pending",
        "importing",
        "updating",
        "pending_activation",
        "imported",
        "failed",
        name="workflow_import_status",
        native_enum=False,
    )

    op.create_table(
        "workflow_registry",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workflow_file", sa.String(length=255), nullable=False),
        sa.Column("workflow_name", sa.String(length=255), nullable=False),
        sa.Column("n8n_workflow_id", sa.String(length=100), nullable=True),
        sa.Column("local_version", sa.String(length=50), nullable=False),
        sa.Column("local_checksum", sa.String(length=64), nullable=True),
        sa.Column(
            "trigger_paths",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("import_status", import_status_ref, nullable=False),
        sa.Column("last_import_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_workflow_registry")),
        sa.UniqueConstraint("workflow_file", name=op.f("uq_workflow_registry_workflow_file")),
    )
    op.create_index("ix_workflow_registry_import_status", "workflow_registry", ["import_status"], unique=False)
    op.create_index("ix_workflow_registry_n8n_workflow_id", "workflow_registry", ["n8n_workflow_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_workflow_registry_n8n_workflow_id", table_name="workflow_registry")
    op.drop_index("ix_workflow_registry_import_status", table_name="workflow_registry")
    op.drop_table("workflow_registry")

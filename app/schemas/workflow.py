"""Workflow import API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.workflow_registry import ImportStatus
from app.workflow_import.changes import ImportAction
from app.workflow_import.cleanup import CleanupPolicy
from app.workflow_import.orchestrator import ImportPhase, RunStatus


class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class RegistryEntryResponse(_FromAttributes):
    id: UUID
    workflow_file: str
    workflow_name: str
    n8n_workflow_id: Optional[str]
    local_version: str
    local_checksum: Optional[str]
    trigger_paths: List[str]
    is_active: bool
    import_status: ImportStatus
    last_import_at: Optional[datetime]
    last_error: Optional[str]
    retry_count: int
    created_at: datetime
    updated_at: datetime


class WorkflowStatusResponse(_FromAttributes):
    filename: str
    name: str
    local_version: str
    n8n_workflow_id: Optional[str]
    is_active: bool
    import_status: ImportStatus
    trigger_paths: List[str]
    has_credentials: bool
    last_import_at: Optional[datetime]
    last_error: Optional[str]


class UpdateCheckResponse(_FromAttributes):
    filename: str
    name: str
    current_version: str
    new_version: str
    has_update: bool


class DependencyNodeResponse(_FromAttributes):
    filename: str
    name: str
    dependencies: List[str]


class DependencyGraphResponse(BaseModel):
    workflows: List[DependencyNodeResponse]
    has_cycle: bool
    cycles: List[List[str]]
    order: List[str]


class DependencyAnalysisResponse(_FromAttributes):
    has_cycle: bool
    cycles: List[List[str]]
    order: List[str]


class ValidationResponse(_FromAttributes):
    valid: bool
    workflow_count: int
    credential_workflows: int
    dependencies: DependencyAnalysisResponse
    errors: List[str]
    warnings: List[str]


class DryRunRequest(BaseModel):
    force_update: bool = False


class DryRunWorkflowResponse(_FromAttributes):
    filename: str
    name: str
    action: ImportAction
    reason: str
    current_version: Optional[str]
    new_version: str
    node_count: int
    has_credentials: bool
    trigger_paths: List[str]
    dependencies: List[str]


class DryRunSummaryResponse(_FromAttributes):
    total: int
    to_create: int
    to_update: int
    to_skip: int


class DryRunResponse(_FromAttributes):
    valid: bool
    validation: ValidationResponse
    workflows: List[DryRunWorkflowResponse]
    summary: DryRunSummaryResponse
    import_order: List[str]


class ImportRequest(BaseModel):
    """Options for an import run."""

    force_update: bool = False
    validate_first: bool = False
    cleanup_on_activation_failure: bool = False
    cleanup_policy: CleanupPolicy = Field(default=CleanupPolicy.DEACTIVATE)


class ImportResultResponse(_FromAttributes):
    filename: str
    status: str
    workflow_id: Optional[str]
    trigger_paths: List[str]
    error: Optional[str]


class FailedActivationResponse(_FromAttributes):
    filename: str
    workflow_id: str
    error: str
    cleaned: Optional[bool]


class ImportProgressResponse(_FromAttributes):
    total: int
    completed: int
    current: str
    status: RunStatus
    phase: Optional[ImportPhase]
    results: List[ImportResultResponse]
    failed_activations: List[FailedActivationResponse]


class SyncResultResponse(_FromAttributes):
    filename: str
    workflow_name: str
    action: str
    previous_status: Optional[str]
    new_status: Optional[str]
    error: Optional[str]


class SyncProgressResponse(_FromAttributes):
    total: int
    synced: int
    deleted: int
    state_changed: int
    errors: int
    results: List[SyncResultResponse]


class FixStuckResponse(BaseModel):
    reset_count: int


class CleanupRequest(BaseModel):
    policy: CleanupPolicy = CleanupPolicy.DEACTIVATE


class CleanupResultResponse(_FromAttributes):
    filename: str
    workflow_id: str
    action: str
    error: Optional[str]

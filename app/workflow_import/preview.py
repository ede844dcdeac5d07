"""Read-only views: pre-import validation, dry-run preview, update check and status."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from app.models.workflow_registry import ImportStatus
from app.workflow_import.changes import ChangeDetector, ImportAction
from app.workflow_import.dependencies import DependencyAnalysis, DependencyGraphAnalyzer
from app.workflow_import.loader import BundledDefinitionLoader, validate_workflows_directory
from app.workflow_import.registry import WorkflowRegistryStore

logger = logging.getLogger("app.workflow_import.preview")


@dataclass
class PreImportValidation:
    valid: bool = True
    workflow_count: int = 0
    credential_workflows: int = 0
    dependencies: DependencyAnalysis = field(default_factory=DependencyAnalysis)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class DryRunWorkflow:
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


@dataclass
class DryRunSummary:
    total: int = 0
    to_create: int = 0
    to_update: int = 0
    to_skip: int = 0


@dataclass
class DryRunResult:
    valid: bool
    validation: PreImportValidation
    workflows: List[DryRunWorkflow]
    summary: DryRunSummary
    import_order: List[str]


@dataclass
class UpdateCheck:
    filename: str
    name: str
    current_version: str
    new_version: str
    has_update: bool


@dataclass
class WorkflowStatus:
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


def validate_pre_import(loader: BundledDefinitionLoader) -> PreImportValidation:
    """Checks the workflows directory, that something loads, and that dependencies are acyclic."""

    result = PreImportValidation()

    directory = validate_workflows_directory(loader.workflows_dir)
    if not directory.valid:
        result.valid = False
        result.errors.append(directory.error or "Workflows directory is not valid")
        return result

    workflows = loader.load()
    result.workflow_count = len(workflows)
    if not workflows:
        result.valid = False
        result.errors.append("No workflows found to validate")
        return result

    missing = len(loader.import_order) - len(workflows)
    if missing:
        result.warnings.append(f"{missing} workflow file(s) in the import order could not be loaded")

    result.credential_workflows = sum(1 for workflow in workflows if workflow.has_credentials)
    if result.credential_workflows:
        result.warnings.append(
            f"{result.credential_workflows} workflow(s) require manual credential configuration in n8n"
        )

    result.dependencies = DependencyGraphAnalyzer(workflows).analyze()
    if result.dependencies.has_cycle:
        result.valid = False
        result.errors.append(f"Circular dependencies detected: {result.dependencies.describe_cycles()}")

    logger.info(
        "workflow_pre_import_validated",
        extra={"valid": result.valid, "errors": len(result.errors), "warnings": len(result.warnings)},
    )
    return result


def dry_run(
    loader: BundledDefinitionLoader,
    store: WorkflowRegistryStore,
    *,
    force_update: bool = False,
) -> DryRunResult:
    """Preview what an import would do without touching n8n or the registry."""

    validation = validate_pre_import(loader)
    detector = ChangeDetector(force_update=force_update)
    registry = store.by_filename()

    summary = DryRunSummary()
    previews: List[DryRunWorkflow] = []
    for workflow in loader.load():
        entry = registry.get(workflow.filename)
        decision = detector.decide(workflow, entry)
        if decision.action is ImportAction.CREATE:
            summary.to_create += 1
        elif decision.action is ImportAction.UPDATE:
            summary.to_update += 1
        else:
            summary.to_skip += 1

        previews.append(
            DryRunWorkflow(
                filename=workflow.filename,
                name=workflow.name,
                action=decision.action,
                reason=decision.reason,
                current_version=entry.short_checksum if entry else None,
                new_version=workflow.short_version,
                node_count=workflow.node_count,
                has_credentials=workflow.has_credentials,
                trigger_paths=list(workflow.trigger_paths),
                dependencies=list(workflow.dependencies),
            )
        )
    summary.total = len(previews)

    logger.info(
        "workflow_dry_run_completed",
        extra={
            "total": summary.total,
            "to_create": summary.to_create,
            "to_update": summary.to_update,
            "to_skip": summary.to_skip,
            "valid": validation.valid,
        },
    )
    return DryRunResult(
        valid=validation.valid,
        validation=validation,
        workflows=previews,
        summary=summary,
        import_order=list(validation.dependencies.order),
    )


def check_for_updates(loader: BundledDefinitionLoader, store: WorkflowRegistryStore) -> List[UpdateCheck]:
    registry = store.by_filename()
    checks: List[UpdateCheck] = []
    for workflow in loader.load():
        entry = registry.get(workflow.filename)
        checks.append(
            UpdateCheck(
                filename=workflow.filename,
                name=workflow.name,
                current_version=(entry.short_checksum if entry else None) or "not imported",
                new_version=workflow.short_version,
                has_update=(
                    entry is None
                    or entry.import_status != ImportStatus.IMPORTED
                    or entry.local_checksum != workflow.checksum
                ),
            )
        )
    return checks


def get_workflow_status(loader: BundledDefinitionLoader, store: WorkflowRegistryStore) -> List[WorkflowStatus]:
    """Bundled workflows joined with their registry rows."""

    registry = store.by_filename()
    statuses: List[WorkflowStatus] = []
    for workflow in loader.load():
        entry = registry.get(workflow.filename)
        statuses.append(
            WorkflowStatus(
                filename=workflow.filename,
                name=workflow.name,
                local_version=workflow.short_version,
                n8n_workflow_id=entry.n8n_workflow_id if entry else None,
                is_active=entry.is_active if entry else False,
                import_status=ImportStatus(entry.import_status) if entry else ImportStatus.PENDING,
                trigger_paths=list(entry.trigger_paths or workflow.trigger_paths) if entry else list(workflow.trigger_paths),
                has_credentials=workflow.has_credentials,
                last_import_at=entry.last_import_at if entry else None,
                last_error=entry.last_error if entry else None,
            )
        )
    return statuses

"""Service layer wiring the import engine to settings, the registry and n8n."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import AppSettings, get_settings
from app.models.workflow_registry import ImportStatus, WorkflowRegistryEntry
from app.workflow_import.cleanup import CleanupManager, CleanupPolicy, CleanupResult, FailedActivation
from app.workflow_import.client import N8nClient
from app.workflow_import.config import get_activation_retry_policy, get_import_timings, get_n8n_config
from app.workflow_import.dependencies import DependencyAnalysis, DependencyGraphAnalyzer
from app.workflow_import.errors import N8nNotConfiguredError
from app.workflow_import.guard import RunGuard
from app.workflow_import.loader import BundledDefinitionLoader, BundledWorkflow
from app.workflow_import.orchestrator import (
    ImportOptions,
    ImportProgress,
    ImportResult,
    ProgressObserver,
    TwoPhaseImportOrchestrator,
)
from app.workflow_import.preview import (
    DryRunResult,
    PreImportValidation,
    UpdateCheck,
    WorkflowStatus,
    check_for_updates,
    dry_run,
    get_workflow_status,
    validate_pre_import,
)
from app.workflow_import.reconciler import RegistrySyncReconciler, SyncProgress
from app.workflow_import.recovery import StuckImportRecovery
from app.workflow_import.registry import WorkflowRegistryStore


class WorkflowImportService:
    """Entry point used by the API routers and the CLI.

    Every operation that writes the registry runs under the shared ``RunGuard``.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: Optional[AppSettings] = None,
        guard: Optional[RunGuard] = None,
        client: Optional[N8nClient] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = WorkflowRegistryStore(session)
        self._guard = guard or RunGuard()
        self._client = client
        self._loader = BundledDefinitionLoader(
            Path(self._settings.workflows_dir),
            list(self._settings.workflow_import_order),
        )
        self._logger = logging.getLogger("app.workflow_import.service")

    @property
    def store(self) -> WorkflowRegistryStore:
        return self._store

    @property
    def loader(self) -> BundledDefinitionLoader:
        return self._loader

    def client(self) -> N8nClient:
        if self._client is None:
            config = get_n8n_config(self._settings)
            if config is None:
                raise N8nNotConfiguredError()
            self._client = N8nClient(config, timeout=self._settings.n8n_request_timeout)
        return self._client

    def bundled(self) -> List[BundledWorkflow]:
        return self._loader.load()

    def status(self) -> List[WorkflowStatus]:
        return get_workflow_status(self._loader, self._store)

    def registry(self) -> List[WorkflowRegistryEntry]:
        return self._store.list_entries()

    def updates(self) -> List[UpdateCheck]:
        return check_for_updates(self._loader, self._store)

    def dependencies(self) -> Tuple[List[BundledWorkflow], DependencyAnalysis]:
        workflows = self._loader.load()
        return workflows, DependencyGraphAnalyzer(workflows).analyze()

    def validate(self) -> PreImportValidation:
        return validate_pre_import(self._loader)

    def dry_run(self, *, force_update: bool = False) -> DryRunResult:
        return dry_run(self._loader, self._store, force_update=force_update)

    def _orchestrator(
        self,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        observer: Optional[ProgressObserver] = None,
    ) -> TwoPhaseImportOrchestrator:
        return TwoPhaseImportOrchestrator(
            self.client(),
            self._store,
            self._loader,
            timings=get_import_timings(self._settings),
            retry_policy=get_activation_retry_policy(self._settings),
            cancel_event=cancel_event,
            observer=observer,
        )

    async def import_workflows(
        self,
        options: Optional[ImportOptions] = None,
        *,
        observer: Optional[ProgressObserver] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ImportProgress:
        orchestrator = self._orchestrator(cancel_event=cancel_event, observer=observer)
        with self._guard.hold("import"):
            return await orchestrator.run(options)

    async def sync(self) -> SyncProgress:
        reconciler = RegistrySyncReconciler(self.client(), self._store)
        with self._guard.hold("sync"):
            return await reconciler.sync()

    def fix_stuck(self) -> int:
        return StuckImportRecovery(self._store, guard=self._guard).run()

    async def retry_activations(self) -> List[ImportResult]:
        orchestrator = self._orchestrator()
        with self._guard.hold("retry-activations"):
            return await orchestrator.retry_failed_activations()

    async def cleanup(self, policy: CleanupPolicy = CleanupPolicy.DEACTIVATE) -> List[CleanupResult]:
        """Apply a cleanup policy to every failed registry row that still has a remote workflow."""

        manager = CleanupManager(self.client(), self._store, policy=policy)
        with self._guard.hold("cleanup"):
            failed = [
                FailedActivation(
                    entry.workflow_file,
                    entry.n8n_workflow_id,
                    (entry.last_error or "").removeprefix("Activation failed: "),
                )
                for entry in self._store.list_entries(statuses=[ImportStatus.FAILED])
                if entry.n8n_workflow_id
            ]
            self._logger.info("workflow_cleanup_requested", extra={"count": len(failed), "policy": policy.value})
            return await manager.cleanup(failed)

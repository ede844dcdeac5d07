"""Two-phase (create all, then activate in dependency order) import of bundled workflows."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from app.models.workflow_registry import ImportStatus
from app.workflow_import.changes import ChangeDetector, ImportAction
from app.workflow_import.cleanup import CleanupManager, CleanupPolicy, FailedActivation
from app.workflow_import.config import ImportTimings
from app.workflow_import.dependencies import DependencyGraphAnalyzer
from app.workflow_import.errors import ImportCancelledError, N8nApiError, WorkflowImportError
from app.workflow_import.loader import BundledDefinitionLoader, BundledWorkflow
from app.workflow_import.preview import validate_pre_import
from app.workflow_import.registry import WorkflowRegistryStore
from app.workflow_import.retry import ActivationRetryEngine, RetryPolicy, pause, raise_if_cancelled
from app.workflow_import.rollback import CreatedWorkflow, RollbackManager

if TYPE_CHECKING:
    from app.workflow_import.client import N8nClient

logger = logging.getLogger("app.workflow_import.orchestrator")


class RunStatus(str, Enum):
    PENDING = "pending"
    IMPORTING = "importing"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


class ImportPhase(str, Enum):
    VALIDATING = "validating"
    CREATING = "creating"
    ACTIVATING = "activating"
    CLEANING = "cleaning"


# Per-workflow result statuses that make the whole run an error.
FAILED_RESULT_STATUSES = frozenset({"failed", "activation_failed"})


@dataclass
class ImportResult:
    filename: str
    status: str
    workflow_id: Optional[str] = None
    trigger_paths: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ImportProgress:
    """Run-level aggregate pushed to the observer after every state change.

    ``total`` and ``completed`` count the work of the current phase: every bundled
    workflow while creating, only the created or updated ones while activating.
    """

    total: int = 0
    completed: int = 0
    current: str = ""
    status: RunStatus = RunStatus.PENDING
    phase: Optional[ImportPhase] = None
    results: List[ImportResult] = field(default_factory=list)
    failed_activations: List[FailedActivation] = field(default_factory=list)

    def result_for(self, filename: str) -> Optional[ImportResult]:
        for result in self.results:
            if result.filename == filename:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["phase"] = self.phase.value if self.phase else None
        return data


@dataclass
class ImportOptions:
    force_update: bool = False
    validate_first: bool = False
    cleanup_on_activation_failure: bool = False
    cleanup_policy: CleanupPolicy = CleanupPolicy.DEACTIVATE


@dataclass
class _PendingActivation:
    filename: str
    name: str
    workflow_id: str


ProgressObserver = Callable[[ImportProgress], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TwoPhaseImportOrchestrator:
    """
    Deploys bundled workflows to n8n.

    Phase 1 creates or updates every changed workflow (inactive) in the
    declared file order; any failure there aborts the run and rolls back the
    workflows created so far. Phase 2 activates the Phase 1 workflows in
    dependency order so referenced subworkflows are active first; a failed
    activation is recorded and the batch continues.

    Workflows are processed strictly one at a time.
    """

    def __init__(
        self,
        client: "N8nClient",
        store: WorkflowRegistryStore,
        loader: BundledDefinitionLoader,
        *,
        timings: Optional[ImportTimings] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_event: Optional[asyncio.Event] = None,
        observer: Optional[ProgressObserver] = None,
    ) -> None:
        self._client = client
        self._store = store
        self._loader = loader
        self._timings = timings or ImportTimings()
        self._cancel_event = cancel_event
        self._observer = observer
        self._activator = ActivationRetryEngine(
            client,
            retry_policy or RetryPolicy(),
            cancel_event=cancel_event,
        )

    def _notify(self, progress: ImportProgress) -> None:
        if self._observer is None:
            return
        try:
            self._observer(progress)
        except Exception:  # noqa: BLE001
            logger.exception("workflow_import_observer_failed")

    async def run(self, options: Optional[ImportOptions] = None) -> ImportProgress:
        options = options or ImportOptions()
        bundled = self._loader.load()
        progress = ImportProgress(total=len(bundled))

        logger.info(
            "workflow_import_started",
            extra={
                "total": progress.total,
                "force_update": options.force_update,
                "validate_first": options.validate_first,
                "cleanup_on_activation_failure": options.cleanup_on_activation_failure,
            },
        )

        if options.validate_first:
            progress.phase = ImportPhase.VALIDATING
            progress.current = "Validating..."
            self._notify(progress)
            validation = validate_pre_import(self._loader)
            if not validation.valid:
                return self._finish_early(progress, "validation", "; ".join(validation.errors))

        analysis = DependencyGraphAnalyzer(bundled).analyze()
        if analysis.has_cycle:
            return self._finish_early(
                progress,
                "dependencies",
                f"Circular dependencies detected: {analysis.describe_cycles()}",
            )

        progress.status = RunStatus.IMPORTING
        try:
            pending = await self._phase_one(bundled, progress, options)
        except ImportCancelledError:
            progress.status = RunStatus.CANCELLED
            return self._finalize(progress)
        if pending is None:
            progress.status = RunStatus.ERROR
            return self._finalize(progress)

        rank = {name: index for index, name in enumerate(analysis.order)}
        pending.sort(key=lambda item: rank.get(item.name, len(rank)))
        cancelled = await self._phase_two(pending, progress)

        if options.cleanup_on_activation_failure and progress.failed_activations and not cancelled:
            await self._phase_three(progress, options.cleanup_policy)

        if cancelled:
            progress.status = RunStatus.CANCELLED
        elif any(result.status in FAILED_RESULT_STATUSES for result in progress.results):
            progress.status = RunStatus.ERROR
        else:
            progress.status = RunStatus.COMPLETE
        return self._finalize(progress)

    def _finish_early(self, progress: ImportProgress, label: str, error: str) -> ImportProgress:
        logger.error("workflow_import_refused", extra={"reason": label, "error": error})
        progress.results.append(ImportResult(filename=label, status="failed", error=error))
        progress.status = RunStatus.ERROR
        return self._finalize(progress)

    def _finalize(self, progress: ImportProgress) -> ImportProgress:
        progress.current = ""
        progress.phase = None
        counts: Dict[str, int] = {}
        for result in progress.results:
            counts[result.status] = counts.get(result.status, 0) + 1
        logger.info(
            "workflow_import_finished",
            extra={
                "status": progress.status.value,
                "total": progress.total,
                "results": counts,
                "activation_failed": len(progress.failed_activations),
            },
        )
        self._notify(progress)
        return progress

    async def _phase_one(
        self,
        bundled: List[BundledWorkflow],
        progress: ImportProgress,
        options: ImportOptions,
    ) -> Optional[List[_PendingActivation]]:
        """Create/update every changed workflow; returns None when the phase aborted."""

        progress.phase = ImportPhase.CREATING
        detector = ChangeDetector(force_update=options.force_update)
        created: List[CreatedWorkflow] = []
        snapshots: Dict[str, Optional[Dict[str, Any]]] = {}
        pending: List[_PendingActivation] = []

        logger.info("workflow_import_phase1_started", extra={"total": len(bundled)})
        for workflow in bundled:
            progress.current = workflow.filename
            self._notify(progress)

            try:
                raise_if_cancelled(self._cancel_event)
                entry = self._store.get(workflow.filename)
                decision = detector.decide(workflow, entry)
                if decision.action is ImportAction.SKIP:
                    logger.info("workflow_import_skipped", extra={"workflow_file": workflow.filename})
                    progress.results.append(
                        ImportResult(
                            filename=workflow.filename,
                            status="skipped",
                            workflow_id=entry.n8n_workflow_id if entry else None,
                            trigger_paths=list(entry.trigger_paths or []) if entry else [],
                        )
                    )
                    progress.completed += 1
                    self._notify(progress)
                    continue

                snapshot = self._store.snapshot(workflow.filename)
                result, was_created = await self._create_or_update(workflow, entry is not None and bool(entry.n8n_workflow_id))
            except WorkflowImportError as exc:
                cancelled = isinstance(exc, ImportCancelledError)
                if not cancelled:
                    self._record_phase_one_failure(workflow, exc, progress)
                logger.error(
                    "workflow_import_phase1_aborted",
                    extra={
                        "failed_at": workflow.filename,
                        "error": str(exc),
                        "to_rollback": len(created),
                    },
                )
                await self._rollback(created, snapshots, progress)
                if cancelled:
                    raise
                return None

            if was_created:
                created.append(CreatedWorkflow(workflow.filename, result.workflow_id, workflow.name))
            else:
                snapshots[workflow.filename] = snapshot
            pending.append(_PendingActivation(workflow.filename, workflow.name, result.workflow_id))
            progress.results.append(result)
            progress.completed += 1
            self._notify(progress)

            try:
                await pause(self._timings.phase1_delay, self._cancel_event)
            except ImportCancelledError:
                await self._rollback(created, snapshots, progress)
                raise

        return pending

    async def _create_or_update(self, workflow: BundledWorkflow, has_remote_id: bool) -> tuple[ImportResult, bool]:
        payload, checksum = self._loader.read_workflow_file(workflow.filename)
        self._store.upsert(
            workflow.filename,
            workflow_name=workflow.name,
            local_version=checksum[:8],
            local_checksum=checksum,
            import_status=ImportStatus.UPDATING if has_remote_id else ImportStatus.IMPORTING,
        )

        existing = await self._client.find_workflow_by_name(workflow.name)
        if existing:
            remote = await self._client.update_workflow(str(existing["id"]), payload)
            remote_id = str(remote.get("id") or existing["id"])
            status = "updated"
        else:
            remote = await self._client.create_workflow(payload)
            if not remote.get("id"):
                raise N8nApiError("n8n API returned a workflow without an id", response=remote)
            remote_id = str(remote["id"])
            status = "created"

        trigger_paths = list(workflow.trigger_paths)
        self._store.upsert(
            workflow.filename,
            workflow_name=workflow.name,
            n8n_workflow_id=remote_id,
            local_version=checksum[:8],
            local_checksum=checksum,
            trigger_paths=trigger_paths,
            is_active=False,
            import_status=ImportStatus.PENDING_ACTIVATION,
            last_import_at=_now(),
            last_error=None,
        )
        logger.info(
            "workflow_import_phase1_saved",
            extra={"workflow_file": workflow.filename, "workflow_id": remote_id, "action": status},
        )
        return ImportResult(workflow.filename, status, remote_id, trigger_paths), status == "created"

    def _record_phase_one_failure(self, workflow: BundledWorkflow, exc: Exception, progress: ImportProgress) -> None:
        message = str(exc)
        self._store.upsert(
            workflow.filename,
            workflow_name=workflow.name,
            is_active=False,
            import_status=ImportStatus.FAILED,
            last_error=message,
            retry_count=self._store.increment_retry_count(workflow.filename),
        )
        progress.results.append(ImportResult(filename=workflow.filename, status="failed", error=message))

    async def _rollback(
        self,
        created: List[CreatedWorkflow],
        snapshots: Dict[str, Optional[Dict[str, Any]]],
        progress: ImportProgress,
    ) -> None:
        if not created and not snapshots:
            return
        outcome = await RollbackManager(self._client, self._store).rollback(created, snapshots=snapshots)
        for filename in outcome.deleted:
            result = progress.result_for(filename)
            if result is not None:
                result.status = "rolled_back"
        for filename, error in outcome.failed.items():
            result = progress.result_for(filename)
            if result is not None:
                result.status = "failed"
                result.error = f"Rollback failed: {error}"

    async def _phase_two(self, pending: List[_PendingActivation], progress: ImportProgress) -> bool:
        """Activate in dependency order; returns True when the run was cancelled."""

        progress.phase = ImportPhase.ACTIVATING
        progress.total = len(pending)
        progress.completed = 0
        logger.info("workflow_import_phase2_started", extra={"to_activate": len(pending)})

        for item in pending:
            progress.current = item.filename
            self._notify(progress)
            result = progress.result_for(item.filename)

            try:
                await self._activator.activate(item.workflow_id, workflow_name=item.name)
            except ImportCancelledError:
                logger.warning("workflow_import_cancelled", extra={"workflow_file": item.filename})
                return True
            except WorkflowImportError as exc:
                message = str(exc)
                logger.error(
                    "workflow_activation_failed",
                    extra={"workflow_file": item.filename, "workflow_id": item.workflow_id, "error": message},
                )
                progress.failed_activations.append(FailedActivation(item.filename, item.workflow_id, message))
                self._store.upsert(
                    item.filename,
                    is_active=False,
                    import_status=ImportStatus.FAILED,
                    last_error=f"Activation failed: {message}",
                    retry_count=self._store.increment_retry_count(item.filename),
                )
                if result is not None:
                    result.status = "activation_failed"
                    result.error = f"Activation failed: {message}"
            else:
                self._store.upsert(
                    item.filename,
                    is_active=True,
                    import_status=ImportStatus.IMPORTED,
                    last_import_at=_now(),
                    last_error=None,
                )
                if result is not None:
                    result.status = "imported"
                logger.info(
                    "workflow_activated",
                    extra={"workflow_file": item.filename, "workflow_id": item.workflow_id},
                )

            progress.completed += 1
            self._notify(progress)

            try:
                await pause(self._timings.phase2_delay, self._cancel_event)
            except ImportCancelledError:
                return True
        return False

    async def _phase_three(self, progress: ImportProgress, policy: CleanupPolicy) -> None:
        progress.phase = ImportPhase.CLEANING
        progress.current = "Cleaning up..."
        self._notify(progress)

        manager = CleanupManager(self._client, self._store, policy=policy)
        outcomes = {outcome.filename: outcome for outcome in await manager.cleanup(progress.failed_activations)}
        for failed in progress.failed_activations:
            outcome = outcomes.get(failed.filename)
            failed.cleaned = bool(outcome and outcome.ok)

    async def retry_failed_activations(self) -> List[ImportResult]:
        """Re-activate registry rows left in ``failed`` that still have a remote workflow."""

        entries = [
            entry
            for entry in self._store.list_entries(statuses=[ImportStatus.FAILED])
            if entry.n8n_workflow_id
        ]
        logger.info("workflow_activation_retry_started", extra={"count": len(entries)})

        results: List[ImportResult] = []
        for entry in entries:
            filename, workflow_id = entry.workflow_file, entry.n8n_workflow_id
            try:
                await self._activator.activate(workflow_id, workflow_name=entry.workflow_name)
            except ImportCancelledError:
                break
            except WorkflowImportError as exc:
                message = str(exc)
                self._store.upsert(
                    filename,
                    is_active=False,
                    import_status=ImportStatus.FAILED,
                    last_error=f"Retry activation failed: {message}",
                    retry_count=self._store.increment_retry_count(filename),
                )
                results.append(ImportResult(filename, "activation_failed", workflow_id, error=message))
                logger.error(
                    "workflow_activation_retry_failed",
                    extra={"workflow_file": filename, "workflow_id": workflow_id, "error": message},
                )
            else:
                self._store.upsert(
                    filename,
                    is_active=True,
                    import_status=ImportStatus.IMPORTED,
                    last_import_at=_now(),
                    last_error=None,
                )
                results.append(ImportResult(filename, "imported", workflow_id))
                logger.info(
                    "workflow_activation_retry_succeeded",
                    extra={"workflow_file": filename, "workflow_id": workflow_id},
                )

            try:
                await pause(self._timings.phase2_delay, self._cancel_event)
            except ImportCancelledError:
                break
        return results

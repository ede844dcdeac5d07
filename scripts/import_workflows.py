#!/usr/bin/env python
"""CLI for importing bundled workflows into n8n and syncing the registry."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from app.core.config import get_settings
from app.core.database import session_scope
from app.core.logging import configure_logging
from app.workflow_import.cleanup import CleanupPolicy
from app.workflow_import.errors import WorkflowImportError
from app.workflow_import.orchestrator import ImportOptions, ImportProgress, RunStatus
from app.workflow_import.service import WorkflowImportService

logger = logging.getLogger("scripts.import_workflows")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import bundled n8n workflows and keep the registry in sync.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    commands = parser.add_subparsers(dest="command", required=True)

    import_cmd = commands.add_parser("import", help="Create/update then activate all bundled workflows.")
    import_cmd.add_argument("--force", action="store_true", help="Update workflows even when unchanged.")
    import_cmd.add_argument(
        "--cleanup",
        choices=[policy.value for policy in CleanupPolicy],
        default=None,
        help="Clean up workflows whose activation failed using this policy.",
    )
    import_cmd.add_argument("--validate-first", action="store_true", help="Run pre-import validation first.")

    commands.add_parser("sync", help="Reconcile the registry with the live n8n instance.")
    commands.add_parser("fix-stuck", help="Reset registry rows left in importing/updating.")
    commands.add_parser("retry-activations", help="Re-activate workflows whose activation failed.")

    dry_run_cmd = commands.add_parser("dry-run", help="Preview an import without changing anything.")
    dry_run_cmd.add_argument("--force", action="store_true", help="Preview a forced update.")
    return parser.parse_args(argv)


def _log_progress(progress: ImportProgress) -> None:
    if progress.current:
        logger.debug(
            "import_progress",
            extra={"phase": progress.phase, "current": progress.current, "completed": progress.completed},
        )


async def _run(args: argparse.Namespace, service: WorkflowImportService) -> int:
    if args.command == "import":
        options = ImportOptions(
            force_update=args.force,
            validate_first=args.validate_first,
            cleanup_on_activation_failure=args.cleanup is not None,
            cleanup_policy=CleanupPolicy(args.cleanup or CleanupPolicy.DEACTIVATE.value),
        )
        progress = await service.import_workflows(options, observer=_log_progress)
        for result in progress.results:
            logging.info("%-60s %s%s", result.filename, result.status, f" ({result.error})" if result.error else "")
        logging.info("Import finished with status %s", progress.status.value)
        return 0 if progress.status is RunStatus.COMPLETE else 1

    if args.command == "sync":
        sync = await service.sync()
        logging.info(
            "Registry sync: %s checked, %s deleted remotely, %s state changes, %s errors",
            sync.total,
            sync.deleted,
            sync.state_changed,
            sync.errors,
        )
        return 0 if sync.errors == 0 else 1

    if args.command == "fix-stuck":
        logging.info("Reset %s stuck import(s)", service.fix_stuck())
        return 0

    if args.command == "retry-activations":
        results = await service.retry_activations()
        for result in results:
            logging.info("%-60s %s", result.filename, result.status)
        return 0 if all(result.status == "imported" for result in results) else 1

    preview = service.dry_run(force_update=args.force)
    for item in preview.workflows:
        logging.info("%-8s %-60s %s", item.action.value, item.filename, item.reason)
    for error in preview.validation.errors:
        logging.error("Validation error: %s", error)
    logging.info(
        "Dry run: %s to create, %s to update, %s to skip",
        preview.summary.to_create,
        preview.summary.to_update,
        preview.summary.to_skip,
    )
    return 0 if preview.valid else 1


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    if args.verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    configure_logging(settings)

    try:
        with session_scope() as session:
            return asyncio.run(_run(args, WorkflowImportService(session, settings=settings)))
    except WorkflowImportError as exc:
        logging.error("Workflow command failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())

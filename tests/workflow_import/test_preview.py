from __future__ import annotations

from app.models.workflow_registry import ImportStatus
from app.workflow_import.changes import ImportAction
from app.workflow_import.loader import BundledDefinitionLoader, calculate_checksum
from app.workflow_import.preview import check_for_updates, dry_run, get_workflow_status, validate_pre_import


def _import(store, workflows_dir, filename: str, name: str) -> None:
    checksum = calculate_checksum((workflows_dir / filename).read_bytes())
    store.upsert(
        filename,
        workflow_name=name,
        n8n_workflow_id=f"wf-{name}",
        local_checksum=checksum,
        local_version=checksum[:8],
        import_status=ImportStatus.IMPORTED,
        is_active=True,
    )


def test_validation_warns_about_credentials_and_missing_files(workflows_dir, write_workflow) -> None:
    write_workflow("a.json", "A", credentials=True)
    write_workflow("b.json", "B", depends_on=["A"])

    result = validate_pre_import(BundledDefinitionLoader(workflows_dir, ["a.json", "b.json", "gone.json"]))

    assert result.valid is True
    assert result.workflow_count == 2
    assert result.credential_workflows == 1
    assert len(result.warnings) == 2
    assert result.dependencies.order == ["A", "B"]


def test_validation_fails_on_cycle(workflows_dir, write_workflow) -> None:
    write_workflow("a.json", "A", depends_on=["B"])
    write_workflow("b.json", "B", depends_on=["A"])

    result = validate_pre_import(BundledDefinitionLoader(workflows_dir, ["a.json", "b.json"]))

    assert result.valid is False
    assert result.errors[0].startswith("Circular dependencies detected:")


def test_validation_fails_when_nothing_loads(workflows_dir) -> None:
    (workflows_dir / "broken.json").write_text("{")

    result = validate_pre_import(BundledDefinitionLoader(workflows_dir, ["broken.json"]))

    assert result.valid is False
    assert result.errors == ["No workflows found to validate"]


def test_dry_run_previews_actions_without_side_effects(workflows_dir, write_workflow, store) -> None:
    write_workflow("a.json", "A")
    write_workflow("b.json", "B")
    write_workflow("c.json", "C", depends_on=["A"])
    _import(store, workflows_dir, "a.json", "A")
    _import(store, workflows_dir, "b.json", "B")
    write_workflow("b.json", "B", webhook_path="changed")

    result = dry_run(BundledDefinitionLoader(workflows_dir, ["a.json", "b.json", "c.json"]), store)

    assert result.valid is True
    by_file = {workflow.filename: workflow for workflow in result.workflows}
    assert by_file["a.json"].action is ImportAction.SKIP
    assert by_file["b.json"].action is ImportAction.UPDATE
    assert by_file["b.json"].reason == "Workflow content changed (checksum mismatch)"
    assert by_file["c.json"].action is ImportAction.CREATE
    assert by_file["c.json"].current_version is None
    assert by_file["c.json"].dependencies == ["A"]
    assert (result.summary.total, result.summary.to_create, result.summary.to_update, result.summary.to_skip) == (3, 1, 1, 1)
    assert result.import_order.index("A") < result.import_order.index("C")
    assert store.get("c.json") is None


def test_dry_run_force_update(workflows_dir, write_workflow, store) -> None:
    write_workflow("a.json", "A")
    _import(store, workflows_dir, "a.json", "A")

    result = dry_run(BundledDefinitionLoader(workflows_dir, ["a.json"]), store, force_update=True)

    assert result.workflows[0].reason == "Force update requested"
    assert result.summary.to_update == 1


def test_check_for_updates(workflows_dir, write_workflow, store) -> None:
    write_workflow("a.json", "A")
    write_workflow("b.json", "B")
    _import(store, workflows_dir, "a.json", "A")

    checks = {check.filename: check for check in check_for_updates(BundledDefinitionLoader(workflows_dir, ["a.json", "b.json"]), store)}

    assert checks["a.json"].has_update is False
    assert checks["a.json"].current_version == checks["a.json"].new_version
    assert checks["b.json"].has_update is True
    assert checks["b.json"].current_version == "not imported"


def test_workflow_status_joins_registry(workflows_dir, write_workflow, store) -> None:
    write_workflow("a.json", "A", webhook_path="hook", credentials=True)
    write_workflow("b.json", "B")
    _import(store, workflows_dir, "a.json", "A")

    statuses = {status.filename: status for status in get_workflow_status(BundledDefinitionLoader(workflows_dir, ["a.json", "b.json"]), store)}

    assert statuses["a.json"].n8n_workflow_id == "wf-A"
    assert statuses["a.json"].is_active is True
    assert statuses["a.json"].has_credentials is True
    assert statuses["a.json"].trigger_paths == ["/webhook/hook"]
    assert statuses["b.json"].import_status == ImportStatus.PENDING
    assert statuses["b.json"].n8n_workflow_id is None

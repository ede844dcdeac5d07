import json
import logging

from app.core.logging import ConsoleFormatter, JsonFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.makeLogRecord(
        {"name": "app.workflow_import.orchestrator", "levelno": logging.INFO, "levelname": "INFO", "msg": "workflow_activated"}
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_promotes_workflow_context() -> None:
    line = JsonFormatter("workflow-sync", "test").format(_record(workflow_file="a.json", workflow_id="wf-1", attempt=2))
    entry = json.loads(line)

    assert entry["event"] == "workflow_activated"
    assert entry["workflow_file"] == "a.json"
    assert entry["workflow_id"] == "wf-1"
    assert entry["extra"] == {"attempt": 2}
    assert entry["environment"] == "test"


def test_console_formatter_appends_extras() -> None:
    line = ConsoleFormatter().format(_record(workflow_file="a.json"))

    assert "workflow_activated" in line
    assert line.endswith("[workflow_file=a.json]")

"""Discovery and parsing of bundled workflow definition files."""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.workflow_import.errors import WorkflowFileError

logger = logging.getLogger("app.workflow_import.loader")

# Node types that call another workflow by name via parameters.workflowId.
SUBWORKFLOW_NODE_TYPES = frozenset(
    {
        "n8n-nodes-base.executeWorkflow",
        "@n8n/n8n-nodes-langchain.toolWorkflow",
    }
)

# Trigger node type -> URL prefix under which n8n exposes it.
TRIGGER_PATH_PREFIXES = {
    "n8n-nodes-base.webhook": "/webhook",
    "n8n-nodes-base.formTrigger": "/form",
    "@n8n/n8n-nodes-langchain.chatTrigger": "/webhook",
}


@dataclass(frozen=True)
class BundledWorkflow:
    """A workflow definition file shipped with the service. Identity is the filename."""

    filename: str
    name: str
    checksum: str
    trigger_paths: Tuple[str, ...] = ()
    node_count: int = 0
    has_credentials: bool = False
    dependencies: Tuple[str, ...] = ()

    @property
    def short_version(self) -> str:
        return self.checksum[:8]


@dataclass
class DirectoryValidation:
    valid: bool
    workflows_dir: str
    files_found: int = 0
    error: Optional[str] = None


def calculate_checksum(content: bytes) -> str:
    """SHA-256 hex digest of the raw file bytes."""

    return hashlib.sha256(content).hexdigest()


def has_credential_references(nodes: Iterable[Dict[str, Any]]) -> bool:
    return any(node.get("credentials") for node in nodes)


def strip_credentials(nodes: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Return copies of ``nodes`` without ``credentials`` blocks.

    Credential ids from the authoring instance do not exist on a fresh n8n
    instance and make create/update calls fail with 400.
    """

    cleaned: List[Dict[str, Any]] = []
    stripped: List[Dict[str, str]] = []
    for node in nodes:
        credentials = node.get("credentials")
        if credentials:
            stripped.extend({"node": node.get("name", ""), "type": cred_type} for cred_type in credentials)
            node = {key: value for key, value in node.items() if key != "credentials"}
        cleaned.append(node)

    if stripped:
        logger.info("workflow_credentials_stripped", extra={"count": len(stripped), "credentials": stripped})
    return cleaned


def parse_workflow_file(filename: str, content: bytes, *, strip: bool = True) -> Dict[str, Any]:
    """Parse a definition file into the writable n8n workflow shape.

    Only ``name``, ``nodes``, ``connections``, ``settings`` and ``staticData``
    are kept; read-only fields such as ``tags`` are dropped.
    """

    try:
        data = json.loads(content)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise WorkflowFileError(filename, f"invalid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise WorkflowFileError(filename, "workflow must be a JSON object")
    name = data.get("name")
    nodes = data.get("nodes")
    if not name or not isinstance(name, str) or not isinstance(nodes, list):
        raise WorkflowFileError(filename, "missing name or nodes")

    return {
        "name": name,
        "nodes": strip_credentials(nodes) if strip else copy.deepcopy(nodes),
        "connections": data.get("connections") or {},
        "settings": data.get("settings"),
        "staticData": data.get("staticData"),
    }


def detect_dependencies(nodes: Iterable[Dict[str, Any]]) -> List[str]:
    """Names of workflows referenced by execute-workflow nodes, first occurrence order."""

    dependencies: List[str] = []
    for node in nodes:
        if node.get("type") not in SUBWORKFLOW_NODE_TYPES:
            continue
        target = (node.get("parameters") or {}).get("workflowId")
        if isinstance(target, str) and target and target not in dependencies:
            dependencies.append(target)
    return dependencies


def extract_trigger_paths(nodes: Iterable[Dict[str, Any]]) -> List[str]:
    """URL paths exposed by webhook, form and chat trigger nodes."""

    paths: List[str] = []
    for node in nodes:
        prefix = TRIGGER_PATH_PREFIXES.get(node.get("type", ""))
        if prefix is None:
            continue
        path = (node.get("parameters") or {}).get("path")
        if not isinstance(path, str) or not path:
            continue
        if not path.startswith("/"):
            path = f"/{path}"
        paths.append(f"{prefix}{path}")
    return paths


def validate_workflows_directory(workflows_dir: str | Path) -> DirectoryValidation:
    """Check that the directory exists and contains at least one ``.json`` file."""

    directory = Path(workflows_dir)
    if not directory.is_dir():
        logger.error("workflows_directory_missing", extra={"workflows_dir": str(directory)})
        return DirectoryValidation(
            valid=False,
            workflows_dir=str(directory),
            error=f"Workflows directory not accessible: {directory}",
        )

    files_found = len(list(directory.glob("*.json")))
    if files_found == 0:
        logger.warning("workflows_directory_empty", extra={"workflows_dir": str(directory)})
        return DirectoryValidation(
            valid=False,
            workflows_dir=str(directory),
            error=f"No workflow JSON files found in {directory}",
        )

    return DirectoryValidation(valid=True, workflows_dir=str(directory), files_found=files_found)


@dataclass
class BundledDefinitionLoader:
    """Reads bundled workflows from ``workflows_dir`` in the declared import order."""

    workflows_dir: Path
    import_order: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.workflows_dir = Path(self.workflows_dir)

    def load(self) -> List[BundledWorkflow]:
        """Load every file in ``import_order``; unreadable or malformed files are skipped."""

        if not self.workflows_dir.is_dir():
            logger.error("workflows_directory_missing", extra={"workflows_dir": str(self.workflows_dir)})
            return []

        workflows: List[BundledWorkflow] = []
        for filename in self.import_order:
            try:
                content = (self.workflows_dir / filename).read_bytes()
                # Unstripped so credential requirements can be reported.
                definition = parse_workflow_file(filename, content, strip=False)
            except OSError as exc:
                logger.warning("workflow_file_unreadable", extra={"workflow_file": filename, "error": str(exc)})
                continue
            except WorkflowFileError as exc:
                logger.warning("workflow_file_invalid", extra={"workflow_file": filename, "error": exc.reason})
                continue

            nodes = definition["nodes"]
            workflows.append(
                BundledWorkflow(
                    filename=filename,
                    name=definition["name"],
                    checksum=calculate_checksum(content),
                    trigger_paths=tuple(extract_trigger_paths(nodes)),
                    node_count=len(nodes),
                    has_credentials=has_credential_references(nodes),
                    dependencies=tuple(detect_dependencies(nodes)),
                )
            )
        return workflows

    def read_workflow_file(self, filename: str) -> Tuple[Dict[str, Any], str]:
        """Return the credential-stripped API payload and checksum for ``filename``."""

        try:
            content = (self.workflows_dir / filename).read_bytes()
        except OSError as exc:
            raise WorkflowFileError(filename, f"cannot read file: {exc}") from exc
        return parse_workflow_file(filename, content), calculate_checksum(content)

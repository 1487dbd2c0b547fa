"""
Workflow validation - import checks and consistency reports.

Provides:
- parse_workflow / export_workflow for the JSON interchange format
- validate_workflow, a report of structural issues that the store itself
  tolerates (dangling references can only arrive through an import)
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from .models import MIN_NODE_HEIGHT, MIN_NODE_WIDTH, Workflow

logger = logging.getLogger(__name__)

INVALID_WORKFLOW_MESSAGE = "Invalid JSON or workflow structure"


class InvalidWorkflowError(ValueError):
    """Raised when imported text is not a usable workflow."""

    def __init__(self, detail: str = ""):
        self.detail = detail
        message = INVALID_WORKFLOW_MESSAGE
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


def parse_workflow(text: str) -> Workflow:
    """
    Parse exported JSON text back into a Workflow.

    The text must decode to an object with a non-empty ``id`` and ``title``
    and with ``nodes`` and ``connections`` maps.

    Raises:
        InvalidWorkflowError: If the text is not JSON or not a workflow
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise InvalidWorkflowError(str(e)) from e

    if not isinstance(data, dict):
        raise InvalidWorkflowError("expected a JSON object")

    for key in ("id", "title"):
        if not data.get(key):
            raise InvalidWorkflowError(f"missing '{key}'")
    for key in ("nodes", "connections"):
        if data.get(key) is None:
            raise InvalidWorkflowError(f"missing '{key}'")

    try:
        workflow = Workflow.from_json_dict(data)
    except ValidationError as e:
        raise InvalidWorkflowError(f"{e.error_count()} validation error(s)") from e

    logger.debug("Parsed workflow %s (%d nodes, %d connections)",
                 workflow.id, len(workflow.nodes), len(workflow.connections))
    return workflow


def export_workflow(workflow: Workflow) -> str:
    """Serialize a workflow to indented JSON text."""
    return json.dumps(workflow.to_json_dict(), indent=2)


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Invalid state, must be fixed
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single validation issue found in a workflow."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None
    connection_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.node_id:
            result["node_id"] = self.node_id
        if self.connection_id:
            result["connection_id"] = self.connection_id
        return result


def validate_workflow(workflow: Workflow) -> list[ValidationIssue]:
    """
    Validate a workflow and return a list of issues.

    Checks for:
    - Empty workflow - INFO
    - Connections referencing missing nodes - ERROR
    - Self-connections - WARNING
    - Duplicate connections (same ordered source->target) - WARNING
    - Orphan nodes (no connections) - WARNING
    - Nodes smaller than the minimum resize size - WARNING

    Args:
        workflow: The workflow to validate

    Returns:
        List of ValidationIssue objects
    """
    issues: list[ValidationIssue] = []
    nodes = workflow.nodes
    connections = list(workflow.connections.values())

    if not nodes:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Workflow has no nodes"
        ))
        if not connections:
            return issues

    for connection in connections:
        if connection.source not in nodes:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Connection references non-existent source node: {connection.source}",
                connection_id=connection.id
            ))
        if connection.target not in nodes:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Connection references non-existent target node: {connection.target}",
                connection_id=connection.id
            ))

    for connection in connections:
        if connection.source == connection.target:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Self-connection (node points to itself)",
                connection_id=connection.id,
                node_id=connection.source
            ))

    seen_pairs: set[tuple[str, str]] = set()
    for connection in connections:
        pair = (connection.source, connection.target)
        if pair in seen_pairs:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Duplicate connection from {connection.source} to {connection.target}",
                connection_id=connection.id
            ))
        else:
            seen_pairs.add(pair)

    connected = {c.source for c in connections} | {c.target for c in connections}
    orphans = [n for n in nodes.values() if n.id not in connected]
    if orphans:
        labels = ", ".join(f"{n.title} ({n.id})" for n in orphans)
        issues.append(ValidationIssue(
            severity=IssueSeverity.WARNING,
            message=f"Orphan nodes (no connections): {labels}"
        ))

    for node in nodes.values():
        width, height = node.size()
        if width < MIN_NODE_WIDTH or height < MIN_NODE_HEIGHT:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Node is smaller than {MIN_NODE_WIDTH:g}x{MIN_NODE_HEIGHT:g}",
                node_id=node.id
            ))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    errors = sum(1 for i in issues if i.severity == IssueSeverity.ERROR)
    return {
        "total": len(issues),
        "errors": errors,
        "warnings": sum(1 for i in issues if i.severity == IssueSeverity.WARNING),
        "info": sum(1 for i in issues if i.severity == IssueSeverity.INFO),
        "valid": errors == 0
    }


def export_filename(workflow: Workflow, extension: str = "json") -> str:
    """File name for a downloaded workflow, e.g. ``My_Flow.json``."""
    safe_title = re.sub(r"[^a-z0-9\-_]+", "_", workflow.title or "workflow", flags=re.IGNORECASE)
    return f"{safe_title}.{extension}"

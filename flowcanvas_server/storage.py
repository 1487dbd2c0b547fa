"""
Workflow storage - the persistence collaborator.

Workflows are stored the way the canvas keeps them in browser storage:
an index of summaries plus one document per workflow.

    <data_dir>/workflows.json        [{"id", "title", "createdAt", "updatedAt"}, ...]
    <data_dir>/workflows-<id>.json   the exported workflow

The prefix keeps every workflow file name distinct from the index.
"""

import json
import logging
import re
from pathlib import Path
from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from flowcanvas.models import Workflow

logger = logging.getLogger(__name__)

INDEX_FILE = "workflows.json"
WORKFLOW_FILE_PREFIX = "workflows-"

# Workflow ids become file names
_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class WorkflowSummary(BaseModel):
    """Entry in the workflow list."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")

    @classmethod
    def of(cls, workflow: Workflow) -> "WorkflowSummary":
        return cls(
            id=workflow.id,
            title=workflow.title,
            created_at=workflow.created_at,
            updated_at=workflow.updated_at,
        )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class WorkflowStorage(Protocol):
    def load(self, workflow_id: str) -> Optional[Workflow]: ...

    def save(self, workflow: Workflow) -> None: ...

    def delete(self, workflow_id: str) -> bool: ...

    def list_workflows(self) -> list[WorkflowSummary]: ...


class MemoryStorage:
    """In-process storage. Nothing survives a restart."""

    def __init__(self):
        self._workflows: dict[str, Workflow] = {}

    def load(self, workflow_id: str) -> Optional[Workflow]:
        return self._workflows.get(workflow_id)

    def save(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow

    def delete(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None

    def list_workflows(self) -> list[WorkflowSummary]:
        return [WorkflowSummary.of(w) for w in self._workflows.values()]


class JsonFileStorage:
    """
    JSON files in a directory.

    A workflow file that cannot be read or parsed loads as absent; the
    failure is logged so a single corrupt file never blocks the rest.
    """

    def __init__(self, data_dir: str | Path):
        self._dir = Path(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._dir

    def _path(self, workflow_id: str) -> Path:
        if not _SAFE_ID.match(workflow_id):
            raise ValueError(f"Invalid workflow id: {workflow_id!r}")
        return self._dir / f"{WORKFLOW_FILE_PREFIX}{workflow_id}.json"

    def _read_index(self) -> list[WorkflowSummary]:
        path = self._dir / INDEX_FILE
        if not path.exists():
            return []
        try:
            with open(path, 'r') as f:
                data = json.load(f)
            return [WorkflowSummary.model_validate(item) for item in data]
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.error("Could not read workflow index %s: %s", path, e)
            return []

    def _write_index(self, summaries: list[WorkflowSummary]):
        self._dir.mkdir(parents=True, exist_ok=True)
        with open(self._dir / INDEX_FILE, 'w') as f:
            json.dump([s.to_json_dict() for s in summaries], f, indent=2)

    def load(self, workflow_id: str) -> Optional[Workflow]:
        try:
            path = self._path(workflow_id)
        except ValueError:
            return None
        if not path.exists():
            return None
        try:
            with open(path, 'r') as f:
                data = json.load(f)
            return Workflow.from_json_dict(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.error("Could not load workflow %s: %s", workflow_id, e)
            return None

    def save(self, workflow: Workflow) -> None:
        path = self._path(workflow.id)
        self._dir.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(workflow.to_json_dict(), f, indent=2)

        summaries = [s for s in self._read_index() if s.id != workflow.id]
        summaries.append(WorkflowSummary.of(workflow))
        self._write_index(summaries)
        logger.debug("Saved workflow %s to %s", workflow.id, path)

    def delete(self, workflow_id: str) -> bool:
        try:
            path = self._path(workflow_id)
        except ValueError:
            return False

        summaries = self._read_index()
        remaining = [s for s in summaries if s.id != workflow_id]
        existed = path.exists() or len(remaining) != len(summaries)

        if path.exists():
            path.unlink()
        if len(remaining) != len(summaries):
            self._write_index(remaining)
        return existed

    def list_workflows(self) -> list[WorkflowSummary]:
        return self._read_index()

"""
Canvas Session - one open workflow, its store, controller and storage.

This module implements:
- Opening, creating and deleting workflows through the storage collaborator
- Routing input events to the interaction controller
- Property-editor patches dispatched straight to the store
- Import/export of the JSON interchange format
- Auto-save: workflow mutations mark the session dirty and flush() persists

flush() is called from the server's background task, so a slow or failing
disk never delays event processing. Failures are logged and the session stays
dirty, so the next flush retries.
"""

import logging
from typing import Callable, Iterable, Optional

from flowcanvas import actions as a
from flowcanvas.events import InputEvent
from flowcanvas.interaction import Confirmer, InteractionController
from flowcanvas.models import Workflow
from flowcanvas.store import CanvasState, GraphStore, create_initial_state
from flowcanvas.validation import (
    export_workflow,
    parse_workflow,
    validate_workflow,
    validation_summary,
)

from .storage import WorkflowStorage, WorkflowSummary

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Workflow"


class WorkflowNotFoundError(LookupError):
    """Raised when a workflow id is not in storage."""


class CanvasSession:
    """
    Manages the canvas state of one view and its persistence.

    Features:
    - A GraphStore + InteractionController pair per opened workflow
    - Change callbacks for real-time sync
    - Dirty tracking for deferred saves
    """

    def __init__(self, storage: WorkflowStorage, confirm: Optional[Confirmer] = None):
        self._storage = storage
        self._confirm = confirm
        self._dirty = False
        self._on_change_callbacks: list[Callable] = []
        self._store = GraphStore()
        self._store.subscribe(self._on_store_change)
        self._controller = InteractionController(self._store, confirm=confirm)

    # --- Properties ---

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def controller(self) -> InteractionController:
        return self._controller

    @property
    def state(self) -> CanvasState:
        return self._store.state

    @property
    def workflow(self) -> Workflow:
        """Get the open workflow."""
        return self._store.workflow

    @property
    def is_dirty(self) -> bool:
        """Check if there are unsaved changes."""
        return self._dirty

    # --- Change Callbacks ---

    def on_change(self, callback: Callable):
        """Register a callback for canvas changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        """Notify all registered callbacks of a change."""
        for callback in self._on_change_callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Change callback failed")

    def _on_store_change(self, previous: CanvasState, current: CanvasState):
        if current.workflow is not previous.workflow:
            self._dirty = True
        self._notify_change()

    def _load(self, workflow: Workflow):
        """Swap the open workflow, dropping any gesture in progress."""
        self._controller.cancel()
        self._controller = InteractionController(self._store, confirm=self._confirm)
        self._store.replace(create_initial_state(workflow))
        self._dirty = False

    # --- Workflow list ---

    def list_workflows(self) -> list[WorkflowSummary]:
        return self._storage.list_workflows()

    def new_workflow(self, title: str = "New Workflow") -> Workflow:
        """Create, store and open an empty workflow."""
        self.flush()
        workflow = Workflow(title=title.strip() or UNTITLED)
        self._storage.save(workflow)
        self._load(workflow)
        logger.info("Created workflow %s (%s)", workflow.id, workflow.title)
        return workflow

    def open_workflow(self, workflow_id: str) -> Workflow:
        """
        Open a stored workflow, saving the current one first if dirty.

        Raises:
            WorkflowNotFoundError: If the id is not in storage
        """
        workflow = self._storage.load(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow not found: {workflow_id}")
        self.flush()
        self._load(workflow)
        logger.info("Opened workflow %s", workflow_id)
        return workflow

    def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a stored workflow. Deleting the open one opens a fresh workflow."""
        deleted = self._storage.delete(workflow_id)
        if workflow_id == self.workflow.id:
            self._load(Workflow())
            deleted = True
        if deleted:
            logger.info("Deleted workflow %s", workflow_id)
        return deleted

    # --- Editing ---

    def handle_events(self, events: Iterable[InputEvent]) -> CanvasState:
        """Feed input events to the controller in order."""
        return self._controller.handle_all(events)

    def dispatch(self, action: a.Action) -> CanvasState:
        """Apply a store action directly (property editors, toolbars)."""
        return self._store.dispatch(action)

    def rename(self, title: str) -> Workflow:
        """Change the workflow title. Blank titles become "Untitled Workflow"."""
        new_title = title.strip() or UNTITLED
        if new_title != self.workflow.title:
            renamed = self.workflow.model_copy(update={"title": new_title})
            self._store.dispatch(a.ImportWorkflow(workflow=renamed))
        return self.workflow

    def import_text(self, text: str) -> Workflow:
        """
        Replace the open workflow with imported JSON text.

        Raises:
            InvalidWorkflowError: If the text is not a valid workflow. The
                canvas is left unchanged.
        """
        try:
            workflow = parse_workflow(text)
        except ValueError as e:
            logger.info("Rejected import: %s", e)
            raise
        self._controller.cancel()
        self._store.dispatch(a.ImportWorkflow(workflow=workflow))
        logger.info("Imported workflow %s", workflow.id)
        return self.workflow

    def export_text(self) -> str:
        return export_workflow(self.workflow)

    def validate(self) -> dict:
        issues = validate_workflow(self.workflow)
        return {
            "issues": [issue.to_dict() for issue in issues],
            "summary": validation_summary(issues),
        }

    # --- Persistence ---

    def flush(self) -> bool:
        """
        Persist the workflow if it changed since the last save.

        Returns:
            True if something was written
        """
        if not self._dirty:
            return False
        workflow = self.workflow
        try:
            self._storage.save(workflow)
        except (OSError, ValueError) as e:
            logger.error("Auto-save of workflow %s failed: %s", workflow.id, e)
            return False
        # A mutation during save leaves a newer workflow to flush next time
        self._dirty = self.workflow is not workflow
        return True

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        state = self.state
        return {
            "workflow": state.workflow.to_json_dict(),
            "viewport": state.viewport.model_dump(mode="json"),
            "selection": state.selection_dict(),
            "scene": self._controller.scene().model_dump(mode="json"),
            "is_dirty": self._dirty,
        }

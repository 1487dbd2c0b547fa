"""
Graph state store - authoritative state for one canvas.

This module implements:
- CanvasState: an immutable snapshot of workflow, viewport and selection
- reduce(): the pure transition function (state + action -> new state)
- GraphStore: holds the current snapshot and notifies listeners on change

Transitions never raise. An action naming an id that does not exist
degrades to a no-op and returns the input state unchanged; these can come
from stale UI callbacks racing a deletion.

Selection rules:
- Selecting a connection always clears the node selection and vice versa
- ``selected_node_id`` is the primary (most recent) node of a multi-selection
- ADD_TO_SELECTION always makes the added node primary, while
  REMOVE_FROM_SELECTION only re-assigns the primary if it removed it
"""

import logging
from typing import Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import actions as a
from .models import Connection, Node, Viewport, Workflow, now_ms

logger = logging.getLogger(__name__)


class CanvasState(BaseModel):
    """Snapshot of everything the canvas shows."""
    model_config = ConfigDict(frozen=True)

    workflow: Workflow = Field(default_factory=lambda: Workflow())
    viewport: Viewport = Field(default_factory=Viewport)
    selected_node_id: Optional[str] = None
    selected_node_ids: tuple[str, ...] = ()
    selected_connection_id: Optional[str] = None
    is_multi_selecting: bool = False
    is_dragging: bool = False
    is_connecting: bool = False
    connection_source: Optional[str] = None

    def selection_dict(self) -> dict:
        """Selection and mode flags for API responses."""
        return {
            "selectedNodeId": self.selected_node_id,
            "selectedNodeIds": list(self.selected_node_ids),
            "selectedConnectionId": self.selected_connection_id,
            "isMultiSelecting": self.is_multi_selecting,
            "isDragging": self.is_dragging,
            "isConnecting": self.is_connecting,
            "connectionSource": self.connection_source,
        }


def create_initial_state(workflow: Optional[Workflow] = None) -> CanvasState:
    """Fresh canvas state for a workflow (a new empty one if None)."""
    return CanvasState(workflow=workflow or Workflow())


# --- Helpers ---

def _touched(workflow: Workflow, now: int, **changes) -> Workflow:
    """Copy a workflow with changes applied and updated_at refreshed."""
    changes["updated_at"] = max(now, workflow.updated_at)
    return workflow.model_copy(update=changes)


def _with_nodes(state: CanvasState, nodes: dict[str, Node], now: int, **changes) -> CanvasState:
    return state.model_copy(update={
        "workflow": _touched(state.workflow, now, nodes=nodes),
        **changes,
    })


def _with_connections(state: CanvasState, connections: dict[str, Connection],
                      now: int, **changes) -> CanvasState:
    return state.model_copy(update={
        "workflow": _touched(state.workflow, now, connections=connections),
        **changes,
    })


def _merge(model, changes: dict):
    """Shallow-merge changes into a model, keeping its id. Re-validates."""
    merged = {**model.model_dump(), **changes, "id": model.id}
    return type(model).model_validate(merged)


def _primary_after_removal(state: CanvasState, node_id: str,
                           remaining: tuple[str, ...]) -> Optional[str]:
    if state.selected_node_id != node_id:
        return state.selected_node_id
    return remaining[0] if remaining else None


# --- Node actions ---

def _add_node(state: CanvasState, action: a.AddNode, now: int) -> CanvasState:
    node = action.node
    nodes = {**state.workflow.nodes, node.id: node}
    return _with_nodes(
        state, nodes, now,
        selected_node_id=node.id,
        selected_node_ids=(node.id,),
        selected_connection_id=None,
    )


def _update_node(state: CanvasState, action: a.UpdateNode, now: int) -> CanvasState:
    node = state.workflow.nodes.get(action.id)
    if node is None:
        return state
    try:
        updated = _merge(node, action.changes)
    except ValidationError as e:
        logger.warning("Ignoring invalid changes for node %s: %s", action.id, e)
        return state
    return _with_nodes(state, {**state.workflow.nodes, node.id: updated}, now)


def _delete_node(state: CanvasState, action: a.DeleteNode, now: int) -> CanvasState:
    node_id = action.id
    nodes = {k: v for k, v in state.workflow.nodes.items() if k != node_id}
    connections = {
        k: c for k, c in state.workflow.connections.items()
        if c.source != node_id and c.target != node_id
    }
    selected_ids = tuple(i for i in state.selected_node_ids if i != node_id)

    unchanged = (len(nodes) == len(state.workflow.nodes)
                 and len(connections) == len(state.workflow.connections)
                 and selected_ids == state.selected_node_ids
                 and state.selected_node_id != node_id)
    if unchanged:
        return state

    selected_connection = state.selected_connection_id
    if selected_connection is not None and selected_connection not in connections:
        selected_connection = None
    connection_source = state.connection_source
    is_connecting = state.is_connecting
    if connection_source == node_id:
        connection_source, is_connecting = None, False

    return state.model_copy(update={
        "workflow": _touched(state.workflow, now, nodes=nodes, connections=connections),
        "selected_node_id": None if state.selected_node_id == node_id else state.selected_node_id,
        "selected_node_ids": selected_ids,
        "selected_connection_id": selected_connection,
        "connection_source": connection_source,
        "is_connecting": is_connecting,
    })


def _move_node(state: CanvasState, action: a.MoveNode, now: int) -> CanvasState:
    node = state.workflow.nodes.get(action.id)
    if node is None:
        return state
    moved = node.model_copy(update={"position": action.position})
    return _with_nodes(state, {**state.workflow.nodes, node.id: moved}, now)


def _move_selected_nodes(state: CanvasState, action: a.MoveSelectedNodes,
                         now: int) -> CanvasState:
    if state.selected_node_ids:
        to_move = state.selected_node_ids
    elif state.selected_node_id:
        to_move = (state.selected_node_id,)
    else:
        return state

    nodes = dict(state.workflow.nodes)
    moved_any = False
    for node_id in to_move:
        node = nodes.get(node_id)
        if node is None:
            continue
        nodes[node_id] = node.model_copy(update={"position": node.position + action.offset})
        moved_any = True

    if not moved_any:
        return state
    return _with_nodes(state, nodes, now)


# --- Connection actions ---

def _add_connection(state: CanvasState, action: a.AddConnection, now: int) -> CanvasState:
    connection = action.connection
    connections = {**state.workflow.connections, connection.id: connection}
    return _with_connections(
        state, connections, now,
        selected_connection_id=connection.id,
        selected_node_id=None,
        selected_node_ids=(),
        is_connecting=False,
        connection_source=None,
    )


def _update_connection(state: CanvasState, action: a.UpdateConnection,
                       now: int) -> CanvasState:
    connection = state.workflow.connections.get(action.id)
    if connection is None:
        return state
    try:
        updated = _merge(connection, action.changes)
    except ValidationError as e:
        logger.warning("Ignoring invalid changes for connection %s: %s", action.id, e)
        return state
    return _with_connections(
        state, {**state.workflow.connections, connection.id: updated}, now)


def _delete_connection(state: CanvasState, action: a.DeleteConnection,
                       now: int) -> CanvasState:
    if action.id not in state.workflow.connections:
        return state
    connections = {k: v for k, v in state.workflow.connections.items() if k != action.id}
    selected = state.selected_connection_id
    return _with_connections(
        state, connections, now,
        selected_connection_id=None if selected == action.id else selected,
    )


# --- Selection actions ---

def _select_node(state: CanvasState, action: a.SelectNode, now: int) -> CanvasState:
    node_id = action.id
    if node_id is not None and node_id not in state.workflow.nodes:
        return state

    if state.is_multi_selecting and node_id:
        return state.model_copy(update={
            "selected_node_id": node_id,
            "selected_connection_id": None,
        })

    return state.model_copy(update={
        "selected_node_id": node_id,
        "selected_node_ids": (node_id,) if node_id else (),
        "selected_connection_id": None,
    })


def _select_connection(state: CanvasState, action: a.SelectConnection,
                       now: int) -> CanvasState:
    if action.id is not None and action.id not in state.workflow.connections:
        return state
    return state.model_copy(update={
        "selected_connection_id": action.id,
        "selected_node_id": None,
        "selected_node_ids": (),
    })


def _add_to_selection(state: CanvasState, action: a.AddToSelection,
                      now: int) -> CanvasState:
    node_id = action.id
    if node_id in state.selected_node_ids or node_id not in state.workflow.nodes:
        return state
    return state.model_copy(update={
        "selected_node_ids": state.selected_node_ids + (node_id,),
        "selected_node_id": node_id,
        "selected_connection_id": None,
    })


def _remove_from_selection(state: CanvasState, action: a.RemoveFromSelection,
                           now: int) -> CanvasState:
    remaining = tuple(i for i in state.selected_node_ids if i != action.id)
    return state.model_copy(update={
        "selected_node_ids": remaining,
        "selected_node_id": _primary_after_removal(state, action.id, remaining),
    })


def _toggle_node_selection(state: CanvasState, action: a.ToggleNodeSelection,
                           now: int) -> CanvasState:
    node_id = action.id
    if node_id in state.selected_node_ids:
        remaining = tuple(i for i in state.selected_node_ids if i != node_id)
        return state.model_copy(update={
            "selected_node_ids": remaining,
            "selected_node_id": _primary_after_removal(state, node_id, remaining),
            "selected_connection_id": None,
        })
    if node_id not in state.workflow.nodes:
        return state
    return state.model_copy(update={
        "selected_node_ids": state.selected_node_ids + (node_id,),
        "selected_node_id": node_id,
        "selected_connection_id": None,
    })


def _clear_selection(state: CanvasState, action: a.ClearSelection, now: int) -> CanvasState:
    return state.model_copy(update={
        "selected_node_id": None,
        "selected_node_ids": (),
        "selected_connection_id": None,
    })


def _select_all_nodes(state: CanvasState, action: a.SelectAllNodes, now: int) -> CanvasState:
    all_ids = tuple(state.workflow.nodes)
    return state.model_copy(update={
        "selected_node_ids": all_ids,
        "selected_node_id": all_ids[0] if all_ids else None,
        "selected_connection_id": None,
    })


# --- Mode flags ---

def _set_multi_selecting(state: CanvasState, action: a.SetMultiSelecting,
                         now: int) -> CanvasState:
    return state.model_copy(update={"is_multi_selecting": action.value})


def _set_connecting(state: CanvasState, action: a.SetConnecting, now: int) -> CanvasState:
    return state.model_copy(update={
        "is_connecting": action.value,
        "connection_source": state.connection_source if action.value else None,
    })


def _set_connection_source(state: CanvasState, action: a.SetConnectionSource,
                           now: int) -> CanvasState:
    return state.model_copy(update={
        "connection_source": action.id,
        "is_connecting": action.id is not None,
    })


def _set_dragging(state: CanvasState, action: a.SetDragging, now: int) -> CanvasState:
    return state.model_copy(update={"is_dragging": action.value})


# --- Viewport ---

def _zoom(state: CanvasState, action: a.Zoom, now: int) -> CanvasState:
    return state.model_copy(update={
        "viewport": state.viewport.model_copy(update={"zoom": action.value}),
    })


def _pan(state: CanvasState, action: a.Pan, now: int) -> CanvasState:
    return state.model_copy(update={
        "viewport": state.viewport.model_copy(update={"position": action.position}),
    })


def _reset_view(state: CanvasState, action: a.ResetView, now: int) -> CanvasState:
    return state.model_copy(update={"viewport": Viewport()})


# --- Whole-workflow actions ---

def _clear_canvas(state: CanvasState, action: a.ClearCanvas, now: int) -> CanvasState:
    """
    Empty the workflow but keep its id, title, description and created_at.

    The viewport is left as it was; RESET_VIEW is a separate action.
    """
    old = state.workflow
    workflow = Workflow(
        id=old.id,
        title=old.title,
        description=old.description,
        created_at=old.created_at,
        updated_at=max(now, old.updated_at),
    )
    return state.model_copy(update={
        "workflow": workflow,
        "selected_node_id": None,
        "selected_node_ids": (),
        "selected_connection_id": None,
        "is_connecting": False,
        "connection_source": None,
    })


def _import_workflow(state: CanvasState, action: a.ImportWorkflow, now: int) -> CanvasState:
    imported = action.workflow
    workflow = imported.model_copy(update={"updated_at": max(now, imported.updated_at)})
    return state.model_copy(update={
        "workflow": workflow,
        "selected_node_id": None,
        "selected_node_ids": (),
        "selected_connection_id": None,
        "is_connecting": False,
        "connection_source": None,
    })


_REDUCERS: dict[type, Callable] = {
    a.AddNode: _add_node,
    a.UpdateNode: _update_node,
    a.DeleteNode: _delete_node,
    a.MoveNode: _move_node,
    a.MoveSelectedNodes: _move_selected_nodes,
    a.AddConnection: _add_connection,
    a.UpdateConnection: _update_connection,
    a.DeleteConnection: _delete_connection,
    a.SelectNode: _select_node,
    a.SelectConnection: _select_connection,
    a.AddToSelection: _add_to_selection,
    a.RemoveFromSelection: _remove_from_selection,
    a.ToggleNodeSelection: _toggle_node_selection,
    a.ClearSelection: _clear_selection,
    a.SetMultiSelecting: _set_multi_selecting,
    a.SetConnecting: _set_connecting,
    a.SetConnectionSource: _set_connection_source,
    a.SetDragging: _set_dragging,
    a.Zoom: _zoom,
    a.Pan: _pan,
    a.ResetView: _reset_view,
    a.ClearCanvas: _clear_canvas,
    a.ImportWorkflow: _import_workflow,
    a.SelectAllNodes: _select_all_nodes,
}


def reduce(state: CanvasState, action: a.Action, now: Optional[int] = None) -> CanvasState:
    """
    Apply one action to a state and return the new state.

    The input state is never modified.

    Args:
        state: Current state
        action: Action to apply
        now: Timestamp (epoch ms) for updated_at; defaults to the current time

    Returns:
        The new state (the same object if the action was a no-op)
    """
    handler = _REDUCERS.get(type(action))
    if handler is None:
        logger.warning("Unknown action ignored: %r", action)
        return state
    return handler(state, action, now_ms() if now is None else now)


class GraphStore:
    """
    Holds the current CanvasState and applies actions to it.

    Features:
    - Synchronous dispatch; each action yields one consistent snapshot
    - Change listeners called with (previous, current) after every change

    One store per canvas view. Not shared across threads.
    """

    def __init__(self, state: Optional[CanvasState] = None,
                 clock: Callable[[], int] = now_ms):
        self._state = state or create_initial_state()
        self._clock = clock
        self._listeners: list[Callable[[CanvasState, CanvasState], None]] = []

    @property
    def state(self) -> CanvasState:
        """Get the current snapshot."""
        return self._state

    @property
    def workflow(self) -> Workflow:
        return self._state.workflow

    @property
    def viewport(self) -> Viewport:
        return self._state.viewport

    def subscribe(self, listener: Callable[[CanvasState, CanvasState], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: a.Action) -> CanvasState:
        """Apply an action and notify listeners if the state changed."""
        previous = self._state
        current = reduce(previous, action, self._clock())
        if current is previous:
            return current

        self._state = current
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception:
                logger.exception("Store listener failed on %s", action.type)
        return current

    def dispatch_many(self, actions: Iterable[a.Action]) -> CanvasState:
        """Apply several actions in order."""
        for action in actions:
            self.dispatch(action)
        return self._state

    def replace(self, state: CanvasState) -> CanvasState:
        """Swap in a whole new snapshot (e.g. after opening another workflow)."""
        previous = self._state
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(previous, state)
            except Exception:
                logger.exception("Store listener failed on replace")
        return state

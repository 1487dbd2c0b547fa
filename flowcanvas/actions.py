"""
Store actions - the closed set of transitions the graph store accepts.

Each action is a small immutable model tagged by a literal ``type`` so that
actions arriving as JSON (e.g. from a property editor) can be validated into
the right class with ``parse_action``.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .models import Connection, Node, Position, Workflow


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True)


class AddNode(_Action):
    type: Literal["ADD_NODE"] = "ADD_NODE"
    node: Node


class UpdateNode(_Action):
    type: Literal["UPDATE_NODE"] = "UPDATE_NODE"
    id: str
    changes: dict[str, Any] = Field(default_factory=dict)


class DeleteNode(_Action):
    type: Literal["DELETE_NODE"] = "DELETE_NODE"
    id: str


class MoveNode(_Action):
    type: Literal["MOVE_NODE"] = "MOVE_NODE"
    id: str
    position: Position


class MoveSelectedNodes(_Action):
    type: Literal["MOVE_SELECTED_NODES"] = "MOVE_SELECTED_NODES"
    offset: Position


class AddConnection(_Action):
    type: Literal["ADD_CONNECTION"] = "ADD_CONNECTION"
    connection: Connection


class UpdateConnection(_Action):
    type: Literal["UPDATE_CONNECTION"] = "UPDATE_CONNECTION"
    id: str
    changes: dict[str, Any] = Field(default_factory=dict)


class DeleteConnection(_Action):
    type: Literal["DELETE_CONNECTION"] = "DELETE_CONNECTION"
    id: str


class SelectNode(_Action):
    type: Literal["SELECT_NODE"] = "SELECT_NODE"
    id: Optional[str] = None


class SelectConnection(_Action):
    type: Literal["SELECT_CONNECTION"] = "SELECT_CONNECTION"
    id: Optional[str] = None


class AddToSelection(_Action):
    type: Literal["ADD_TO_SELECTION"] = "ADD_TO_SELECTION"
    id: str


class RemoveFromSelection(_Action):
    type: Literal["REMOVE_FROM_SELECTION"] = "REMOVE_FROM_SELECTION"
    id: str


class ToggleNodeSelection(_Action):
    type: Literal["TOGGLE_NODE_SELECTION"] = "TOGGLE_NODE_SELECTION"
    id: str


class ClearSelection(_Action):
    type: Literal["CLEAR_SELECTION"] = "CLEAR_SELECTION"


class SetMultiSelecting(_Action):
    type: Literal["SET_MULTI_SELECTING"] = "SET_MULTI_SELECTING"
    value: bool


class SetConnecting(_Action):
    type: Literal["SET_CONNECTING"] = "SET_CONNECTING"
    value: bool


class SetConnectionSource(_Action):
    type: Literal["SET_CONNECTION_SOURCE"] = "SET_CONNECTION_SOURCE"
    id: Optional[str] = None


class SetDragging(_Action):
    type: Literal["SET_DRAGGING"] = "SET_DRAGGING"
    value: bool


class Zoom(_Action):
    type: Literal["ZOOM"] = "ZOOM"
    value: float = Field(gt=0, allow_inf_nan=False)


class Pan(_Action):
    type: Literal["PAN"] = "PAN"
    position: Position


class ResetView(_Action):
    type: Literal["RESET_VIEW"] = "RESET_VIEW"


class ClearCanvas(_Action):
    type: Literal["CLEAR_CANVAS"] = "CLEAR_CANVAS"


class ImportWorkflow(_Action):
    type: Literal["IMPORT_WORKFLOW"] = "IMPORT_WORKFLOW"
    workflow: Workflow


class SelectAllNodes(_Action):
    type: Literal["SELECT_ALL_NODES"] = "SELECT_ALL_NODES"


Action = Annotated[
    Union[
        AddNode, UpdateNode, DeleteNode, MoveNode, MoveSelectedNodes,
        AddConnection, UpdateConnection, DeleteConnection,
        SelectNode, SelectConnection, AddToSelection, RemoveFromSelection,
        ToggleNodeSelection, ClearSelection, SetMultiSelecting,
        SetConnecting, SetConnectionSource, SetDragging,
        Zoom, Pan, ResetView, ClearCanvas, ImportWorkflow, SelectAllNodes,
    ],
    Field(discriminator="type"),
]

_action_adapter = TypeAdapter(Action)


def parse_action(data: dict) -> Action:
    """Validate a raw dict (e.g. decoded JSON) into an action."""
    return _action_adapter.validate_python(data)

"""
FlowCanvas - Interaction engine for node-and-connection workflow canvases.

This package holds the engine used by the server and any other front end:
viewport transform, geometry, the graph state store and the interaction
controller that turns pointer and keyboard input into store actions.
"""

from .models import (
    # Enums
    NodeType,
    NodeShape,
    ConnectionStyle,
    # Core models
    Position,
    Tooltip,
    Node,
    Connection,
    Workflow,
    Viewport,
    # Constants
    DEFAULT_NODE_WIDTH,
    DEFAULT_NODE_HEIGHT,
    MIN_NODE_WIDTH,
    MIN_NODE_HEIGHT,
)

from .viewport import to_screen, to_canvas, clamp_zoom, zoom_toward, MIN_ZOOM, MAX_ZOOM
from .geometry import (
    Anchors,
    Rect,
    ResizeHandle,
    connection_anchors,
    connection_path,
    arrow_path,
    find_node_at_point,
    nodes_in_rect,
    resize_box,
)
from .actions import Action, parse_action
from .store import CanvasState, GraphStore, create_initial_state, reduce
from .events import InputEvent, parse_event, parse_events
from .interaction import InteractionController
from .scene import Scene, build_scene
from .validation import (
    InvalidWorkflowError,
    IssueSeverity,
    ValidationIssue,
    export_filename,
    export_workflow,
    parse_workflow,
    validate_workflow,
    validation_summary,
)

__all__ = [
    # Enums
    "NodeType",
    "NodeShape",
    "ConnectionStyle",
    # Models
    "Position",
    "Tooltip",
    "Node",
    "Connection",
    "Workflow",
    "Viewport",
    "DEFAULT_NODE_WIDTH",
    "DEFAULT_NODE_HEIGHT",
    "MIN_NODE_WIDTH",
    "MIN_NODE_HEIGHT",
    # Viewport transform
    "to_screen",
    "to_canvas",
    "clamp_zoom",
    "zoom_toward",
    "MIN_ZOOM",
    "MAX_ZOOM",
    # Geometry
    "Anchors",
    "Rect",
    "ResizeHandle",
    "connection_anchors",
    "connection_path",
    "arrow_path",
    "find_node_at_point",
    "nodes_in_rect",
    "resize_box",
    # Store
    "Action",
    "parse_action",
    "CanvasState",
    "GraphStore",
    "create_initial_state",
    "reduce",
    # Interaction
    "InputEvent",
    "parse_event",
    "parse_events",
    "InteractionController",
    "Scene",
    "build_scene",
    # Validation
    "InvalidWorkflowError",
    "IssueSeverity",
    "ValidationIssue",
    "export_filename",
    "export_workflow",
    "parse_workflow",
    "validate_workflow",
    "validation_summary",
]

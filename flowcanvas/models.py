"""
Core data models for workflows.

These models define the canonical schema for a workflow canvas:
- Nodes with a semantic type, title and a top-left position in canvas units
- Connections between nodes (source/target node ids)
- The workflow aggregate with creation/update timestamps
- The viewport (zoom and pan offset) used to map canvas units to the screen

All models are immutable. Transitions build new instances instead of
mutating existing ones, so a snapshot handed to a caller never changes.

Field Naming Convention:
- Python attributes are snake_case
- JSON serialization (export) uses the camelCase names of the exported
  workflow format (`createdAt`, `updatedAt`, `alwaysVisible`)
- Both spellings are accepted on input
"""

import math
import time
import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Default node size in canvas units when a node carries no explicit size
DEFAULT_NODE_WIDTH = 200.0
DEFAULT_NODE_HEIGHT = 100.0

# Smallest size a resize gesture can produce
MIN_NODE_WIDTH = 80.0
MIN_NODE_HEIGHT = 40.0


class NodeType(str, Enum):
    """Logical types for nodes (semantic meaning)."""
    TASK = "task"
    DECISION = "decision"
    START = "start"
    END = "end"
    DATA = "data"
    PROCESS = "process"
    IO = "io"


class NodeShape(str, Enum):
    """Visual shapes for nodes, stored under ``node.data["shape"]``."""
    RECTANGLE = "rectangle"
    ROUNDED = "rounded"
    CIRCLE = "circle"
    DIAMOND = "diamond"
    HEXAGON = "hexagon"
    CLOUD = "cloud"


class ConnectionStyle(str, Enum):
    """Path styles for connections."""
    STRAIGHT = "straight"
    BEZIER = "bezier"
    STEP = "step"


def generate_node_id() -> str:
    """Generate a unique node ID."""
    return f"node-{uuid.uuid4().hex[:8]}"


def generate_connection_id() -> str:
    """Generate a unique connection ID."""
    return f"connection-{uuid.uuid4().hex[:8]}"


def generate_workflow_id() -> str:
    """Generate a unique workflow ID."""
    return f"workflow-{uuid.uuid4().hex[:8]}"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Position(_Frozen):
    """A point. Canvas-logical or screen units depending on context."""
    x: float = 0.0
    y: float = 0.0

    @field_validator("x", "y")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinates must be finite numbers")
        return value

    def __add__(self, other: "Position") -> "Position":
        return Position(x=self.x + other.x, y=self.y + other.y)

    def __sub__(self, other: "Position") -> "Position":
        return Position(x=self.x - other.x, y=self.y - other.y)


class Tooltip(_Frozen):
    """Hover text attached to a node or connection."""
    text: str
    always_visible: bool = Field(default=False, alias="alwaysVisible")


class Node(_Frozen):
    """A node in the workflow."""
    id: str = Field(default_factory=generate_node_id)
    type: str = NodeType.TASK.value
    title: str = "New Node"
    description: Optional[str] = None
    position: Position = Field(default_factory=Position)
    width: Optional[float] = None
    height: Optional[float] = None
    # Presentation hints (shape, colors, icon visibility); opaque to the engine
    data: dict[str, Any] = Field(default_factory=dict)
    tooltip: Optional[Tooltip] = None

    @field_validator("type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        return NodeType(value).value

    @field_validator("width", "height")
    @classmethod
    def _finite_size(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and (not math.isfinite(value) or value < 0):
            raise ValueError("node size must be a finite, non-negative number")
        return value

    def size(self) -> tuple[float, float]:
        """Width and height, falling back to the default size when unset."""
        width = DEFAULT_NODE_WIDTH if self.width is None else self.width
        height = DEFAULT_NODE_HEIGHT if self.height is None else self.height
        return (width, height)

    def center(self) -> Position:
        """Get the center point of the node."""
        width, height = self.size()
        return Position(x=self.position.x + width / 2, y=self.position.y + height / 2)

    def bounds(self) -> tuple[float, float, float, float]:
        """Get the bounding box (x, y, right, bottom)."""
        width, height = self.size()
        return (self.position.x, self.position.y,
                self.position.x + width, self.position.y + height)


class Connection(_Frozen):
    """A directed connection between two nodes."""
    id: str = Field(default_factory=generate_connection_id)
    source: str  # Source node ID
    target: str  # Target node ID
    label: Optional[str] = None
    style: Optional[str] = None  # straight/bezier/step, None renders as bezier
    animated: bool = False
    color: Optional[str] = None
    tooltip: Optional[Tooltip] = None

    @field_validator("style")
    @classmethod
    def _known_style(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return ConnectionStyle(value).value


class Workflow(_Frozen):
    """
    The complete workflow structure.
    This is what gets exported/imported and handed to storage.
    """
    id: str = Field(default_factory=generate_workflow_id)
    title: str = "New Workflow"
    description: Optional[str] = None
    nodes: dict[str, Node] = Field(default_factory=dict)
    connections: dict[str, Connection] = Field(default_factory=dict)
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict with the exported field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_json_dict(cls, data: dict) -> "Workflow":
        """Create a Workflow from a JSON dict."""
        return cls.model_validate(data)

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.nodes.get(node_id)

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def has_connection(self, source: str, target: str) -> bool:
        """True if a connection exists for this exact ordered pair."""
        return any(c.source == source and c.target == target
                   for c in self.connections.values())


class Viewport(_Frozen):
    """Zoom factor and pan offset (screen units) of the canvas view."""
    zoom: float = Field(default=1.0, gt=0, allow_inf_nan=False)
    position: Position = Field(default_factory=Position)

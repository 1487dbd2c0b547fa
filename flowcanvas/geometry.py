"""
Geometry for nodes and connections.

Provides the math the canvas needs to draw and hit-test a workflow:
- Node centers and bounding boxes
- Anchor points where a connection meets its two nodes
- SVG path descriptors for straight, step and bezier connectors
- Point and marquee hit-testing
- The eight resize-handle rules

Anchor points are computed by projecting each node center along the
center-to-center angle by half-width * cos and half-height * sin. This is a
rectangle-edge approximation, not a true ray/box intersection, and for
elongated boxes it can land slightly outside a corner. Rendered connectors
depend on it, so it is kept as is.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, TYPE_CHECKING

from .models import (
    ConnectionStyle,
    MIN_NODE_HEIGHT,
    MIN_NODE_WIDTH,
    Position,
    Viewport,
)
from .viewport import to_screen

if TYPE_CHECKING:
    from .models import Node


ARROW_SIZE = 8.0
ARROW_PULLBACK = 5.0


class ResizeHandle(str, Enum):
    """Edge and corner handles of a node."""
    TOP_LEFT = "top-left"
    TOP = "top"
    TOP_RIGHT = "top-right"
    RIGHT = "right"
    BOTTOM_RIGHT = "bottom-right"
    BOTTOM = "bottom"
    BOTTOM_LEFT = "bottom-left"
    LEFT = "left"


@dataclass(frozen=True)
class Anchors:
    """Screen-space end points of a connection."""
    source_x: float
    source_y: float
    target_x: float
    target_y: float

    def to_dict(self) -> dict:
        return {
            "sourceX": self.source_x,
            "sourceY": self.source_y,
            "targetX": self.target_x,
            "targetY": self.target_y,
        }


@dataclass(frozen=True)
class Rect:
    """A rectangle given by two opposite corners, in any drag direction."""
    x1: float
    y1: float
    x2: float
    y2: float

    @classmethod
    def from_points(cls, start: Position, end: Position) -> "Rect":
        return cls(start.x, start.y, end.x, end.y)

    def normalized(self) -> tuple[float, float, float, float]:
        """(x_min, y_min, x_max, y_max)"""
        return (min(self.x1, self.x2), min(self.y1, self.y2),
                max(self.x1, self.x2), max(self.y1, self.y2))


@dataclass(frozen=True)
class Box:
    """Position and size of a node after a resize step."""
    position: Position
    width: float
    height: float


def node_center(node: "Node") -> Position:
    """Center of a node's bounding box, using the default size when absent."""
    return node.center()


def centers_coincide(source: "Node", target: "Node") -> bool:
    """True when two nodes share a center and the connection angle is undefined."""
    a, b = source.center(), target.center()
    return a.x == b.x and a.y == b.y


def connection_anchors(
    source: "Node",
    target: "Node",
    viewport: Viewport
) -> Optional[Anchors]:
    """
    Compute the screen-space anchor points of a connection.

    Args:
        source: Source node
        target: Target node
        viewport: Viewport used to map the anchors to screen space

    Returns:
        The anchors, or None if the node centers coincide (nothing to draw)
    """
    if centers_coincide(source, target):
        return None

    source_center = source.center()
    target_center = target.center()
    source_width, source_height = source.size()
    target_width, target_height = target.size()

    angle = math.atan2(target_center.y - source_center.y,
                       target_center.x - source_center.x)
    cos_a, sin_a = math.cos(angle), math.sin(angle)

    source_point = Position(
        x=source_center.x + cos_a * (source_width / 2),
        y=source_center.y + sin_a * (source_height / 2),
    )
    target_point = Position(
        x=target_center.x - cos_a * (target_width / 2),
        y=target_center.y - sin_a * (target_height / 2),
    )

    s = to_screen(viewport, source_point)
    t = to_screen(viewport, target_point)
    return Anchors(s.x, s.y, t.x, t.y)


def _num(value: float) -> str:
    """Format a coordinate for a path descriptor (no trailing .0)."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def connection_path(anchors: Anchors, style: Optional[str] = None) -> str:
    """
    Build the SVG path descriptor for a connection.

    - straight: one line segment
    - step: horizontal, vertical, horizontal through the horizontal midpoint
    - bezier (default): cubic curve with control points offset horizontally by
      half the horizontal span, horizontal-tangent at both ends
    """
    sx, sy = anchors.source_x, anchors.source_y
    tx, ty = anchors.target_x, anchors.target_y

    if style == ConnectionStyle.STRAIGHT.value:
        return f"M{_num(sx)},{_num(sy)} L{_num(tx)},{_num(ty)}"

    if style == ConnectionStyle.STEP.value:
        mid_x = (sx + tx) / 2
        return (f"M{_num(sx)},{_num(sy)} L{_num(mid_x)},{_num(sy)} "
                f"L{_num(mid_x)},{_num(ty)} L{_num(tx)},{_num(ty)}")

    dx = abs(tx - sx) * 0.5
    return (f"M{_num(sx)},{_num(sy)} C{_num(sx + dx)},{_num(sy)} "
            f"{_num(tx - dx)},{_num(ty)} {_num(tx)},{_num(ty)}")


def arrow_path(anchors: Anchors, size: float = ARROW_SIZE) -> Optional[str]:
    """
    Arrowhead triangle at the target end of a connection.

    Returns None for a zero-length segment (no direction to point in).
    """
    dx = anchors.target_x - anchors.source_x
    dy = anchors.target_y - anchors.source_y
    length = math.hypot(dx, dy)
    if length == 0:
        return None

    ndx, ndy = dx / length, dy / length
    # Perpendicular
    pdx, pdy = -ndy, ndx

    tip_x = anchors.target_x - ndx * ARROW_PULLBACK
    tip_y = anchors.target_y - ndy * ARROW_PULLBACK
    p1x = tip_x - ndx * size + pdx * size / 2
    p1y = tip_y - ndy * size + pdy * size / 2
    p2x = tip_x - ndx * size - pdx * size / 2
    p2y = tip_y - ndy * size - pdy * size / 2

    return (f"M{_num(tip_x)},{_num(tip_y)} L{_num(p1x)},{_num(p1y)} "
            f"L{_num(p2x)},{_num(p2y)} Z")


def label_position(anchors: Anchors) -> Position:
    """Midpoint of the anchor segment, where a connection label is drawn."""
    return Position(
        x=(anchors.source_x + anchors.target_x) / 2,
        y=(anchors.source_y + anchors.target_y) / 2,
    )


def point_in_node(point: Position, node: "Node") -> bool:
    """Axis-aligned containment test in canvas-logical space (edges included)."""
    left, top, right, bottom = node.bounds()
    return left <= point.x <= right and top <= point.y <= bottom


def rect_overlaps_node(rect: Rect, node: "Node") -> bool:
    """True if any part of the node's box intersects the rectangle."""
    x_min, y_min, x_max, y_max = rect.normalized()
    left, top, right, bottom = node.bounds()
    return right > x_min and left < x_max and bottom > y_min and top < y_max


def find_node_at_point(point: Position, nodes: dict[str, "Node"]) -> Optional[str]:
    """
    Find the top-most node containing a canvas point.

    Nodes inserted later are drawn on top, so they are checked first.
    """
    for node_id in reversed(list(nodes)):
        if point_in_node(point, nodes[node_id]):
            return node_id
    return None


def nodes_in_rect(rect: Rect, nodes: Iterable["Node"]) -> list[str]:
    """IDs of all nodes overlapping a marquee rectangle."""
    return [node.id for node in nodes if rect_overlaps_node(rect, node)]


def resize_box(
    handle: ResizeHandle | str,
    start_position: Position,
    start_width: float,
    start_height: float,
    dx: float,
    dy: float,
    min_width: float = MIN_NODE_WIDTH,
    min_height: float = MIN_NODE_HEIGHT
) -> Box:
    """
    Apply a resize-handle drag to a node box.

    Handles on the left or top also move the position so that the opposite
    edge stays where it was. Width and height never drop below the minimum.

    Args:
        handle: Which handle is being dragged
        start_position: Node position when the drag started
        start_width: Node width when the drag started
        start_height: Node height when the drag started
        dx: Horizontal drag distance in canvas units
        dy: Vertical drag distance in canvas units

    Returns:
        The resulting Box
    """
    handle = ResizeHandle(handle)
    width, height = start_width, start_height
    x, y = start_position.x, start_position.y

    if handle in (ResizeHandle.TOP_LEFT, ResizeHandle.LEFT, ResizeHandle.BOTTOM_LEFT):
        width = max(min_width, start_width - dx)
        x = start_position.x + (start_width - width)
    elif handle in (ResizeHandle.TOP_RIGHT, ResizeHandle.RIGHT, ResizeHandle.BOTTOM_RIGHT):
        width = max(min_width, start_width + dx)

    if handle in (ResizeHandle.TOP_LEFT, ResizeHandle.TOP, ResizeHandle.TOP_RIGHT):
        height = max(min_height, start_height - dy)
        y = start_position.y + (start_height - height)
    elif handle in (ResizeHandle.BOTTOM_LEFT, ResizeHandle.BOTTOM, ResizeHandle.BOTTOM_RIGHT):
        height = max(min_height, start_height + dy)

    return Box(position=Position(x=x, y=y), width=width, height=height)

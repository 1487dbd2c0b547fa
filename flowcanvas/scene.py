"""
Render scene - everything a presentation layer needs to draw one frame.

A Scene is derived data: it is rebuilt from a CanvasState (plus the
controller's transient gesture state) whenever the store changes, and is
never written back.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .geometry import (
    Anchors,
    Rect,
    arrow_path,
    connection_anchors,
    connection_path,
    label_position,
)
from .models import Position, Viewport
from .store import CanvasState
from .viewport import screen_rect, to_screen

SELECTED_CONNECTION_COLOR = "#3b82f6"
CONNECTION_COLOR = "#60a5fa"


class _View(BaseModel):
    model_config = ConfigDict(frozen=True)


class ScreenRect(_View):
    x: float
    y: float
    width: float
    height: float


class NodeView(_View):
    id: str
    type: str
    title: str
    description: Optional[str] = None
    rect: ScreenRect
    selected: bool = False
    primary: bool = False
    connection_source: bool = False
    show_resize_handles: bool = False
    data: dict[str, Any] = Field(default_factory=dict)


class ConnectionView(_View):
    id: str
    source: str
    target: str
    anchors: dict[str, float]
    path: str
    arrow: Optional[str] = None
    label: Optional[str] = None
    label_position: Position
    color: str
    dashed: bool = False
    selected: bool = False


class TempLine(_View):
    anchors: dict[str, float]
    path: str


class Scene(_View):
    viewport: Viewport
    nodes: list[NodeView] = Field(default_factory=list)
    connections: list[ConnectionView] = Field(default_factory=list)
    marquee: Optional[ScreenRect] = None
    temp_line: Optional[TempLine] = None
    cursor: str = "grab"


def _marquee_rect(rect: Rect, viewport: Viewport) -> ScreenRect:
    x_min, y_min, x_max, y_max = rect.normalized()
    top_left = to_screen(viewport, Position(x=x_min, y=y_min))
    bottom_right = to_screen(viewport, Position(x=x_max, y=y_max))
    return ScreenRect(
        x=top_left.x,
        y=top_left.y,
        width=bottom_right.x - top_left.x,
        height=bottom_right.y - top_left.y,
    )


def build_scene(
    state: CanvasState,
    marquee: Optional[Rect] = None,
    temp_line: Optional[Anchors] = None,
    resize_node_id: Optional[str] = None,
    cursor: str = "grab"
) -> Scene:
    """
    Build the render model for a canvas snapshot.

    Args:
        state: Store snapshot
        marquee: Live marquee rectangle in canvas space
        temp_line: Connection line being dragged, in screen space
        resize_node_id: Node that shows resize handles
        cursor: Cursor hint for the canvas background

    Returns:
        The Scene. Connections whose endpoints are missing or whose node
        centers coincide are left out.
    """
    viewport = state.viewport
    nodes = state.workflow.nodes
    selected = set(state.selected_node_ids)

    node_views = []
    for node in nodes.values():
        x, y, width, height = screen_rect(viewport, node)
        node_views.append(NodeView(
            id=node.id,
            type=node.type,
            title=node.title,
            description=node.description,
            rect=ScreenRect(x=x, y=y, width=width, height=height),
            selected=node.id in selected or node.id == state.selected_node_id,
            primary=node.id == state.selected_node_id,
            connection_source=node.id == state.connection_source,
            show_resize_handles=node.id == resize_node_id,
            data=dict(node.data),
        ))

    connection_views = []
    for connection in state.workflow.connections.values():
        source = nodes.get(connection.source)
        target = nodes.get(connection.target)
        if source is None or target is None:
            continue
        anchors = connection_anchors(source, target, viewport)
        if anchors is None:
            continue

        is_selected = connection.id == state.selected_connection_id
        if connection.color:
            color = connection.color
        elif is_selected:
            color = SELECTED_CONNECTION_COLOR
        else:
            color = CONNECTION_COLOR

        connection_views.append(ConnectionView(
            id=connection.id,
            source=connection.source,
            target=connection.target,
            anchors=anchors.to_dict(),
            path=connection_path(anchors, connection.style),
            arrow=arrow_path(anchors),
            label=connection.label,
            label_position=label_position(anchors),
            color=color,
            dashed=connection.animated,
            selected=is_selected,
        ))

    temp = None
    if temp_line is not None:
        temp = TempLine(anchors=temp_line.to_dict(), path=connection_path(temp_line))

    return Scene(
        viewport=viewport,
        nodes=node_views,
        connections=connection_views,
        marquee=_marquee_rect(marquee, viewport) if marquee is not None else None,
        temp_line=temp,
        cursor=cursor,
    )

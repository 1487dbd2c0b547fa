"""
Interaction Controller - turns input events into store actions.

This controller owns everything about a gesture that is not part of the
workflow itself: the active mode, drag anchors, the marquee rectangle and
the temporary connection line. It coordinates between:
- Normalized input events (flowcanvas.events)
- The viewport transform, to convert client -> screen -> canvas coordinates
- The geometry engine, for hit-testing, marquee overlap and resize rules
- The graph store, which receives the resulting actions

Exactly one mode is active at a time. A pointer-down that starts a new
gesture first finishes whatever mode was still active.

Coordinate spaces:
- client: what the toolkit reports (relative to the window)
- screen: relative to the canvas element, i.e. client - canvas origin
- canvas: logical units the nodes are stored in (see flowcanvas.viewport)
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union

from . import actions as a
from .events import (
    DoubleClick,
    HitTarget,
    InputEvent,
    KeyDown,
    PointerCancel,
    PointerDown,
    PointerMove,
    PointerUp,
    PRIMARY_BUTTON,
    TargetKind,
    Wheel,
)
from .geometry import (
    Anchors,
    Box,
    Rect,
    ResizeHandle,
    find_node_at_point,
    nodes_in_rect,
    resize_box,
)
from .models import (
    ConnectionStyle,
    Connection,
    DEFAULT_NODE_HEIGHT,
    DEFAULT_NODE_WIDTH,
    Node,
    NodeType,
    Position,
)
from .scene import Scene, build_scene
from .store import CanvasState, GraphStore
from .viewport import clamp_zoom, to_canvas, to_screen, zoom_toward

logger = logging.getLogger(__name__)


PAN_SENSITIVITY = 1.5   # higher = less sensitive
PAN_JITTER = 1.0        # pan steps smaller than this are ignored
ZOOM_STEP = 0.05        # per wheel notch
BUTTON_ZOOM_STEP = 0.1  # toolbar +/- buttons
PRECISION_FACTOR = 0.5  # wheel step multiplier while Ctrl is held

RESET_VIEW_KEY = " "
CANCEL_KEY = "Escape"
DELETE_KEYS = ("Delete", "Backspace")

DELETE_NODE_TITLE = "Delete Node"
DELETE_NODE_MESSAGE = "Are you sure you want to delete this node? This action cannot be undone."
CLEAR_CANVAS_TITLE = "Clear Canvas"
CLEAR_CANVAS_MESSAGE = ("Are you sure you want to clear the canvas? "
                        "This will delete all nodes and connections.")

Confirmer = Callable[[str, str], bool]
SizeProvider = Callable[[Node], Optional[tuple[float, float]]]


# --- Modes ---

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Panning:
    last: Position  # client


@dataclass(frozen=True)
class DraggingNode:
    node_id: str
    start: Position       # client
    node_start: Position  # canvas


@dataclass(frozen=True)
class MarqueeSelecting:
    start: Position  # canvas
    end: Position    # canvas


@dataclass(frozen=True)
class Connecting:
    source_id: str
    pointer: Position  # screen


@dataclass(frozen=True)
class Resizing:
    node_id: str
    handle: ResizeHandle
    start: Position  # client
    box: Box         # canvas, at grab time


Mode = Union[Idle, Panning, DraggingNode, MarqueeSelecting, Connecting, Resizing]


def _always_confirm(title: str, message: str) -> bool:
    return True


class InteractionController:
    """Mode-exclusive state machine over pointer and keyboard input."""

    def __init__(self, store: GraphStore,
                 confirm: Optional[Confirmer] = None,
                 size_provider: Optional[SizeProvider] = None):
        self._store = store
        self._mode: Mode = Idle()
        self._origin = Position()
        self._resize_target: Optional[str] = None
        self._confirm = confirm or _always_confirm
        self._size_provider = size_provider
        self._handlers: dict[type, Callable] = {
            PointerDown: self._on_pointer_down,
            PointerMove: self._on_pointer_move,
            PointerUp: self._on_pointer_up,
            DoubleClick: self._on_double_click,
            Wheel: self._on_wheel,
            KeyDown: self._on_key_down,
            PointerCancel: self._on_pointer_cancel,
        }

    # --- Properties ---

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def state(self) -> CanvasState:
        return self._store.state

    @property
    def mode(self) -> Mode:
        """The active interaction mode."""
        return self._mode

    @property
    def resize_target(self) -> Optional[str]:
        """Node currently showing resize handles, if any."""
        return self._resize_target

    @property
    def marquee(self) -> Optional[Rect]:
        """Live marquee rectangle in canvas space."""
        if isinstance(self._mode, MarqueeSelecting):
            return Rect.from_points(self._mode.start, self._mode.end)
        return None

    @property
    def temp_line(self) -> Optional[Anchors]:
        """Screen-space line from the connection source to the pointer."""
        if not isinstance(self._mode, Connecting):
            return None
        source = self.state.workflow.nodes.get(self._mode.source_id)
        if source is None:
            return None
        start = to_screen(self.state.viewport, source.center())
        end = self._mode.pointer
        return Anchors(start.x, start.y, end.x, end.y)

    # --- Coordinate spaces ---

    def set_canvas_origin(self, x: float, y: float):
        """Top-left corner of the canvas element in client coordinates."""
        self._origin = Position(x=x, y=y)

    def client_to_screen(self, point: Position) -> Position:
        return point - self._origin

    def client_to_canvas(self, point: Position) -> Position:
        return to_canvas(self.state.viewport, self.client_to_screen(point))

    # --- Event entry points ---

    def handle(self, event: InputEvent) -> CanvasState:
        """Process one event and return the resulting store snapshot."""
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug("No handler for event %r", event)
            return self.state
        handler(event)
        return self.state

    def handle_all(self, events: Iterable[InputEvent]) -> CanvasState:
        """Process events strictly in arrival order."""
        for event in events:
            self.handle(event)
        return self.state

    def scene(self) -> Scene:
        """Render model of the current state plus transient gesture state."""
        if isinstance(self._mode, Panning):
            cursor = "grabbing"
        elif isinstance(self._mode, MarqueeSelecting):
            cursor = "crosshair"
        else:
            cursor = "grab"
        return build_scene(
            self.state,
            marquee=self.marquee,
            temp_line=self.temp_line,
            resize_node_id=self._resize_target,
            cursor=cursor,
        )

    # --- Internals ---

    def _dispatch(self, action: a.Action) -> CanvasState:
        return self._store.dispatch(action)

    def _enter(self, mode: Mode):
        if type(mode) is not type(self._mode):
            logger.debug("Mode %s -> %s", type(self._mode).__name__, type(mode).__name__)
        self._mode = mode

    def _hit_test(self, event) -> HitTarget:
        point = self.client_to_canvas(event.client)
        node_id = find_node_at_point(point, self.state.workflow.nodes)
        if node_id is not None:
            return HitTarget.node(node_id)
        return HitTarget.background()

    def _finish_mode(self):
        """Complete the active mode as if its gesture had ended normally."""
        mode = self._mode
        if isinstance(mode, MarqueeSelecting):
            self._commit_marquee(mode)
        elif isinstance(mode, DraggingNode):
            self._dispatch(a.SetDragging(value=False))
        elif isinstance(mode, Resizing):
            self._resize_target = None
        elif isinstance(mode, Connecting):
            self.cancel_connection()
        self._enter(Idle())

    def _abort_mode(self):
        """Drop the active mode without completing it."""
        mode = self._mode
        if isinstance(mode, DraggingNode):
            self._dispatch(a.SetDragging(value=False))
        elif isinstance(mode, Resizing):
            self._resize_target = None
        elif isinstance(mode, Connecting):
            self.cancel_connection()
        self._enter(Idle())

    # --- Pointer down ---

    def _on_pointer_down(self, event: PointerDown):
        if event.button != PRIMARY_BUTTON:
            return
        target = event.target or self._hit_test(event)

        if target.kind == TargetKind.BACKGROUND:
            self._background_down(event)
        elif target.kind == TargetKind.NODE:
            self._node_down(event, target.id)
        elif target.kind == TargetKind.CONNECTOR:
            self.start_connection(target.id, event.client)
        elif target.kind == TargetKind.RESIZE_HANDLE:
            self._start_resize(target.id, target.handle, event.client)
        elif target.kind == TargetKind.CONNECTION:
            self._finish_mode()
            self._dispatch(a.SelectConnection(id=target.id))

    def _background_down(self, event: PointerDown):
        if isinstance(self._mode, Connecting):
            self._dispatch(a.ClearSelection())
            self.cancel_connection()
            return

        self._finish_mode()
        self._dispatch(a.ClearSelection())

        mods = event.modifiers
        if mods.ctrl or mods.shift:
            start = self.client_to_canvas(event.client)
            self._enter(MarqueeSelecting(start=start, end=start))
            return

        self._dispatch(a.SetMultiSelecting(value=mods.ctrl))
        self._enter(Panning(last=event.client))

    def _node_down(self, event: PointerDown, node_id: str):
        # While connecting, the gesture completes on pointer-up over the target
        if isinstance(self._mode, Connecting):
            return

        self._finish_mode()
        node = self.state.workflow.nodes.get(node_id)
        if node is None:
            return

        if node_id in self.state.selected_node_ids:
            self._dispatch(a.SetMultiSelecting(value=True))
        else:
            ctrl = event.modifiers.ctrl
            self._dispatch(a.SetMultiSelecting(value=ctrl))
            if ctrl:
                self._dispatch(a.AddToSelection(id=node_id))
            else:
                self._dispatch(a.SelectNode(id=node_id))

        self._dispatch(a.SetDragging(value=True))
        self._enter(DraggingNode(node_id=node_id, start=event.client,
                                 node_start=node.position))

    def _start_resize(self, node_id: str, handle: Optional[ResizeHandle], client: Position):
        node = self.state.workflow.nodes.get(node_id)
        if node is None or handle is None:
            return
        self._finish_mode()
        width, height = node.size()
        self._resize_target = node_id
        self._enter(Resizing(
            node_id=node_id,
            handle=ResizeHandle(handle),
            start=client,
            box=Box(position=node.position, width=width, height=height),
        ))

    # --- Pointer move ---

    def _on_pointer_move(self, event: PointerMove):
        mode = self._mode
        if isinstance(mode, Panning):
            self._pan_move(mode, event.client)
        elif isinstance(mode, MarqueeSelecting):
            self._enter(MarqueeSelecting(start=mode.start, end=self.client_to_canvas(event.client)))
        elif isinstance(mode, DraggingNode):
            self._drag_move(mode, event.client)
        elif isinstance(mode, Connecting):
            self._enter(Connecting(source_id=mode.source_id,
                                   pointer=self.client_to_screen(event.client)))
        elif isinstance(mode, Resizing):
            self._resize_move(mode, event.client)

    def _pan_move(self, mode: Panning, client: Position):
        dx = (client.x - mode.last.x) / PAN_SENSITIVITY
        dy = (client.y - mode.last.y) / PAN_SENSITIVITY
        if abs(dx) < PAN_JITTER and abs(dy) < PAN_JITTER:
            return
        pan = self.state.viewport.position
        self._dispatch(a.Pan(position=Position(x=pan.x + dx, y=pan.y + dy)))
        self._enter(Panning(last=client))

    def _drag_move(self, mode: DraggingNode, client: Position):
        node = self.state.workflow.nodes.get(mode.node_id)
        if node is None:
            # Deleted mid-drag
            self._abort_mode()
            return

        zoom = self.state.viewport.zoom
        new_position = Position(
            x=mode.node_start.x + (client.x - mode.start.x) / zoom,
            y=mode.node_start.y + (client.y - mode.start.y) / zoom,
        )

        if mode.node_id in self.state.selected_node_ids:
            offset = new_position - node.position
            if offset.x or offset.y:
                self._dispatch(a.MoveSelectedNodes(offset=offset))
        else:
            self._dispatch(a.MoveNode(id=mode.node_id, position=new_position))

    def _resize_move(self, mode: Resizing, client: Position):
        zoom = self.state.viewport.zoom
        box = resize_box(
            mode.handle,
            mode.box.position,
            mode.box.width,
            mode.box.height,
            (client.x - mode.start.x) / zoom,
            (client.y - mode.start.y) / zoom,
        )
        self._dispatch(a.UpdateNode(id=mode.node_id, changes={
            "position": box.position,
            "width": box.width,
            "height": box.height,
        }))

    # --- Pointer up ---

    def _on_pointer_up(self, event: PointerUp):
        mode = self._mode
        if isinstance(mode, MarqueeSelecting):
            end = self.client_to_canvas(event.client)
            self._commit_marquee(MarqueeSelecting(start=mode.start, end=end))
            self._enter(Idle())
        elif isinstance(mode, Connecting):
            target = event.target or self._hit_test(event)
            if target.kind in (TargetKind.NODE, TargetKind.CONNECTOR) and target.id != mode.source_id:
                self.complete_connection(target.id)
            else:
                self._enter(Connecting(source_id=mode.source_id,
                                       pointer=self.client_to_screen(event.client)))
        elif not isinstance(mode, Idle):
            self._finish_mode()

    def _commit_marquee(self, mode: MarqueeSelecting):
        rect = Rect.from_points(mode.start, mode.end)
        matches = nodes_in_rect(rect, self.state.workflow.nodes.values())
        self._dispatch(a.SetMultiSelecting(value=True))
        self._dispatch(a.ClearSelection())
        for node_id in matches:
            self._dispatch(a.AddToSelection(id=node_id))
        logger.debug("Marquee selected %d node(s)", len(matches))

    # --- Other events ---

    def _on_double_click(self, event: DoubleClick):
        target = event.target or self._hit_test(event)
        if target.kind == TargetKind.BACKGROUND:
            self.add_node_at(event.client, title="New Task")
        elif target.kind == TargetKind.NODE:
            self._dispatch(a.SelectNode(id=target.id))

    def _on_wheel(self, event: Wheel):
        if event.delta_y == 0:
            return
        step = ZOOM_STEP
        if event.modifiers.ctrl:
            step *= PRECISION_FACTOR
        direction = 1 if event.delta_y < 0 else -1

        viewport = self.state.viewport
        new_zoom = clamp_zoom(viewport.zoom + direction * step)
        if new_zoom == viewport.zoom:
            return

        zoomed = zoom_toward(viewport, self.client_to_screen(event.client), new_zoom)
        self._dispatch(a.Zoom(value=zoomed.zoom))
        self._dispatch(a.Pan(position=zoomed.position))

    def _on_key_down(self, event: KeyDown):
        if event.key == CANCEL_KEY:
            if isinstance(self._mode, Connecting):
                self.cancel_connection()
            elif not isinstance(self._mode, Idle):
                self._abort_mode()
            elif self.state.selected_node_id or self.state.selected_node_ids \
                    or self.state.selected_connection_id:
                self._dispatch(a.ClearSelection())
        elif event.key in DELETE_KEYS:
            self.delete_selected_connection()
        elif event.key == RESET_VIEW_KEY:
            self.reset_view()

    def _on_pointer_cancel(self, event: PointerCancel):
        self._abort_mode()

    # --- Connecting ---

    def start_connection(self, node_id: str, client: Position) -> bool:
        """Begin dragging a connection out of a node's connector handle."""
        if node_id not in self.state.workflow.nodes:
            return False
        self._finish_mode()
        self._dispatch(a.SetConnectionSource(id=node_id))
        self._dispatch(a.SetConnecting(value=True))
        self._enter(Connecting(source_id=node_id, pointer=self.client_to_screen(client)))
        return True

    def complete_connection(self, target_id: str) -> Optional[Connection]:
        """
        Finish the connect gesture on a target node.

        A connection is only created if none exists yet for the same ordered
        (source, target) pair. Either way connecting mode ends, except when
        the target is the source itself, which is ignored.

        Returns:
            The created connection, or None
        """
        if not isinstance(self._mode, Connecting):
            return None
        source_id = self._mode.source_id
        if target_id == source_id or target_id not in self.state.workflow.nodes:
            return None

        created = None
        if not self.state.workflow.has_connection(source_id, target_id):
            created = Connection(
                source=source_id,
                target=target_id,
                style=ConnectionStyle.BEZIER.value,
                animated=False,
            )
            self._dispatch(a.AddConnection(connection=created))
            logger.info("Connected %s -> %s (%s)", source_id, target_id, created.id)

        self._dispatch(a.SetConnecting(value=False))
        self._dispatch(a.SetConnectionSource(id=None))
        self._enter(Idle())
        return created

    def cancel_connection(self):
        """Leave connecting mode and drop the temporary line."""
        self._dispatch(a.SetConnecting(value=False))
        self._dispatch(a.SetConnectionSource(id=None))
        self._enter(Idle())

    # --- Toolbar and context-menu operations ---

    def add_node_at(self, client: Position, node_type: str = NodeType.TASK.value,
                    title: str = "New Node") -> Node:
        """Create a node with its top-left corner at a client point and select it."""
        node = Node(
            type=node_type,
            title=title,
            position=self.client_to_canvas(client),
            width=DEFAULT_NODE_WIDTH,
            height=DEFAULT_NODE_HEIGHT,
        )
        if self._size_provider is not None:
            measured = self._size_provider(node)
            if measured:
                node = node.model_copy(update={"width": measured[0], "height": measured[1]})
        self._dispatch(a.AddNode(node=node))
        self._dispatch(a.SelectNode(id=node.id))
        return node

    def zoom_in(self) -> CanvasState:
        return self._dispatch(a.Zoom(value=clamp_zoom(self.state.viewport.zoom + BUTTON_ZOOM_STEP)))

    def zoom_out(self) -> CanvasState:
        return self._dispatch(a.Zoom(value=clamp_zoom(self.state.viewport.zoom - BUTTON_ZOOM_STEP)))

    def reset_view(self) -> CanvasState:
        return self._dispatch(a.ResetView())

    def select_all(self) -> CanvasState:
        return self._dispatch(a.SelectAllNodes())

    def enable_resize(self, node_id: str) -> bool:
        """Show resize handles on a node until the next resize gesture ends."""
        if node_id not in self.state.workflow.nodes:
            return False
        self._resize_target = node_id
        return True

    def delete_selected_connection(self) -> bool:
        connection_id = self.state.selected_connection_id
        if not connection_id:
            return False
        self._dispatch(a.DeleteConnection(id=connection_id))
        return True

    def request_delete_node(self, node_id: str) -> bool:
        """Delete a node (and its connections) after confirmation."""
        if node_id not in self.state.workflow.nodes:
            return False
        if not self._confirm(DELETE_NODE_TITLE, DELETE_NODE_MESSAGE):
            return False
        if isinstance(self._mode, (DraggingNode, Resizing)) and self._mode.node_id == node_id:
            self._abort_mode()
        if self._resize_target == node_id:
            self._resize_target = None
        self._dispatch(a.DeleteNode(id=node_id))
        return True

    def request_clear_canvas(self) -> bool:
        """Remove every node and connection after confirmation."""
        if not self._confirm(CLEAR_CANVAS_TITLE, CLEAR_CANVAS_MESSAGE):
            return False
        self._abort_mode()
        self._resize_target = None
        self._dispatch(a.ClearCanvas())
        return True

    def cancel(self):
        """Abort whatever gesture is in progress."""
        self._abort_mode()

"""
Normalized input events.

The interaction controller consumes these instead of toolkit callbacks, so
any front end (browser, desktop, test script) can drive a canvas by sending
the same small set of events. Coordinates are client coordinates, i.e. the
space the windowing toolkit reports pointer positions in.

An event may name what the front end found under the pointer (``target``).
Without one, the controller hit-tests the nodes itself.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .geometry import ResizeHandle
from .models import Position

PRIMARY_BUTTON = 0


class TargetKind(str, Enum):
    """What a pointer event landed on."""
    BACKGROUND = "background"
    NODE = "node"
    CONNECTOR = "connector"          # a node's connection handle
    RESIZE_HANDLE = "resize_handle"
    CONNECTION = "connection"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class Modifiers(_Event):
    shift: bool = False
    ctrl: bool = False
    alt: bool = False
    meta: bool = False


class HitTarget(_Event):
    kind: TargetKind
    id: Optional[str] = None  # node or connection id
    handle: Optional[ResizeHandle] = None

    @classmethod
    def background(cls) -> "HitTarget":
        return cls(kind=TargetKind.BACKGROUND)

    @classmethod
    def node(cls, node_id: str) -> "HitTarget":
        return cls(kind=TargetKind.NODE, id=node_id)

    @classmethod
    def connector(cls, node_id: str) -> "HitTarget":
        return cls(kind=TargetKind.CONNECTOR, id=node_id)

    @classmethod
    def resize_handle(cls, node_id: str, handle: ResizeHandle | str) -> "HitTarget":
        return cls(kind=TargetKind.RESIZE_HANDLE, id=node_id, handle=ResizeHandle(handle))

    @classmethod
    def connection(cls, connection_id: str) -> "HitTarget":
        return cls(kind=TargetKind.CONNECTION, id=connection_id)


class _PointerEvent(_Event):
    x: float  # client coordinates
    y: float
    button: int = PRIMARY_BUTTON
    modifiers: Modifiers = Field(default_factory=Modifiers)
    target: Optional[HitTarget] = None

    @property
    def client(self) -> Position:
        return Position(x=self.x, y=self.y)


class PointerDown(_PointerEvent):
    kind: Literal["pointer_down"] = "pointer_down"


class PointerMove(_PointerEvent):
    kind: Literal["pointer_move"] = "pointer_move"


class PointerUp(_PointerEvent):
    kind: Literal["pointer_up"] = "pointer_up"


class DoubleClick(_PointerEvent):
    kind: Literal["double_click"] = "double_click"


class Wheel(_PointerEvent):
    kind: Literal["wheel"] = "wheel"
    delta_y: float = 0.0  # negative scrolls up and zooms in


class KeyDown(_Event):
    kind: Literal["key_down"] = "key_down"
    key: str
    modifiers: Modifiers = Field(default_factory=Modifiers)


class PointerCancel(_Event):
    """The pointer capture was lost (window blur, pointer left the canvas)."""
    kind: Literal["pointer_cancel"] = "pointer_cancel"


InputEvent = Annotated[
    Union[PointerDown, PointerMove, PointerUp, DoubleClick, Wheel, KeyDown, PointerCancel],
    Field(discriminator="kind"),
]

_event_adapter = TypeAdapter(InputEvent)
_event_list_adapter = TypeAdapter(list[InputEvent])


def parse_event(data: dict) -> InputEvent:
    """Validate a raw dict (e.g. decoded JSON) into an input event."""
    return _event_adapter.validate_python(data)


def parse_events(data: list) -> list[InputEvent]:
    """Validate a list of raw dicts into input events."""
    return _event_list_adapter.validate_python(data)

"""
Viewport transform - mapping between canvas-logical and screen space.

    screen = canvas * zoom + pan_offset
    canvas = (screen - pan_offset) / zoom

Every function here is pure: it reads a Viewport and returns new values.
"""

from typing import TYPE_CHECKING

from .models import Position, Viewport

if TYPE_CHECKING:
    from .models import Node


MIN_ZOOM = 0.2
MAX_ZOOM = 2.0


def to_screen(viewport: Viewport, point: Position) -> Position:
    """Map a canvas-logical point to screen space."""
    return Position(
        x=point.x * viewport.zoom + viewport.position.x,
        y=point.y * viewport.zoom + viewport.position.y,
    )


def to_canvas(viewport: Viewport, point: Position) -> Position:
    """Map a screen point back to canvas-logical space (inverse of to_screen)."""
    return Position(
        x=(point.x - viewport.position.x) / viewport.zoom,
        y=(point.y - viewport.position.y) / viewport.zoom,
    )


def clamp_zoom(zoom: float) -> float:
    """Clamp a zoom factor to the supported range."""
    return max(MIN_ZOOM, min(MAX_ZOOM, zoom))


def zoom_toward(viewport: Viewport, cursor: Position, new_zoom: float) -> Viewport:
    """
    Change the zoom while keeping the screen point under the cursor fixed.

    Args:
        viewport: Current viewport
        cursor: Cursor position in screen space
        new_zoom: Target zoom factor (expected to be clamped already)

    Returns:
        A new Viewport with the new zoom and a re-derived pan offset
    """
    old_zoom = viewport.zoom
    pan = viewport.position
    factor = (new_zoom - old_zoom) / old_zoom
    return Viewport(
        zoom=new_zoom,
        position=Position(
            x=pan.x - (cursor.x - pan.x) * factor,
            y=pan.y - (cursor.y - pan.y) * factor,
        ),
    )


def screen_rect(viewport: Viewport, node: "Node") -> tuple[float, float, float, float]:
    """Screen rectangle (x, y, width, height) the presentation layer draws a node in."""
    origin = to_screen(viewport, node.position)
    width, height = node.size()
    return (origin.x, origin.y, width * viewport.zoom, height * viewport.zoom)

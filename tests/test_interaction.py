"""
Tests for the interaction controller.

Events are fed in client coordinates. Unless a test moves it, the canvas
origin is at (0, 0) and the viewport is the identity, so client, screen and
canvas coordinates coincide.
"""

import pytest

from flowcanvas import actions as a
from flowcanvas.events import (
    DoubleClick,
    HitTarget,
    KeyDown,
    Modifiers,
    PointerCancel,
    PointerDown,
    PointerMove,
    PointerUp,
    Wheel,
    parse_events,
)
from flowcanvas.interaction import (
    Connecting,
    DraggingNode,
    Idle,
    InteractionController,
    MarqueeSelecting,
    Panning,
    Resizing,
)
from flowcanvas.geometry import Anchors, Rect
from flowcanvas.models import Position
from flowcanvas.viewport import MAX_ZOOM, MIN_ZOOM, to_canvas

from conftest import make_node


def add_nodes(store, *nodes):
    for node in nodes:
        store.dispatch(a.AddNode(node=node))
    store.dispatch(a.ClearSelection())


@pytest.fixture
def two_nodes(store):
    add_nodes(store, make_node("n1", 0, 0), make_node("n2", 300, 0))
    return store


class TestPanning:
    def test_background_drag_pans(self, controller, store):
        controller.handle(PointerDown(x=500, y=500))
        assert isinstance(controller.mode, Panning)

        controller.handle(PointerMove(x=515, y=530))
        assert store.viewport.position == Position(x=10, y=20)

        controller.handle(PointerUp(x=515, y=530))
        assert isinstance(controller.mode, Idle)

    def test_sub_unit_steps_are_ignored(self, controller, store):
        controller.handle(PointerDown(x=500, y=500))
        controller.handle(PointerMove(x=501, y=501))
        assert store.viewport.position == Position(x=0, y=0)
        # The anchor did not move, so the deltas accumulate
        controller.handle(PointerMove(x=502, y=502))
        assert store.viewport.position.x == pytest.approx(2 / 1.5)

    def test_background_click_clears_selection(self, controller, two_nodes):
        two_nodes.dispatch(a.SelectAllNodes())
        controller.handle(PointerDown(x=900, y=900))
        assert two_nodes.state.selected_node_ids == ()
        assert two_nodes.state.selected_node_id is None

    def test_secondary_button_is_ignored(self, controller, store):
        controller.handle(PointerDown(x=500, y=500, button=2))
        assert isinstance(controller.mode, Idle)

    def test_cursor_hint(self, controller):
        assert controller.scene().cursor == "grab"
        controller.handle(PointerDown(x=500, y=500))
        assert controller.scene().cursor == "grabbing"


class TestMarquee:
    @pytest.fixture
    def boxes(self, store):
        add_nodes(store,
                  make_node("A", 0, 0, width=100, height=100),
                  make_node("B", 200, 200, width=100, height=100))
        return store

    def test_selects_overlapping_nodes(self, controller, boxes):
        controller.handle_all([
            PointerDown(x=50, y=50, modifiers=Modifiers(shift=True), target=HitTarget.background()),
            PointerMove(x=150, y=150),
        ])
        assert isinstance(controller.mode, MarqueeSelecting)
        assert controller.marquee == Rect(50, 50, 150, 150)
        assert controller.scene().cursor == "crosshair"
        # Nothing is selected until release
        assert boxes.state.selected_node_ids == ()

        controller.handle(PointerUp(x=150, y=150))
        assert boxes.state.selected_node_ids == ("A",)
        assert boxes.state.is_multi_selecting
        assert isinstance(controller.mode, Idle)

    def test_ctrl_also_starts_marquee(self, controller, boxes):
        controller.handle(PointerDown(x=400, y=400, modifiers=Modifiers(ctrl=True)))
        assert isinstance(controller.mode, MarqueeSelecting)

    def test_empty_marquee_clears_selection(self, controller, boxes):
        boxes.dispatch(a.SelectAllNodes())
        controller.handle_all([
            PointerDown(x=400, y=0, modifiers=Modifiers(shift=True)),
            PointerMove(x=500, y=100),
            PointerUp(x=500, y=100),
        ])
        assert boxes.state.selected_node_ids == ()

    def test_backwards_drag_selects_both(self, controller, boxes):
        controller.handle_all([
            PointerDown(x=350, y=350, modifiers=Modifiers(shift=True)),
            PointerMove(x=-10, y=-10),
            PointerUp(x=-10, y=-10),
        ])
        assert set(boxes.state.selected_node_ids) == {"A", "B"}

    def test_marquee_respects_viewport(self, controller, boxes):
        boxes.dispatch(a.Zoom(value=2.0))
        # Screen (100, 100)-(300, 300) is canvas (50, 50)-(150, 150)
        controller.handle_all([
            PointerDown(x=100, y=100, modifiers=Modifiers(shift=True), target=HitTarget.background()),
            PointerMove(x=300, y=300),
            PointerUp(x=300, y=300),
        ])
        assert boxes.state.selected_node_ids == ("A",)

    def test_new_gesture_completes_active_marquee(self, controller, boxes):
        controller.handle_all([
            PointerDown(x=-50, y=-50, modifiers=Modifiers(shift=True)),
            PointerMove(x=50, y=50),
            # Pointer-up was lost; a connector drag starts instead
            PointerDown(x=300, y=250, target=HitTarget.connector("B")),
        ])
        assert boxes.state.selected_node_ids == ("A",)
        assert isinstance(controller.mode, Connecting)


class TestNodeDrag:
    def test_click_selects_and_drag_moves(self, controller, two_nodes):
        controller.handle(PointerDown(x=50, y=50))
        assert two_nodes.state.selected_node_id == "n1"
        assert two_nodes.state.selected_node_ids == ("n1",)
        assert two_nodes.state.is_dragging
        assert isinstance(controller.mode, DraggingNode)

        controller.handle(PointerMove(x=70, y=80))
        assert two_nodes.workflow.nodes["n1"].position == Position(x=20, y=30)

        controller.handle(PointerUp(x=70, y=80))
        assert not two_nodes.state.is_dragging
        assert isinstance(controller.mode, Idle)

    def test_drag_distance_is_divided_by_zoom(self, controller, two_nodes):
        two_nodes.dispatch(a.Zoom(value=2.0))
        controller.handle_all([
            PointerDown(x=50, y=50),
            PointerMove(x=90, y=70),
        ])
        assert two_nodes.workflow.nodes["n1"].position == Position(x=20, y=10)

    def test_dragging_a_selected_node_moves_the_selection(self, controller, two_nodes):
        two_nodes.dispatch(a.SelectAllNodes())
        controller.handle_all([
            PointerDown(x=50, y=50, target=HitTarget.node("n1")),
            PointerMove(x=60, y=65),
            PointerMove(x=70, y=80),
        ])
        assert two_nodes.state.selected_node_ids == ("n1", "n2")
        assert two_nodes.state.is_multi_selecting
        assert two_nodes.workflow.nodes["n1"].position == Position(x=20, y=30)
        assert two_nodes.workflow.nodes["n2"].position == Position(x=320, y=30)

    def test_ctrl_click_adds_to_selection(self, controller, two_nodes):
        controller.handle_all([
            PointerDown(x=50, y=50),
            PointerUp(x=50, y=50),
            PointerDown(x=350, y=50, modifiers=Modifiers(ctrl=True)),
            PointerUp(x=350, y=50),
        ])
        assert two_nodes.state.selected_node_ids == ("n1", "n2")
        assert two_nodes.state.selected_node_id == "n2"

    def test_plain_click_replaces_selection(self, controller, two_nodes):
        controller.handle_all([
            PointerDown(x=50, y=50),
            PointerUp(x=50, y=50),
            PointerDown(x=350, y=50),
            PointerUp(x=350, y=50),
        ])
        assert two_nodes.state.selected_node_ids == ("n2",)

    def test_pointer_cancel_ends_drag(self, controller, two_nodes):
        controller.handle_all([PointerDown(x=50, y=50), PointerCancel()])
        assert not two_nodes.state.is_dragging
        assert isinstance(controller.mode, Idle)

    def test_node_deleted_mid_drag(self, controller, two_nodes):
        controller.handle(PointerDown(x=50, y=50))
        two_nodes.dispatch(a.DeleteNode(id="n1"))
        controller.handle(PointerMove(x=80, y=80))
        assert isinstance(controller.mode, Idle)
        assert "n1" not in two_nodes.workflow.nodes


class TestConnecting:
    def test_end_to_end(self, controller, store):
        store.dispatch(a.AddNode(node=make_node("n1", 0, 0)))
        store.dispatch(a.AddNode(node=make_node("n2", 300, 0)))

        controller.handle(PointerDown(x=200, y=50, target=HitTarget.connector("n1")))
        assert isinstance(controller.mode, Connecting)
        assert store.state.is_connecting
        assert store.state.connection_source == "n1"

        controller.handle_all([PointerMove(x=350, y=50), PointerUp(x=400, y=50)])

        connections = list(store.workflow.connections.values())
        assert len(connections) == 1
        assert (connections[0].source, connections[0].target) == ("n1", "n2")
        assert connections[0].style == "bezier"
        assert connections[0].animated is False
        assert store.state.selected_connection_id == connections[0].id
        assert not store.state.is_connecting
        assert isinstance(controller.mode, Idle)

        store.dispatch(a.DeleteNode(id="n1"))
        assert store.workflow.connections == {}
        assert "n2" in store.workflow.nodes

    def test_no_duplicate_connection(self, controller, two_nodes):
        for _ in range(2):
            controller.handle_all([
                PointerDown(x=200, y=50, target=HitTarget.connector("n1")),
                PointerMove(x=350, y=50),
                PointerUp(x=350, y=50, target=HitTarget.node("n2")),
            ])
            assert isinstance(controller.mode, Idle)
            assert not two_nodes.state.is_connecting
        assert len(two_nodes.workflow.connections) == 1

    def test_reverse_direction_is_a_different_pair(self, controller, two_nodes):
        controller.start_connection("n1", Position(x=200, y=50))
        controller.complete_connection("n2")
        controller.start_connection("n2", Position(x=300, y=50))
        controller.complete_connection("n1")
        assert len(two_nodes.workflow.connections) == 2

    def test_temp_line_follows_pointer(self, controller, two_nodes):
        controller.handle_all([
            PointerDown(x=200, y=50, target=HitTarget.connector("n1")),
            PointerMove(x=250, y=60),
        ])
        assert controller.temp_line == Anchors(100, 50, 250, 60)
        scene = controller.scene()
        assert scene.temp_line is not None
        assert scene.temp_line.path.startswith("M100,50 C")

    def test_release_over_source_keeps_connecting(self, controller, two_nodes):
        controller.handle_all([
            PointerDown(x=200, y=50, target=HitTarget.connector("n1")),
            PointerUp(x=100, y=50),
        ])
        assert isinstance(controller.mode, Connecting)
        assert two_nodes.workflow.connections == {}

    def test_release_over_empty_space_keeps_connecting(self, controller, two_nodes):
        controller.handle_all([
            PointerDown(x=200, y=50, target=HitTarget.connector("n1")),
            PointerUp(x=250, y=400),
        ])
        assert isinstance(controller.mode, Connecting)
        assert two_nodes.state.is_connecting

    def test_escape_cancels(self, controller, two_nodes):
        controller.handle_all([
            PointerDown(x=200, y=50, target=HitTarget.connector("n1")),
            KeyDown(key="Escape"),
        ])
        assert isinstance(controller.mode, Idle)
        assert not two_nodes.state.is_connecting
        assert two_nodes.state.connection_source is None
        assert controller.temp_line is None

    def test_background_click_cancels(self, controller, two_nodes):
        controller.handle_all([
            PointerDown(x=200, y=50, target=HitTarget.connector("n1")),
            PointerUp(x=250, y=400),
            PointerDown(x=250, y=400),
        ])
        assert isinstance(controller.mode, Idle)
        assert not two_nodes.state.is_connecting

    def test_node_press_while_connecting_is_ignored(self, controller, two_nodes):
        controller.handle_all([
            PointerDown(x=200, y=50, target=HitTarget.connector("n1")),
            PointerUp(x=250, y=400),
            PointerDown(x=350, y=50),
        ])
        assert isinstance(controller.mode, Connecting)
        assert two_nodes.state.selected_node_ids == ()

        controller.handle(PointerUp(x=350, y=50))
        assert len(two_nodes.workflow.connections) == 1


class TestResizing:
    @pytest.fixture
    def box(self, store):
        add_nodes(store, make_node("n1", 100, 100, width=200, height=100))
        return store

    def test_top_left_floor(self, controller, box):
        controller.handle_all([
            PointerDown(x=100, y=100, target=HitTarget.resize_handle("n1", "top-left")),
            PointerMove(x=1000, y=1000),
        ])
        assert isinstance(controller.mode, Resizing)
        node = box.workflow.nodes["n1"]
        assert (node.width, node.height) == (80, 40)
        assert node.position == Position(x=220, y=160)

    def test_right_handle_scaled_by_zoom(self, controller, box):
        box.dispatch(a.Zoom(value=2.0))
        controller.handle_all([
            PointerDown(x=600, y=300, target=HitTarget.resize_handle("n1", "right")),
            PointerMove(x=700, y=300),
            PointerUp(x=700, y=300),
        ])
        node = box.workflow.nodes["n1"]
        assert node.width == 250
        assert node.position == Position(x=100, y=100)

    def test_resize_target_cleared_when_gesture_ends(self, controller, box):
        assert controller.enable_resize("n1")
        assert controller.scene().nodes[0].show_resize_handles
        controller.handle_all([
            PointerDown(x=300, y=200, target=HitTarget.resize_handle("n1", "bottom-right")),
            PointerMove(x=320, y=220),
            PointerUp(x=320, y=220),
        ])
        assert controller.resize_target is None
        assert box.workflow.nodes["n1"].size() == (220, 120)

    def test_enable_resize_unknown_node(self, controller):
        assert not controller.enable_resize("ghost")


class TestWheel:
    def test_zoom_in_step(self, controller, store):
        controller.handle(Wheel(x=0, y=0, delta_y=-100))
        assert store.viewport.zoom == pytest.approx(1.05)

    def test_precision_step(self, controller, store):
        controller.handle(Wheel(x=0, y=0, delta_y=100, modifiers=Modifiers(ctrl=True)))
        assert store.viewport.zoom == pytest.approx(0.975)

    def test_zoom_keeps_point_under_cursor(self, controller, store):
        store.dispatch(a.Pan(position=Position(x=30, y=-40)))
        cursor = Position(x=200, y=100)
        before = to_canvas(store.viewport, cursor)
        controller.handle(Wheel(x=200, y=100, delta_y=-1))
        after = to_canvas(store.viewport, cursor)
        assert after.x == pytest.approx(before.x)
        assert after.y == pytest.approx(before.y)

    def test_zoom_clamp(self, controller, store):
        for _ in range(100):
            controller.handle(Wheel(x=10, y=10, delta_y=-1))
            assert store.viewport.zoom <= MAX_ZOOM
        assert store.viewport.zoom == MAX_ZOOM

        for _ in range(100):
            controller.handle(Wheel(x=10, y=10, delta_y=1))
            assert store.viewport.zoom >= MIN_ZOOM
        assert store.viewport.zoom == MIN_ZOOM

    def test_zero_delta_is_ignored(self, controller, store):
        before = store.state
        controller.handle(Wheel(x=10, y=10, delta_y=0))
        assert store.state is before


class TestKeyboard:
    def test_escape_clears_selection(self, controller, two_nodes):
        two_nodes.dispatch(a.SelectAllNodes())
        controller.handle(KeyDown(key="Escape"))
        assert two_nodes.state.selected_node_ids == ()

    def test_delete_removes_selected_connection(self, controller, two_nodes):
        controller.start_connection("n1", Position(x=0, y=0))
        controller.complete_connection("n2")
        controller.handle(KeyDown(key="Delete"))
        assert two_nodes.workflow.connections == {}

    def test_backspace_without_selection(self, controller, two_nodes):
        before = two_nodes.state
        controller.handle(KeyDown(key="Backspace"))
        assert two_nodes.state is before

    def test_space_resets_view(self, controller, store):
        store.dispatch(a.Zoom(value=1.7))
        store.dispatch(a.Pan(position=Position(x=5, y=5)))
        controller.handle(KeyDown(key=" "))
        assert store.viewport.zoom == 1.0
        assert store.viewport.position == Position(x=0, y=0)


class TestOperations:
    def test_double_click_adds_task(self, controller, store):
        controller.set_canvas_origin(10, 20)
        controller.handle(DoubleClick(x=110, y=220))
        node = store.workflow.nodes[store.state.selected_node_id]
        assert node.title == "New Task"
        assert node.type == "task"
        assert node.position == Position(x=100, y=200)
        assert node.size() == (200, 100)

    def test_canvas_origin_and_viewport(self, controller, store):
        controller.set_canvas_origin(100, 50)
        store.dispatch(a.Zoom(value=2.0))
        assert controller.client_to_canvas(Position(x=300, y=250)) == Position(x=100, y=100)

    def test_size_provider(self, store):
        controller = InteractionController(store, size_provider=lambda node: (240, 60))
        node = controller.add_node_at(Position(x=0, y=0))
        assert store.workflow.nodes[node.id].size() == (240, 60)

    def test_button_zoom(self, controller, store):
        controller.zoom_in()
        assert store.viewport.zoom == pytest.approx(1.1)
        controller.zoom_out()
        controller.zoom_out()
        assert store.viewport.zoom == pytest.approx(0.9)
        store.dispatch(a.Zoom(value=1.95))
        controller.zoom_in()
        assert store.viewport.zoom == MAX_ZOOM

    def test_select_all(self, controller, two_nodes):
        controller.select_all()
        assert two_nodes.state.selected_node_ids == ("n1", "n2")

    def test_delete_node_asks_first(self, store):
        answers = []

        def confirm(title, message):
            answers.append(title)
            return False

        add_nodes(store, make_node("n1"))
        controller = InteractionController(store, confirm=confirm)
        assert not controller.request_delete_node("n1")
        assert answers == ["Delete Node"]
        assert "n1" in store.workflow.nodes

    def test_delete_node_confirmed(self, controller, two_nodes):
        controller.start_connection("n1", Position(x=0, y=0))
        controller.complete_connection("n2")
        assert controller.request_delete_node("n1")
        assert list(two_nodes.workflow.nodes) == ["n2"]
        assert two_nodes.workflow.connections == {}

    def test_clear_canvas(self, controller, two_nodes):
        assert controller.request_clear_canvas()
        assert two_nodes.workflow.nodes == {}
        assert two_nodes.workflow.id == "wf-1"

    def test_clear_canvas_declined(self, two_nodes):
        controller = InteractionController(two_nodes, confirm=lambda title, message: False)
        assert not controller.request_clear_canvas()
        assert len(two_nodes.workflow.nodes) == 2


def test_events_from_json(controller, two_nodes):
    events = parse_events([
        {"kind": "pointer_down", "x": 50, "y": 50},
        {"kind": "pointer_move", "x": 60, "y": 50},
        {"kind": "pointer_up", "x": 60, "y": 50},
        {"kind": "key_down", "key": "Escape"},
    ])
    controller.handle_all(events)
    assert two_nodes.workflow.nodes["n1"].position == Position(x=10, y=0)
    assert two_nodes.state.selected_node_ids == ()

"""Shared fixtures for the canvas tests."""

import pytest

from flowcanvas.interaction import InteractionController
from flowcanvas.models import Node, Position, Workflow
from flowcanvas.store import GraphStore, create_initial_state


class FakeClock:
    """Deterministic epoch-ms clock that ticks on every read."""

    def __init__(self, start: int = 2_000_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


def make_node(node_id: str, x: float = 0, y: float = 0, width=None, height=None, **kwargs) -> Node:
    return Node(id=node_id, position=Position(x=x, y=y), width=width, height=height, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def workflow():
    return Workflow(id="wf-1", title="Test Workflow", created_at=1_000_000, updated_at=1_000_000)


@pytest.fixture
def store(workflow, clock):
    return GraphStore(create_initial_state(workflow), clock=clock)


@pytest.fixture
def controller(store):
    return InteractionController(store)

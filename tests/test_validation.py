import json

import pytest

from flowcanvas.models import Connection, Workflow
from flowcanvas.validation import (
    INVALID_WORKFLOW_MESSAGE,
    InvalidWorkflowError,
    IssueSeverity,
    export_filename,
    export_workflow,
    parse_workflow,
    validate_workflow,
    validation_summary,
)

from conftest import make_node


def minimal(**overrides):
    data = {"id": "wf-9", "title": "Imported", "nodes": {}, "connections": {}}
    data.update(overrides)
    return data


class TestParse:
    def test_minimal_document(self):
        workflow = parse_workflow(json.dumps(minimal()))
        assert workflow.id == "wf-9"
        assert workflow.nodes == {}

    def test_full_document(self):
        text = json.dumps(minimal(
            nodes={"n1": {"id": "n1", "type": "decision", "title": "Check",
                          "position": {"x": 5, "y": 6},
                          "tooltip": {"text": "hi", "alwaysVisible": True}}},
            connections={"c1": {"id": "c1", "source": "n1", "target": "n1"}},
            createdAt=10,
            updatedAt=20,
        ))
        workflow = parse_workflow(text)
        assert workflow.nodes["n1"].type == "decision"
        assert workflow.nodes["n1"].tooltip.always_visible
        assert workflow.connections["c1"].source == "n1"
        assert (workflow.created_at, workflow.updated_at) == (10, 20)

    @pytest.mark.parametrize("text", [
        "not json",
        "[]",
        json.dumps(minimal(id="")),
        json.dumps({"id": "x", "nodes": {}, "connections": {}}),
        json.dumps({"id": "x", "title": "t", "connections": {}}),
        json.dumps(minimal(nodes={"n1": {"id": "n1", "type": "spaceship"}})),
        json.dumps(minimal(connections={"c1": {"id": "c1"}})),
    ])
    def test_rejected(self, text):
        with pytest.raises(InvalidWorkflowError) as excinfo:
            parse_workflow(text)
        assert str(excinfo.value).startswith(INVALID_WORKFLOW_MESSAGE)
        assert excinfo.value.detail

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_workflow("{")


class TestExport:
    def test_export_is_indented_and_parses_back(self):
        workflow = Workflow(
            id="wf",
            title="Round Trip",
            nodes={"n1": make_node("n1", 1, 2, width=150)},
            connections={"c1": Connection(id="c1", source="n1", target="n1", label="loop")},
        )
        text = export_workflow(workflow)
        assert text.startswith("{\n  ")
        data = json.loads(text)
        assert "createdAt" in data
        assert "description" not in data
        assert parse_workflow(text) == workflow

    @pytest.mark.parametrize("title,expected", [
        ("My Flow", "My_Flow.json"),
        ("a/b\\c", "a_b_c.json"),
        ("ok-name_1", "ok-name_1.json"),
        ("  spaced  out ", "_spaced_out_.json"),
        ("", "workflow.json"),
    ])
    def test_export_filename(self, title, expected):
        assert export_filename(Workflow(title=title)) == expected


class TestValidate:
    def test_empty_workflow(self):
        issues = validate_workflow(Workflow())
        assert [i.message for i in issues] == ["Workflow has no nodes"]
        assert issues[0].severity == IssueSeverity.INFO
        assert validation_summary(issues)["valid"]

    def test_clean_workflow(self):
        workflow = Workflow(
            nodes={"a": make_node("a"), "b": make_node("b", 300)},
            connections={"c": Connection(id="c", source="a", target="b")},
        )
        assert validate_workflow(workflow) == []

    def test_dangling_connection_is_an_error(self):
        workflow = Workflow(
            nodes={"a": make_node("a")},
            connections={"c": Connection(id="c", source="a", target="gone")},
        )
        issues = validate_workflow(workflow)
        errors = [i for i in issues if i.severity == IssueSeverity.ERROR]
        assert len(errors) == 1
        assert errors[0].connection_id == "c"
        assert "gone" in errors[0].message
        assert not validation_summary(issues)["valid"]

    def test_warnings(self):
        workflow = Workflow(
            nodes={
                "a": make_node("a"),
                "b": make_node("b", 300, width=50, height=30),
                "lonely": make_node("lonely", 600, title="Alone"),
            },
            connections={
                "c1": Connection(id="c1", source="a", target="b"),
                "c2": Connection(id="c2", source="a", target="b"),
                "c3": Connection(id="c3", source="b", target="b"),
            },
        )
        messages = [i.message for i in validate_workflow(workflow)]
        assert "Self-connection (node points to itself)" in messages
        assert "Duplicate connection from a to b" in messages
        assert "Orphan nodes (no connections): Alone (lonely)" in messages
        assert "Node is smaller than 80x40" in messages

        summary = validation_summary(validate_workflow(workflow))
        assert summary == {"total": 4, "errors": 0, "warnings": 4, "info": 0, "valid": True}

    def test_issue_to_dict(self):
        workflow = Workflow(
            nodes={"a": make_node("a")},
            connections={"c": Connection(id="c", source="a", target="a")},
        )
        issue = validate_workflow(workflow)[0]
        assert issue.to_dict() == {
            "type": "warning",
            "message": "Self-connection (node points to itself)",
            "node_id": "a",
            "connection_id": "c",
        }

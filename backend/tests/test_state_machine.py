"""Tests for States Language rendering."""

import pytest

from tasks.implementations.db_processing import DB_PROCESSING_OPERATIONS
from workflow.pipelines import DB_PROCESSING_STAGES
from workflow.state_machine import render_state_machine


@pytest.mark.unit
class TestRenderStateMachine:

    def test_db_processing_layout(self, make_handlers, compiler, registry):
        make_handlers(*DB_PROCESSING_OPERATIONS)
        document = render_state_machine(compiler.compile(DB_PROCESSING_STAGES))

        assert document["Comment"] == "DB Processing"
        assert document["StartAt"] == "resetCases"
        states = document["States"]
        assert list(states) == ["resetCases", "parseInvalidCharacters", "parallelGroup1", "parallelGroup2"]

        assert states["resetCases"] == {
            "Type": "Task",
            "Resource": registry.resolve("resetCases"),
            "Next": "parseInvalidCharacters",
        }
        assert states["parseInvalidCharacters"]["Next"] == "parallelGroup1"
        assert states["parallelGroup1"]["Next"] == "parallelGroup2"
        assert states["parallelGroup2"]["End"] is True
        assert "Next" not in states["parallelGroup2"]

    def test_parallel_branches(self, make_handlers, compiler):
        make_handlers(*DB_PROCESSING_OPERATIONS)
        states = render_state_machine(compiler.compile(DB_PROCESSING_STAGES))["States"]

        branches = states["parallelGroup2"]["Branches"]
        assert [b["StartAt"] for b in branches] == ["parseCourts", "parseCaseToCase", "parseLegislationToCases"]
        for branch in branches:
            [(name, state)] = branch["States"].items()
            assert state["Type"] == "Task"
            assert state["End"] is True

    def test_nested_sequences_are_chained(self, make_handlers, compiler):
        make_handlers("a", "b", "c", "d")
        document = render_state_machine(compiler.compile(["a", ["b", "c"], {"parallel": [["d"]]}]), comment="x")

        assert document["Comment"] == "x"
        states = document["States"]
        assert states["a"]["Next"] == "b"
        assert states["b"]["Next"] == "c"
        assert states["c"]["Next"] == "parallelGroup1"
        assert states["parallelGroup1"]["Branches"][0]["StartAt"] == "d"

    def test_group_names_skip_task_names(self, make_handlers, compiler):
        make_handlers("parallelGroup1", "b", "c")
        states = render_state_machine(
            compiler.compile(["parallelGroup1", {"parallel": ["b", "c"]}])
        )["States"]

        assert list(states) == ["parallelGroup1", "parallelGroup2"]
        assert states["parallelGroup1"]["Type"] == "Task"
        assert states["parallelGroup1"]["Next"] == "parallelGroup2"
        assert states["parallelGroup2"]["Type"] == "Parallel"
        assert len(states["parallelGroup2"]["Branches"]) == 2

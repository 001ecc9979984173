"""Tests for the run history service."""

import pytest

from core.constants import RunStatus
from db.models.workflow_run import WorkflowRun
from services.run_service import RunRecorder, RunService, snapshot_run
from workflow.engine import ExecutionEngine
from workflow.nodes import RunContext


def _context(run_id="run-1", status=RunStatus.RUNNING, run_input=None) -> RunContext:
    context = RunContext(run_id=run_id, workflow_name="db-processor", run_input=run_input)
    if status != RunStatus.PENDING:
        context.transition(RunStatus.RUNNING)
    if status.is_terminal:
        context.transition(status)
    return context


@pytest.mark.unit
class TestSnapshot:

    def test_snapshot_fields(self):
        context = _context(run_input={"detail": {"ec2InstanceId": "i-1"}})
        snapshot = snapshot_run(context)

        assert snapshot["id"] == "run-1"
        assert snapshot["status"] == "running"
        assert snapshot["run_input"] == {"detail": {"ec2InstanceId": "i-1"}}
        assert snapshot["task_results"] == {}
        assert snapshot["completed_at"] is None

    def test_snapshot_serializes_unknown_types(self):
        snapshot = snapshot_run(_context(run_input={"when": object, "ids": {1, 2}}))
        assert isinstance(snapshot["run_input"]["when"], str)
        assert sorted(snapshot["run_input"]["ids"]) == [1, 2]

    def test_snapshot_is_a_copy(self):
        context = _context()
        snapshot = snapshot_run(context)
        context.invocation_order.append("late")
        assert snapshot["invocation_order"] == []


@pytest.mark.integration
class TestRunService:

    async def test_record_and_get(self, db_session):
        service = RunService(db_session)
        await service.record(snapshot_run(_context()))

        run = await service.get("run-1")
        assert isinstance(run, WorkflowRun)
        assert run.status == "running"
        assert run.to_dict()["run_id"] == "run-1"

    async def test_update_to_terminal(self, db_session):
        service = RunService(db_session)
        await service.record(snapshot_run(_context()))
        failed = _context(status=RunStatus.FAILED)
        failed.error = "task 'resetCases' failed (timeout): slow"
        await service.record(snapshot_run(failed))

        run = await service.get("run-1")
        assert run.status == "failed"
        assert run.error_message.startswith("task 'resetCases' failed")
        assert run.completed_at is not None

    async def test_terminal_row_never_downgraded(self, db_session):
        service = RunService(db_session)
        await service.record(snapshot_run(_context(status=RunStatus.SUCCEEDED)))
        await service.record(snapshot_run(_context(status=RunStatus.RUNNING)))

        run = await service.get("run-1")
        assert run.status == "succeeded"

    async def test_get_unknown(self, db_session):
        assert await RunService(db_session).get("nope") is None

    async def test_list_recent_filters(self, db_session):
        service = RunService(db_session)
        await service.record(snapshot_run(_context("a", RunStatus.SUCCEEDED)))
        await service.record(snapshot_run(_context("b", RunStatus.FAILED)))
        await service.record(snapshot_run(_context("c", RunStatus.RUNNING)))

        assert {run.id for run in await service.list_recent()} == {"a", "b", "c"}
        assert [run.id for run in await service.list_recent(status="failed")] == ["b"]
        assert await service.list_recent(workflow_name="other") == []
        assert len(await service.list_recent(limit=2)) == 2


@pytest.mark.integration
class TestRunRecorder:

    async def test_records_engine_runs(self, make_handlers, compiler, invoker, session_factory):
        make_handlers("a", "b")
        engine = ExecutionEngine(invoker, on_status_change=RunRecorder(session_factory))

        context = await engine.execute(compiler.compile(["a", "b"]), run_input={"k": "v"})
        await engine.shutdown(timeout=2)

        async with session_factory() as session:
            run = await RunService(session).get(context.run_id)
        assert run.status == "succeeded"
        assert run.invocation_order == ["a", "b"]
        assert set(run.task_results) == {"a", "b"}
        assert run.task_results["a"]["outcome"] == "success"
        assert run.run_input == {"k": "v"}

    async def test_records_failure_reason(self, make_handlers, compiler, invoker, session_factory):
        make_handlers(a="fail")
        engine = ExecutionEngine(invoker, on_status_change=RunRecorder(session_factory))

        context = await engine.execute(compiler.compile(["a"]))
        await engine.shutdown(timeout=2)

        async with session_factory() as session:
            run = await RunService(session).get(context.run_id)
        assert run.status == "failed"
        assert "a broke" in run.error_message
        assert run.task_results["a"]["failure"]["kind"] == "handler_error"

    async def test_write_errors_are_logged_not_raised(self, caplog):
        def broken_factory():
            raise RuntimeError("database is down")

        recorder = RunRecorder(broken_factory)
        await recorder(_context())
        assert "Failed to record run run-1" in caplog.text

"""Tests for the case database processing task handlers."""

import pytest

from core.constants import FailureKind
from integrations.parameter_store import StaticParameterStore
from tasks.implementations.db_processing import (
    DB_PROCESSING_OPERATIONS,
    RemoteCommandTask,
    build_db_processing_tasks,
    register_db_processing_tasks,
    resolve_target,
)
from workflow.invoker import TaskInvoker
from workflow.retry_strategies import Backoff, RetryStrategy
from conftest import FakeCommandChannel

EVENT = {"source": "aws.ec2", "detail": {"ec2InstanceId": "i-0abc", "state": "running"}}


@pytest.mark.unit
class TestResolveTarget:

    def test_instance_event(self):
        assert resolve_target(EVENT) == "i-0abc"

    def test_explicit_target(self):
        assert resolve_target({"target": "worker-2"}) == "worker-2"

    def test_event_wins_over_target(self):
        assert resolve_target({**EVENT, "target": "worker-2"}) == "i-0abc"

    def test_default(self):
        assert resolve_target({}, default="worker-1") == "worker-1"
        assert resolve_target(None, default="worker-1") == "worker-1"
        assert resolve_target("opaque") == ""


@pytest.mark.unit
class TestBuildCommands:

    def test_script_shape(self):
        task = RemoteCommandTask("parse-courts", FakeCommandChannel())
        commands = task.build_commands({"DB_HOST": "db.internal", "DB_PASS": "p w"})

        assert commands[0] == "#!/bin/bash"
        assert commands[2] == "containerID=$(docker ps -qf label=name=openlawnz | head -n 1)"
        assert 'echo "container found: $containerID"' in commands
        assert commands[-1] == (
            "sudo docker exec -i -e DB_HOST=db.internal -e DB_PASS='p w' "
            '"$containerID" node /usr/src/app/run.js parse-courts'
        )

    def test_without_parameters(self):
        task = RemoteCommandTask("reset-cases", FakeCommandChannel())
        assert task.build_commands({})[-1] == 'sudo docker exec -i "$containerID" node /usr/src/app/run.js reset-cases'


@pytest.mark.unit
class TestRemoteCommandTask:

    async def test_dispatches_to_target(self):
        channel = FakeCommandChannel()
        task = RemoteCommandTask("reset-cases", channel)
        result = await task.run(EVENT, {"task_name": "resetCases", "parameters": {"DB_NAME": "cases"}})

        assert result.success
        assert result.output == {
            "operation": "reset-cases",
            "target": "i-0abc",
            "command_id": "cmd-1",
            "exit_code": 0,
        }
        [sent] = channel.dispatched
        assert sent["target"] == "i-0abc"
        assert sent["timeout"] == 3600
        assert "-e DB_NAME=cases" in sent["commands"][-1]

    async def test_non_zero_exit_is_failure(self):
        channel = FakeCommandChannel(exit_code=1, stderr="relation cases does not exist")
        result = await RemoteCommandTask("reset-cases", channel).run(EVENT, {})

        assert not result.success
        assert result.error == "reset-cases exited with 1 on i-0abc: relation cases does not exist"

    async def test_missing_target(self):
        channel = FakeCommandChannel()
        result = await RemoteCommandTask("reset-cases", channel).run({}, {})

        assert not result.success
        assert "No worker target" in result.error
        assert channel.dispatched == []

    async def test_transport_error_without_retry(self):
        channel = FakeCommandChannel(errors=[ConnectionError("broker down")])
        result = await RemoteCommandTask("reset-cases", channel).run(EVENT, {})

        assert not result.success
        assert "broker down" in result.error
        assert len(channel.dispatched) == 1

    async def test_transport_error_retried(self):
        channel = FakeCommandChannel(errors=[ConnectionError("broker down")])
        strategy = RetryStrategy(Backoff.FIXED, max_retries=2)
        result = await RemoteCommandTask("reset-cases", channel, retry_strategy=strategy).run(EVENT, {})

        assert result.success
        assert len(channel.dispatched) == 2


@pytest.mark.unit
class TestRegistration:

    def test_one_handler_per_operation(self):
        handlers = build_db_processing_tasks(FakeCommandChannel())
        assert set(handlers) == set(DB_PROCESSING_OPERATIONS)
        assert handlers["parseCaseToCase"].operation == "parse-case-to-case"
        assert handlers["parseCaseToCase"].display_name == "parseCaseToCase"

    def test_register_all(self, registry):
        specs = register_db_processing_tasks(registry, FakeCommandChannel())
        assert len(specs) == 7
        assert registry.names == list(DB_PROCESSING_OPERATIONS)

    async def test_invoked_through_invoker(self, registry):
        channel = FakeCommandChannel(exit_code=2)
        register_db_processing_tasks(registry, channel)
        invoker = TaskInvoker(registry, parameter_store=StaticParameterStore({"PORT": "5432"}))

        result = await invoker.invoke(registry.get_spec("parseFootnotes"), EVENT)

        assert result.failure.kind == FailureKind.HANDLER_ERROR
        assert result.failure.detail.startswith("parse-footnotes exited with 2 on i-0abc")
        assert "-e PORT=5432" in channel.dispatched[0]["commands"][-1]

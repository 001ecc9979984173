"""Case database processing tasks.

Each pipeline step asks the worker host that runs the dataset container
to execute one processing operation inside that container, then waits
for the worker's acknowledgment. The operations themselves (resetting
cases, cleaning text, linking cases and legislation) live in the
container; these handlers only dispatch them.

Target resolution order for the worker host:
    1. run_input["detail"]["ec2InstanceId"]  (instance lifecycle event)
    2. run_input["target"]
    3. settings.DEFAULT_WORKER_TARGET
"""

import shlex
from typing import Any, Dict, Optional

import structlog

from app.config import Settings, get_settings
from core.exceptions import HandlerError
from integrations.command_channel import CommandChannel
from tasks.base_task import BaseTaskHandler, HandlerResult
from workflow.retry_strategies import RetryStrategy, dispatch_with_retry, get_retry_preset

logger = structlog.get_logger(__name__)


# Task name -> (operation, description), in pipeline order.
DB_PROCESSING_OPERATIONS: Dict[str, tuple] = {
    "resetCases": ("reset-cases", "Reset processed case data to its ingested state"),
    "parseInvalidCharacters": ("parse-invalid-characters", "Strip invalid characters from case text"),
    "parseFootnotes": ("parse-footnotes", "Extract footnotes from case text"),
    "parseEmptyCitations": ("parse-empty-citations", "Fill in missing case citations"),
    "parseCourts": ("parse-courts", "Identify the court of each case"),
    "parseCaseToCase": ("parse-case-to-case", "Link cases to the cases they cite"),
    "parseLegislationToCases": ("parse-legislation-to-cases", "Link legislation references to cases"),
}


def resolve_target(run_input: Any, default: str = "") -> str:
    """Find the worker host a command should run on."""
    if isinstance(run_input, dict):
        detail = run_input.get("detail")
        if isinstance(detail, dict) and detail.get("ec2InstanceId"):
            return str(detail["ec2InstanceId"])
        if run_input.get("target"):
            return str(run_input["target"])
    return default


class RemoteCommandTask(BaseTaskHandler):
    """Runs one dataset operation inside the worker's container."""

    def __init__(
        self,
        operation: str,
        channel: CommandChannel,
        settings: Optional[Settings] = None,
        retry_strategy: Optional[RetryStrategy] = None,
        display_name: Optional[str] = None,
        description: str = "",
    ):
        self.operation = operation
        self._channel = channel
        self._settings = settings or get_settings()
        self._retry = retry_strategy or get_retry_preset(self._settings.COMMAND_RETRY_PRESET)
        self.display_name = display_name or operation
        self.description = description

    @property
    def timeout_budget(self) -> float:
        """Seconds one invocation may need: every dispatch attempt, the waits between, and ack grace."""
        attempts = self._retry.worst_case_seconds(self._settings.COMMAND_TIMEOUT_SECONDS)
        return attempts + self._settings.COMMAND_ACK_GRACE_SECONDS

    def build_commands(self, parameters: Dict[str, str]) -> list[str]:
        """Shell script that finds the dataset container and runs the operation in it."""
        label = shlex.quote(self._settings.WORKER_CONTAINER_LABEL)
        operation_cmd = self._settings.WORKER_OPERATION_COMMAND.format(operation=self.operation)
        env_flags = " ".join(
            f"-e {name}={shlex.quote(value)}" for name, value in sorted(parameters.items())
        )
        exec_cmd = "sudo docker exec -i"
        if env_flags:
            exec_cmd = f"{exec_cmd} {env_flags}"
        return [
            "#!/bin/bash",
            "set -o pipefail",
            f"containerID=$(docker ps -qf label={label} | head -n 1)",
            'if [ -z "$containerID" ]; then',
            f'  echo "no container found for label {self._settings.WORKER_CONTAINER_LABEL}" >&2',
            "  exit 1",
            "fi",
            'echo "container found: $containerID"',
            f'{exec_cmd} "$containerID" {operation_cmd}',
        ]

    async def execute(self, run_input: Any, task_context: Dict[str, Any]) -> HandlerResult:
        target = resolve_target(run_input, self._settings.DEFAULT_WORKER_TARGET)
        if not target:
            raise HandlerError(
                f"No worker target for '{self.operation}': expected detail.ec2InstanceId or target in run input"
            )

        commands = self.build_commands(task_context.get("parameters", {}))
        timeout = self._settings.COMMAND_TIMEOUT_SECONDS
        logger.info(
            "Sending command to worker",
            operation=self.operation,
            target=target,
            run_id=task_context.get("run_id"),
        )

        ack = await dispatch_with_retry(
            self._channel.dispatch, self._retry, target, commands, timeout
        )

        if not ack.success:
            detail = (ack.stderr or ack.stdout or "").strip()[-2000:]
            return HandlerResult(
                success=False,
                error=f"{self.operation} exited with {ack.exit_code} on {target}: {detail}",
                metadata={"command_id": ack.command_id},
            )

        return HandlerResult(
            success=True,
            output={
                "operation": self.operation,
                "target": target,
                "command_id": ack.command_id,
                "exit_code": ack.exit_code,
            },
            metadata={"stdout_tail": ack.stdout[-2000:]},
        )


def build_db_processing_tasks(
    channel: CommandChannel,
    settings: Optional[Settings] = None,
) -> Dict[str, RemoteCommandTask]:
    """Create one handler per pipeline task name."""
    return {
        name: RemoteCommandTask(
            operation=operation,
            channel=channel,
            settings=settings,
            display_name=name,
            description=description,
        )
        for name, (operation, description) in DB_PROCESSING_OPERATIONS.items()
    }


def register_db_processing_tasks(registry, channel: CommandChannel, settings: Optional[Settings] = None) -> list:
    """Register every pipeline handler; returns the created TaskSpecs.

    The task timeout is never shorter than the handler's own retry budget.
    """
    settings = settings or get_settings()
    return [
        registry.register(
            name, handler, timeout=max(settings.DEFAULT_TASK_TIMEOUT, handler.timeout_budget)
        )
        for name, handler in build_db_processing_tasks(channel, settings).items()
    ]

"""Remote command channel — dispatch a command to a dataset worker and await its acknowledgment.

Task handlers use a channel to tell the long-running worker process that
holds the dataset to run an operation, then wait for it to report back.
The transport is interchangeable:

- CeleryCommandChannel: Celery task on a per-target queue (production)
- HttpCommandChannel: POST to a worker agent's /commands endpoint
- LocalCommandChannel: asyncio subprocess on this host (development)
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional
from uuid import uuid4

import httpx
import structlog

from app.config import Settings, get_settings
from core.constants import CommandChannelType

logger = structlog.get_logger(__name__)

# Exit code reported when a command exceeds its timeout (matches coreutils `timeout`).
TIMEOUT_EXIT_CODE = 124


@dataclass
class CommandAck:
    """Acknowledgment returned by the worker for one dispatched command."""
    command_id: str
    target: str
    success: bool
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict, command_id: str, target: str) -> "CommandAck":
        exit_code = data.get("exit_code")
        return cls(
            command_id=data.get("command_id", command_id),
            target=data.get("target", target),
            success=bool(data.get("success", exit_code == 0)),
            exit_code=exit_code,
            stdout=data.get("stdout", ""),
            stderr=data.get("stderr", ""),
        )

    def to_dict(self) -> dict:
        return {
            "command_id": self.command_id,
            "target": self.target,
            "success": self.success,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


def build_script(commands: list[str]) -> str:
    """Join shell commands into one bash script."""
    lines = list(commands)
    if not lines or not lines[0].startswith("#!"):
        lines.insert(0, "#!/bin/bash")
    return "\n".join(lines) + "\n"


class CommandChannel(ABC):
    """Capability interface: dispatch a command, await acknowledgment."""

    @abstractmethod
    async def dispatch(self, target: str, commands: list[str], timeout: float) -> CommandAck:
        """Run ``commands`` on ``target`` and wait up to ``timeout`` seconds for the ack.

        Transport failures raise; command failures come back as ``success=False``.
        """
        ...


class CeleryCommandChannel(CommandChannel):
    """Sends commands to the worker fleet through Celery.

    Each worker consumes the queue ``commands.<target>`` so a command
    reaches the host that owns the dataset container.
    """

    TASK_NAME = "worker.tasks.commands.run_commands"

    def __init__(self, celery_app=None, queue_prefix: str = "commands"):
        self._celery_app = celery_app
        self._queue_prefix = queue_prefix

    def _get_celery_app(self):
        if self._celery_app is None:
            from worker.celery_app import celery_app

            self._celery_app = celery_app
        return self._celery_app

    def queue_for(self, target: str) -> str:
        return f"{self._queue_prefix}.{target}"

    async def dispatch(self, target: str, commands: list[str], timeout: float) -> CommandAck:
        command_id = str(uuid4())
        app = self._get_celery_app()
        async_result = app.send_task(
            self.TASK_NAME,
            kwargs={"commands": list(commands), "timeout": timeout, "command_id": command_id},
            queue=self.queue_for(target),
            task_id=command_id,
        )
        logger.info("Command dispatched", channel="celery", target=target, command_id=command_id)
        data = await asyncio.to_thread(async_result.get, timeout=timeout, propagate=True)
        return CommandAck.from_dict(data or {}, command_id=command_id, target=target)


class HttpCommandChannel(CommandChannel):
    """Posts commands to a worker agent over HTTP and waits for the response."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None):
        self._base_url = base_url.rstrip("/")
        self._client = client

    async def dispatch(self, target: str, commands: list[str], timeout: float) -> CommandAck:
        command_id = str(uuid4())
        payload = {
            "command_id": command_id,
            "target": target,
            "commands": list(commands),
            "timeout": timeout,
        }
        logger.info("Command dispatched", channel="http", target=target, command_id=command_id)

        if self._client is not None:
            response = await self._client.post(
                f"{self._base_url}/commands", json=payload, timeout=timeout
            )
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(f"{self._base_url}/commands", json=payload)

        response.raise_for_status()
        return CommandAck.from_dict(response.json(), command_id=command_id, target=target)


class LocalCommandChannel(CommandChannel):
    """Runs the script on this host; ``target`` is only recorded."""

    async def dispatch(self, target: str, commands: list[str], timeout: float) -> CommandAck:
        command_id = str(uuid4())
        proc = await asyncio.create_subprocess_exec(
            "bash",
            "-s",
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(build_script(commands).encode()), timeout=timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return CommandAck(
                command_id=command_id,
                target=target,
                success=False,
                exit_code=TIMEOUT_EXIT_CODE,
                stderr=f"Command timed out after {timeout}s",
            )

        return CommandAck(
            command_id=command_id,
            target=target,
            success=proc.returncode == 0,
            exit_code=proc.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )


def build_command_channel(settings: Optional[Settings] = None) -> CommandChannel:
    """Create the channel selected by ``COMMAND_CHANNEL``."""
    settings = settings or get_settings()
    channel_type = CommandChannelType(settings.COMMAND_CHANNEL)
    if channel_type == CommandChannelType.CELERY:
        return CeleryCommandChannel()
    if channel_type == CommandChannelType.HTTP:
        return HttpCommandChannel(settings.WORKER_AGENT_URL)
    return LocalCommandChannel()

"""Celery task that executes dataset commands on a worker host.

The orchestrator's CeleryCommandChannel sends ``run_commands`` to the
queue of the host that owns the dataset container. The task runs the
commands as one bash script and returns the acknowledgment dict the
channel turns into a CommandAck.
"""

import logging
import socket
import subprocess
from typing import Optional

from integrations.command_channel import TIMEOUT_EXIT_CODE, build_script
from worker.celery_app import celery_app

logger = logging.getLogger(__name__)

# Keep acknowledgments small enough for the result backend.
MAX_OUTPUT_CHARS = 20000


def run_script(commands: list[str], timeout: float, command_id: Optional[str] = None) -> dict:
    """Run ``commands`` with bash and report exit code and output."""
    target = socket.gethostname()
    try:
        completed = subprocess.run(
            ["bash", "-s"],
            input=build_script(commands),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.error(f"Command {command_id} timed out after {timeout}s")
        return {
            "command_id": command_id,
            "target": target,
            "success": False,
            "exit_code": TIMEOUT_EXIT_CODE,
            "stdout": "",
            "stderr": f"Command timed out after {timeout}s",
        }

    logger.info(f"Command {command_id} exited with {completed.returncode}")
    return {
        "command_id": command_id,
        "target": target,
        "success": completed.returncode == 0,
        "exit_code": completed.returncode,
        "stdout": completed.stdout[-MAX_OUTPUT_CHARS:],
        "stderr": completed.stderr[-MAX_OUTPUT_CHARS:],
    }


@celery_app.task(name="worker.tasks.commands.run_commands")
def run_commands(commands: list[str], timeout: float = 3600, command_id: Optional[str] = None) -> dict:
    """Execute a dispatched command script and acknowledge it."""
    logger.info(f"Running command {command_id} ({len(commands)} line(s))")
    return run_script(commands, timeout, command_id)

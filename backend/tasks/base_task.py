"""
Base handler interface for all pipeline task implementations.

Every task behind a registered name (dataset reset, text normalization,
relationship linking, ...) inherits from BaseTaskHandler and implements
the execute() method. The orchestrator never looks inside a handler.
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

from core.exceptions import HandlerError

logger = structlog.get_logger(__name__)


class HandlerResult:
    """Standardized completion signal from a task handler."""

    def __init__(
        self,
        success: bool,
        output: Any = None,
        error: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        duration_ms: float = 0,
    ):
        self.success = success
        self.output = output
        self.error = error
        self.metadata = metadata or {}
        self.duration_ms = duration_ms
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "metadata": self.metadata,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }


class BaseTaskHandler(ABC):
    """
    Abstract base class for task handlers.

    Subclasses must implement:
    - execute(run_input, task_context) -> HandlerResult
    - display_name / description (class attributes)
    """

    display_name: str = "Base Task"
    description: str = "Abstract base task handler"

    @abstractmethod
    async def execute(
        self,
        run_input: Any,
        task_context: Dict[str, Any],
    ) -> HandlerResult:
        """
        Execute the task.

        Args:
            run_input: Payload the run was started with (opaque)
            task_context: Run id, task name, injected parameters, ...

        Returns:
            HandlerResult with output or error
        """
        pass

    async def run(
        self,
        run_input: Any,
        task_context: Optional[Dict[str, Any]] = None,
    ) -> HandlerResult:
        """
        Run the handler with timing and error handling.

        This is the entry point called by the TaskInvoker. Exceptions
        become a failed HandlerResult; cancellation is left to propagate.
        """
        task_context = task_context or {}
        task_name = task_context.get("task_name", self.display_name)
        start = time.monotonic()
        try:
            logger.info("Task starting", task_name=task_name, run_id=task_context.get("run_id"))
            result = await self.execute(run_input, task_context)
            result.duration_ms = (time.monotonic() - start) * 1000

            logger.info(
                "Task completed",
                task_name=task_name,
                success=result.success,
                duration_ms=round(result.duration_ms, 2),
            )
            return result

        except HandlerError as e:
            return self._failed(task_name, e.detail, start)
        except Exception as e:
            return self._failed(task_name, f"{type(e).__name__}: {e}", start)

    @staticmethod
    def _failed(task_name: str, error: str, start: float) -> HandlerResult:
        duration_ms = (time.monotonic() - start) * 1000
        logger.error(
            "Task failed",
            task_name=task_name,
            error=error,
            duration_ms=round(duration_ms, 2),
        )
        return HandlerResult(success=False, error=error, duration_ms=duration_ms)


class CallableTaskHandler(BaseTaskHandler):
    """Adapts a plain async callable ``fn(run_input, task_context)`` to the handler interface.

    The callable may return a HandlerResult, or any value which is taken
    as the output of a successful run.
    """

    def __init__(self, fn, display_name: Optional[str] = None, description: str = ""):
        self._fn = fn
        self.display_name = display_name or getattr(fn, "__name__", "callable")
        self.description = description

    async def execute(self, run_input: Any, task_context: Dict[str, Any]) -> HandlerResult:
        value = await self._fn(run_input, task_context)
        if isinstance(value, HandlerResult):
            return value
        return HandlerResult(success=True, output=value)

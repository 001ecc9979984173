"""Task Invoker — uniform adapter between the engine and task handlers.

Dispatches one task to its handler, waits until the handler signals
completion or the task's timeout elapses, and turns the outcome into a
TaskResult. It knows nothing about what a task actually does.
"""

import asyncio
import logging
from typing import Any, Optional

from core.constants import DATASET_PARAMETER_NAMES
from core.exceptions import HandlerError, UnknownTaskError
from integrations.parameter_store import ParameterStore
from tasks.registry import TaskRegistry
from workflow.nodes import TaskResult, TaskSpec, utcnow

logger = logging.getLogger(__name__)


class TaskInvoker:
    """Invokes registered task handlers with a per-task timeout."""

    def __init__(
        self,
        registry: TaskRegistry,
        parameter_store: Optional[ParameterStore] = None,
        parameter_names: tuple = DATASET_PARAMETER_NAMES,
    ):
        self._registry = registry
        self._parameter_store = parameter_store
        self._parameter_names = parameter_names

    async def invoke(
        self,
        spec: TaskSpec,
        run_input: Any,
        task_context: Optional[dict] = None,
    ) -> TaskResult:
        """Invoke one task and report Success, Failure(Timeout) or Failure(HandlerError).

        Never raises for handler problems.
        """
        started_at = utcnow()

        try:
            handler = self._registry.get_handler(spec.handler_ref)
        except UnknownTaskError as e:
            return TaskResult.handler_error(spec.name, e.message, started_at)

        try:
            context = await self._build_context(spec, task_context)
        except Exception as e:
            return TaskResult.handler_error(
                spec.name, f"Parameter lookup failed: {e}", started_at
            )

        try:
            outcome = await asyncio.wait_for(
                handler.run(run_input, context),
                timeout=spec.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Task {spec.name} timed out after {spec.timeout}s")
            return TaskResult.timeout(
                spec.name, f"Task '{spec.name}' timed out after {spec.timeout}s", started_at
            )
        except HandlerError as e:
            return TaskResult.handler_error(spec.name, e.detail, started_at)
        except Exception as e:
            logger.error(f"Task {spec.name} raised {type(e).__name__}: {e}")
            return TaskResult.handler_error(spec.name, str(e) or type(e).__name__, started_at)

        if not outcome.success:
            detail = outcome.error or f"Task '{spec.name}' reported failure"
            return TaskResult.handler_error(spec.name, detail, started_at)

        return TaskResult.success(spec.name, outcome.output, started_at)

    async def _build_context(self, spec: TaskSpec, task_context: Optional[dict]) -> dict:
        context = dict(task_context or {})
        context.update(
            task_name=spec.name,
            handler_ref=spec.handler_ref,
            timeout=spec.timeout,
        )
        parameters = {}
        if self._parameter_store is not None:
            parameters = await self._parameter_store.get_parameters(self._parameter_names)
        context["parameters"] = parameters
        return context

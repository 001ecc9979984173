"""Workflow Execution Engine — runs compiled workflow trees.

Takes an immutable WorkflowDefinition and executes it for one run:

- Task nodes are dispatched through the TaskInvoker
- Sequence nodes run children one at a time, stopping at the first failure
- Parallel nodes run every branch as its own asyncio task behind a
  fan-in barrier; the first failing branch fails the node immediately
- The run ends Succeeded when the root succeeds, Failed on the first
  task failure anywhere in the tree

Branches still in flight when a sibling fails are not cancelled. They
finish their current task, start nothing new, and their outcomes are
discarded. No retries, no compensation.

Each run started with start_run() is its own asyncio task, so the
caller (the Trigger Gateway) returns without waiting for the run.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

from app.config import get_settings
from core.constants import RunStatus
from core.exceptions import RunSchedulingFailure
from workflow.invoker import TaskInvoker
from workflow.nodes import (
    ParallelNode,
    RunContext,
    SequenceNode,
    TaskNode,
    TaskResult,
    WorkflowDefinition,
    WorkflowNode,
)

logger = logging.getLogger(__name__)


class ExecutionEngine:
    """Interprets workflow trees, one RunContext per run.

    Runs share no mutable state besides the engine's bookkeeping of
    which runs exist.
    """

    def __init__(
        self,
        invoker: TaskInvoker,
        on_status_change: Optional[Callable] = None,
        on_task_complete: Optional[Callable] = None,
        max_concurrent_runs: Optional[int] = None,
        history_limit: Optional[int] = None,
    ):
        settings = get_settings()
        self._invoker = invoker
        self._on_status_change = on_status_change
        self._on_task_complete = on_task_complete
        self._max_concurrent_runs = max_concurrent_runs or settings.MAX_CONCURRENT_RUNS
        self._history_limit = history_limit or settings.RUN_HISTORY_LIMIT

        self._running: dict[str, RunContext] = {}
        self._run_tasks: dict[str, asyncio.Task] = {}
        self._history: "OrderedDict[str, RunContext]" = OrderedDict()
        self._detached: set[asyncio.Task] = set()
        self._accepting = True

    # ─── Public API ────────────────────────────────────────────

    def start_run(
        self,
        definition: WorkflowDefinition,
        run_input: Any = None,
        run_id: Optional[str] = None,
    ) -> RunContext:
        """Start a run in the background and return its context right away.

        Raises:
            RunSchedulingFailure: The run could not be scheduled
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise RunSchedulingFailure("no running event loop")

        context = self._create_run(definition, run_input, run_id)
        self._begin(context)
        task = loop.create_task(
            self._drive(definition, context), name=f"run-{context.run_id}"
        )
        self._run_tasks[context.run_id] = task
        task.add_done_callback(lambda _t, rid=context.run_id: self._run_tasks.pop(rid, None))
        return context

    async def execute(
        self,
        definition: WorkflowDefinition,
        run_input: Any = None,
        run_id: Optional[str] = None,
    ) -> RunContext:
        """Run a workflow to completion in the caller's task."""
        context = self._create_run(definition, run_input, run_id)
        self._begin(context)
        await self._drive(definition, context)
        return context

    def get_run(self, run_id: str) -> Optional[RunContext]:
        return self._running.get(run_id) or self._history.get(run_id)

    def list_runs(self) -> list[RunContext]:
        """Active runs first, then archived runs newest first."""
        return list(self._running.values()) + list(reversed(self._history.values()))

    @property
    def active_run_ids(self) -> list[str]:
        return list(self._running.keys())

    @property
    def is_accepting(self) -> bool:
        return self._accepting

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop accepting runs and wait for in-flight runs and detached branches."""
        self._accepting = False
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        # Finishing runs schedule their terminal status callbacks as new
        # tasks, so both sets are re-read until they drain.
        while True:
            pending = set(self._run_tasks.values()) | self._detached
            if not pending:
                return
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                logger.warning(f"{len(pending)} run task(s) still running at shutdown")
                return
            logger.info(f"Waiting for {len(pending)} in-flight run task(s)")
            await asyncio.wait(pending, timeout=remaining)

    # ─── Run lifecycle ─────────────────────────────────────────

    def _create_run(
        self,
        definition: WorkflowDefinition,
        run_input: Any,
        run_id: Optional[str],
    ) -> RunContext:
        if not self._accepting:
            raise RunSchedulingFailure("engine is shutting down")
        if len(self._running) >= self._max_concurrent_runs:
            raise RunSchedulingFailure(
                f"concurrent run limit reached ({self._max_concurrent_runs})"
            )
        run_id = run_id or str(uuid4())
        if run_id in self._running or run_id in self._history:
            raise RunSchedulingFailure(f"run id already in use: {run_id}")

        context = RunContext(
            run_id=run_id,
            workflow_name=definition.name,
            run_input=run_input,
        )
        self._running[run_id] = context
        return context

    def _begin(self, context: RunContext) -> None:
        context.transition(RunStatus.RUNNING)
        logger.info(f"Run {context.run_id} started ({context.workflow_name})")
        self._notify_status(context)

    async def _drive(self, definition: WorkflowDefinition, context: RunContext) -> None:
        structlog.contextvars.bind_contextvars(run_id=context.run_id)
        try:
            succeeded = await self._run_node(definition.root, context)
            if context.is_running:
                if succeeded:
                    self._finish(context, RunStatus.SUCCEEDED)
                else:
                    self._fail(context, "workflow failed")
        except asyncio.CancelledError:
            if context.is_running:
                self._fail(context, "run cancelled")
            raise
        except Exception as e:
            logger.error(f"Run {context.run_id} crashed: {e}", exc_info=True)
            if context.is_running:
                self._fail(context, f"engine error: {e}")
        finally:
            structlog.contextvars.unbind_contextvars("run_id")
            self._archive(context)

    def _fail(self, context: RunContext, error: str) -> None:
        context.error = error
        self._finish(context, RunStatus.FAILED)

    def _finish(self, context: RunContext, status: RunStatus) -> None:
        context.transition(status)
        log = logger.info if status == RunStatus.SUCCEEDED else logger.error
        log(
            f"Run {context.run_id} {status.value} in {context.duration_ms}ms"
            + (f": {context.error}" if context.error else "")
        )
        self._notify_status(context)

    def _archive(self, context: RunContext) -> None:
        self._running.pop(context.run_id, None)
        self._history[context.run_id] = context
        while len(self._history) > self._history_limit:
            self._history.popitem(last=False)

    # ─── Traversal ─────────────────────────────────────────────

    async def _run_node(self, node: WorkflowNode, context: RunContext) -> bool:
        if isinstance(node, TaskNode):
            return await self._run_task(node, context)
        if isinstance(node, SequenceNode):
            return await self._run_sequence(node, context)
        if isinstance(node, ParallelNode):
            return await self._run_parallel(node, context)
        raise TypeError(f"Unknown workflow node: {node!r}")

    async def _run_task(self, node: TaskNode, context: RunContext) -> bool:
        # A failed run dispatches nothing new, even from detached branches.
        if not context.is_running:
            return False

        name = node.name
        context.active_nodes.add(name)
        context.invocation_order.append(name)
        try:
            result = await self._invoker.invoke(
                node.spec,
                context.run_input,
                {"run_id": context.run_id, "workflow_name": context.workflow_name},
            )
        finally:
            context.active_nodes.discard(name)

        if not context.is_running:
            # Outcome of a branch detached after a sibling failed.
            logger.info(f"Discarding result of {name} for finished run {context.run_id}")
            return False

        context.results[name] = result
        if not result.succeeded:
            # The run is failed before the callback is awaited.
            reason = result.failure.detail if result.failure else "unknown failure"
            kind = result.failure.kind.value if result.failure else "failure"
            self._fail(context, f"task '{name}' failed ({kind}): {reason}")

        await self._notify_task(context, result)
        return result.succeeded

    async def _run_sequence(self, node: SequenceNode, context: RunContext) -> bool:
        for child in node.children:
            if not await self._run_node(child, context):
                return False
        return True

    async def _run_parallel(self, node: ParallelNode, context: RunContext) -> bool:
        pending = {
            asyncio.create_task(
                self._run_node(branch, context),
                name=f"run-{context.run_id}-branch-{i}",
            )
            for i, branch in enumerate(node.branches)
        }

        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if self._branch_failed(task, context):
                    self._detach(pending, context)
                    return False
        return True

    def _branch_failed(self, task: asyncio.Task, context: RunContext) -> bool:
        if task.cancelled():
            return True
        error = task.exception()
        if error is not None:
            logger.error(f"Branch {task.get_name()} crashed: {error}")
            if context.is_running:
                self._fail(context, f"engine error: {error}")
            return True
        return not task.result()

    def _detach(self, tasks: set[asyncio.Task], context: RunContext) -> None:
        """Let sibling branches finish on their own; their outcomes no longer count."""
        if not tasks:
            return
        logger.info(
            f"Run {context.run_id}: {len(tasks)} sibling branch(es) left to finish after failure"
        )
        for task in tasks:
            self._detached.add(task)
            task.add_done_callback(self._reap_detached)

    def _reap_detached(self, task: asyncio.Task) -> None:
        self._detached.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Detached branch {task.get_name()} crashed: {task.exception()}")

    # ─── Callbacks ─────────────────────────────────────────────

    def _notify_status(self, context: RunContext) -> None:
        if not self._on_status_change:
            return
        try:
            outcome = self._on_status_change(context)
            if asyncio.iscoroutine(outcome):
                task = asyncio.ensure_future(outcome)
                self._detached.add(task)
                task.add_done_callback(self._reap_callback)
        except Exception as e:
            logger.warning(f"on_status_change callback failed: {e}")

    def _reap_callback(self, task: asyncio.Task) -> None:
        self._detached.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"on_status_change callback failed: {task.exception()}")

    async def _notify_task(self, context: RunContext, result: TaskResult) -> None:
        if not self._on_task_complete:
            return
        try:
            outcome = self._on_task_complete(context, result)
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"on_task_complete callback failed: {e}")

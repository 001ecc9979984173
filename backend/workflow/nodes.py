"""Workflow data model.

A compiled workflow is a tree of immutable nodes:

- TaskNode: a leaf that invokes one registered task
- SequenceNode: children executed strictly in order
- ParallelNode: branches (each a SequenceNode) executed concurrently

Runs are tracked by a mutable RunContext owned by the ExecutionEngine,
and every task invocation produces a TaskResult.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Union

from core.constants import (
    RUN_STATUS_TRANSITIONS,
    FailureKind,
    NodeKind,
    RunStatus,
    TaskOutcome,
)
from core.exceptions import InvalidStatusTransition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Tasks ────────────────────────────────────────────────────

@dataclass(frozen=True)
class TaskSpec:
    """A registered task: unique name, opaque handler reference, timeout in seconds."""
    name: str
    handler_ref: str
    timeout: float


@dataclass(frozen=True)
class TaskFailure:
    kind: FailureKind
    detail: str

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "detail": self.detail}


@dataclass
class TaskResult:
    """Result of invoking a single task."""
    task_name: str
    outcome: TaskOutcome
    failure: Optional[TaskFailure] = None
    output: Any = None
    started_at: Optional[datetime] = None
    completed_at: datetime = field(default_factory=utcnow)
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.outcome == TaskOutcome.SUCCESS

    @classmethod
    def success(cls, task_name: str, output: Any = None, started_at: Optional[datetime] = None) -> "TaskResult":
        return cls._build(task_name, TaskOutcome.SUCCESS, None, output, started_at)

    @classmethod
    def timeout(cls, task_name: str, detail: str, started_at: Optional[datetime] = None) -> "TaskResult":
        return cls._build(
            task_name, TaskOutcome.FAILURE, TaskFailure(FailureKind.TIMEOUT, detail), None, started_at
        )

    @classmethod
    def handler_error(cls, task_name: str, detail: str, started_at: Optional[datetime] = None) -> "TaskResult":
        return cls._build(
            task_name, TaskOutcome.FAILURE, TaskFailure(FailureKind.HANDLER_ERROR, detail), None, started_at
        )

    @classmethod
    def _build(cls, task_name, outcome, failure, output, started_at) -> "TaskResult":
        completed_at = utcnow()
        duration_ms = 0
        if started_at is not None:
            duration_ms = int((completed_at - started_at).total_seconds() * 1000)
        return cls(
            task_name=task_name,
            outcome=outcome,
            failure=failure,
            output=output,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
        )

    def to_dict(self) -> dict:
        return {
            "task_name": self.task_name,
            "outcome": self.outcome.value,
            "failure": self.failure.to_dict() if self.failure else None,
            "output": self.output,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
        }


# ─── Nodes ────────────────────────────────────────────────────

@dataclass(frozen=True)
class TaskNode:
    spec: TaskSpec

    kind = NodeKind.TASK

    @property
    def name(self) -> str:
        return self.spec.name

    def iter_tasks(self) -> Iterator["TaskNode"]:
        yield self

    def describe(self) -> Any:
        return self.spec.name


@dataclass(frozen=True)
class SequenceNode:
    children: tuple

    kind = NodeKind.SEQUENCE

    def iter_tasks(self) -> Iterator[TaskNode]:
        for child in self.children:
            yield from child.iter_tasks()

    def describe(self) -> Any:
        return [child.describe() for child in self.children]


@dataclass(frozen=True)
class ParallelNode:
    branches: tuple

    kind = NodeKind.PARALLEL

    def iter_tasks(self) -> Iterator[TaskNode]:
        for branch in self.branches:
            yield from branch.iter_tasks()

    def describe(self) -> Any:
        return {"parallel": [branch.describe() for branch in self.branches]}


WorkflowNode = Union[TaskNode, SequenceNode, ParallelNode]


@dataclass(frozen=True)
class WorkflowDefinition:
    """A compiled, immutable workflow."""
    name: str
    root: SequenceNode

    @property
    def task_names(self) -> tuple[str, ...]:
        return tuple(node.name for node in self.root.iter_tasks())

    def describe(self) -> list:
        """Plain-data dump of the tree, in the compiler's stage syntax."""
        return self.root.describe()


# ─── Run Context ──────────────────────────────────────────────

@dataclass
class RunContext:
    """State of one workflow run.

    Only the ExecutionEngine mutates a RunContext. The status only
    moves forward: pending -> running -> succeeded | failed.
    """

    run_id: str
    workflow_name: str
    run_input: Any = None
    status: RunStatus = RunStatus.PENDING
    active_nodes: set[str] = field(default_factory=set)
    results: dict[str, TaskResult] = field(default_factory=dict)
    invocation_order: list[str] = field(default_factory=list)
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING

    @property
    def duration_ms(self) -> Optional[int]:
        if self.started_at is None or self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    def transition(self, new_status: RunStatus) -> None:
        """Move to new_status, refusing regressions and skipped states."""
        if new_status not in RUN_STATUS_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(self.status.value, new_status.value)
        self.status = new_status
        if new_status == RunStatus.RUNNING:
            self.started_at = utcnow()
        elif new_status.is_terminal:
            self.completed_at = utcnow()

    def to_dict(self) -> dict:
        """Serialize for the API and the run history table."""
        return {
            "run_id": self.run_id,
            "workflow_name": self.workflow_name,
            "status": self.status.value,
            "run_input": self.run_input,
            "active_nodes": sorted(self.active_nodes),
            "results": {name: r.to_dict() for name, r in self.results.items()},
            "invocation_order": list(self.invocation_order),
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
        }

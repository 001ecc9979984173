"""Workflow run history model."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import RunStatus
from db.base import TimestampedModel


class WorkflowRun(TimestampedModel):
    """One run of a workflow, as last reported by the execution engine.

    Attributes:
        id: Run id assigned by the engine
        workflow_name: Name of the compiled workflow
        status: pending, running, succeeded or failed
        run_input: Trigger payload the run was started with
        task_results: Per-task results keyed by task name
        invocation_order: Task names in dispatch order
        error_message: Why the run failed
        started_at / completed_at / duration_ms: Timing
    """

    __tablename__ = "workflow_runs"

    id: Mapped[str] = mapped_column(primary_key=True)
    workflow_name: Mapped[str] = mapped_column(index=True)
    status: Mapped[str] = mapped_column(default=RunStatus.PENDING.value, index=True)
    run_input: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    task_results: Mapped[dict] = mapped_column(JSON, default=dict)
    invocation_order: Mapped[list] = mapped_column(JSON, default=list)
    error_message: Mapped[Optional[str]] = mapped_column(nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(nullable=True)

    def to_dict(self) -> dict:
        return {
            "run_id": self.id,
            "workflow_name": self.workflow_name,
            "status": self.status,
            "run_input": self.run_input,
            "active_nodes": [],
            "results": self.task_results or {},
            "invocation_order": self.invocation_order or [],
            "error": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
        }

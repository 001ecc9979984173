"""Run history service — persists engine run state for later inspection.

The Trigger Gateway only acknowledges that a run started. How the run
ended is recorded here: the ExecutionEngine calls a RunRecorder on
every status change and the recorder upserts the WorkflowRun row.
"""

import asyncio
import logging
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import RunStatus
from db.models.workflow_run import WorkflowRun
from workflow.nodes import RunContext

logger = logging.getLogger(__name__)


def _safe_serialize(obj, depth=0):
    """Recursively ensure all values are JSON-serializable."""
    if depth > 10:
        return str(obj)
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, dict):
        return {str(k): _safe_serialize(v, depth + 1) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_safe_serialize(v, depth + 1) for v in obj]
    return str(obj)


def snapshot_run(context: RunContext) -> dict:
    """Copy the parts of a RunContext the history table stores."""
    return {
        "id": context.run_id,
        "workflow_name": context.workflow_name,
        "status": context.status.value,
        "run_input": _safe_serialize(context.run_input),
        "task_results": _safe_serialize(
            {name: result.to_dict() for name, result in context.results.items()}
        ),
        "invocation_order": list(context.invocation_order),
        "error_message": context.error,
        "started_at": context.started_at,
        "completed_at": context.completed_at,
        "duration_ms": context.duration_ms,
    }


class RunService:
    """Read/write access to WorkflowRun rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, snapshot: dict) -> WorkflowRun:
        """Insert or update a run from a snapshot; a terminal row is never downgraded."""
        run = await self.get(snapshot["id"])
        if run is None:
            run = WorkflowRun(**snapshot)
            self.db.add(run)
        elif RunStatus(run.status).is_terminal and not RunStatus(snapshot["status"]).is_terminal:
            return run
        else:
            for key, value in snapshot.items():
                setattr(run, key, value)
        await self.db.flush()
        return run

    async def get(self, run_id: str) -> Optional[WorkflowRun]:
        result = await self.db.execute(select(WorkflowRun).where(WorkflowRun.id == run_id))
        return result.scalar_one_or_none()

    async def list_recent(
        self,
        limit: int = 50,
        workflow_name: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Sequence[WorkflowRun]:
        query = select(WorkflowRun)
        if workflow_name:
            query = query.where(WorkflowRun.workflow_name == workflow_name)
        if status:
            query = query.where(WorkflowRun.status == status)
        query = query.order_by(WorkflowRun.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()


class RunRecorder:
    """ExecutionEngine ``on_status_change`` callback writing to the run history.

    The snapshot is taken synchronously when the engine reports a change;
    writes are serialized so they land in the order the changes happened.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._lock = asyncio.Lock()

    def __call__(self, context: RunContext):
        return self.persist(snapshot_run(context))

    async def persist(self, snapshot: dict) -> None:
        async with self._lock:
            try:
                async with self._session_factory() as session:
                    await RunService(session).record(snapshot)
                    await session.commit()
            except Exception as e:
                logger.error(f"Failed to record run {snapshot['id']} ({snapshot['status']}): {e}")

"""Run status API routes.

The engine holds active and recently finished runs in memory; older runs
are served from the run history table.
"""

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_engine
from core.exceptions import NotFoundError
from services.run_service import RunService
from workflow.engine import ExecutionEngine

router = APIRouter()


# -- Schemas --

class RunResponse(BaseModel):
    run_id: str
    workflow_name: str
    status: str
    run_input: Any = None
    active_nodes: List[str] = Field(default_factory=list)
    results: dict = Field(default_factory=dict)
    invocation_order: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None


# -- Routes --

@router.get("", response_model=List[RunResponse], summary="List runs")
async def list_runs(
    limit: int = Query(50, ge=1, le=500),
    status: Optional[str] = None,
    engine: ExecutionEngine = Depends(get_engine),
    db: AsyncSession = Depends(get_db),
):
    runs = [ctx.to_dict() for ctx in engine.list_runs()]
    known = {run["run_id"] for run in runs}
    for row in await RunService(db).list_recent(limit=limit):
        if row.id not in known:
            runs.append(row.to_dict())

    if status:
        runs = [run for run in runs if run["status"] == status]
    return [RunResponse(**run) for run in runs[:limit]]


@router.get("/{run_id}", response_model=RunResponse, summary="Get run status")
async def get_run(
    run_id: str,
    engine: ExecutionEngine = Depends(get_engine),
    db: AsyncSession = Depends(get_db),
):
    context = engine.get_run(run_id)
    if context is not None:
        return RunResponse(**context.to_dict())

    row = await RunService(db).get(run_id)
    if row is None:
        raise NotFoundError(f"Run not found: {run_id}")
    return RunResponse(**row.to_dict())

"""Workflow and task catalogue routes."""

from typing import Any

from fastapi import APIRouter, Depends

from app.dependencies import get_gateway, get_registry
from core.exceptions import NotFoundError
from tasks.registry import TaskRegistry
from triggers.gateway import TriggerGateway
from workflow.state_machine import render_state_machine

router = APIRouter()


@router.get("/workflows/{name}", summary="Get a compiled workflow")
async def get_workflow(
    name: str,
    gateway: TriggerGateway = Depends(get_gateway),
) -> dict[str, Any]:
    """Return the workflow's stage tree and its state machine rendering."""
    definition = gateway.definition
    if definition.name != name:
        raise NotFoundError(f"Workflow not found: {name}")
    return {
        "name": definition.name,
        "tasks": list(definition.task_names),
        "stages": definition.describe(),
        "state_machine": render_state_machine(definition),
    }


@router.get("/tasks", summary="List registered tasks")
async def list_tasks(registry: TaskRegistry = Depends(get_registry)) -> list[dict[str, Any]]:
    return registry.list_all()

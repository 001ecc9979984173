"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
"""

from fastapi import APIRouter

from api.routes import health, runs, triggers, workflows

api_v1_router = APIRouter()

# Health
api_v1_router.include_router(
    health.router,
    tags=["Health"],
)

# Triggers
api_v1_router.include_router(
    triggers.router,
    prefix="/triggers",
    tags=["Triggers"],
)

# Runs
api_v1_router.include_router(
    runs.router,
    prefix="/runs",
    tags=["Runs"],
)

# Workflows and registered tasks
api_v1_router.include_router(
    workflows.router,
    tags=["Workflows"],
)

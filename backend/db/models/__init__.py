"""Database models for the DB processing orchestrator.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow_run import WorkflowRun

__all__ = [
    "WorkflowRun",
]

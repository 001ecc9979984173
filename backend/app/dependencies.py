"""FastAPI dependency injection functions."""

import logging

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import RunSchedulingFailure
from tasks.registry import TaskRegistry
from triggers.gateway import TriggerGateway
from workflow.engine import ExecutionEngine

logger = logging.getLogger(__name__)


async def get_db(request: Request) -> AsyncSession:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database error: {str(e)}")
            await session.rollback()
            raise


def get_gateway(request: Request) -> TriggerGateway:
    return request.app.state.gateway


def get_engine(request: Request) -> ExecutionEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise RunSchedulingFailure("engine unavailable")
    return engine


def get_registry(request: Request) -> TaskRegistry:
    return request.app.state.registry

"""DB Processor - FastAPI Application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

import db.database as database
from app.config import get_settings
from api.routes import health
from api.v1.router import api_v1_router
from core.logging_config import setup_logging
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from integrations.command_channel import CommandChannel, build_command_channel
from integrations.parameter_store import ParameterStore, SettingsParameterStore
from services.run_service import RunRecorder
from tasks.implementations.db_processing import register_db_processing_tasks
from tasks.registry import TaskRegistry
from triggers.gateway import TriggerGateway
from workflow.compiler import WorkflowCompiler
from workflow.engine import ExecutionEngine
from workflow.invoker import TaskInvoker
from workflow.pipelines import DB_PROCESSING_STAGES

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    # Startup
    settings = get_settings()
    setup_logging()

    db_engine = app.state.db_engine or database.engine
    await database.init_db(db_engine)
    if app.state.session_factory is None:
        app.state.session_factory = database.AsyncSessionLocal

    registry = app.state.registry
    if registry is None:
        registry = TaskRegistry(settings)
        channel = app.state.channel or build_command_channel(settings)
        register_db_processing_tasks(registry, channel, settings)
        logger.info(f"[startup] Registered {len(registry)} task(s) on {type(channel).__name__}")

    # A workflow that does not compile is fatal: nothing could be triggered.
    definition = WorkflowCompiler(registry, settings).compile(
        app.state.stages or DB_PROCESSING_STAGES,
        name=settings.WORKFLOW_NAME,
    )

    invoker = TaskInvoker(
        registry,
        parameter_store=app.state.parameter_store or SettingsParameterStore(settings),
    )
    engine = ExecutionEngine(
        invoker,
        on_status_change=RunRecorder(app.state.session_factory),
    )

    app.state.registry = registry
    app.state.definition = definition
    app.state.engine = engine
    app.state.gateway = TriggerGateway(engine, definition)

    logger.info(
        f"[startup] {settings.APP_NAME} v{settings.APP_VERSION} started "
        f"({settings.ENVIRONMENT}, workflow {definition.name})"
    )
    yield
    # Shutdown
    logger.info("[shutdown] Waiting for in-flight runs...")
    await engine.shutdown(timeout=settings.DEFAULT_TASK_TIMEOUT)
    if app.state.db_engine is None:
        await database.close_db(db_engine)
    logger.info("[shutdown] Application stopped")


def create_app(
    registry: Optional[TaskRegistry] = None,
    channel: Optional[CommandChannel] = None,
    parameter_store: Optional[ParameterStore] = None,
    session_factory=None,
    db_engine=None,
    stages: Optional[list] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Every argument replaces one production component; tests use them to
    run the app against fakes and an in-memory database.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Runs the database processing workflow when triggered by events.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.state.registry = registry
    app.state.channel = channel
    app.state.parameter_store = parameter_store
    app.state.session_factory = session_factory
    app.state.db_engine = db_engine
    app.state.stages = stages

    # Request tracking middleware
    app.add_middleware(RequestTrackingMiddleware)

    # Global exception handlers
    setup_exception_handlers(app)

    # Root health check (unversioned, for load balancers)
    app.include_router(health.router, prefix="/api", tags=["Health"])

    # Versioned API
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()

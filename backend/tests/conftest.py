"""Shared pytest fixtures for the DB Processor test suite.

Provides:
- Controllable fake task handlers (succeed, fail, block until released)
- A registry / compiler / engine wired to those fakes
- In-memory async SQLite database for the run history
- FastAPI app + httpx.AsyncClient against fake command channels
"""

import asyncio
import os
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "json")
os.environ.setdefault("COMMAND_CHANNEL", "local")

from db.base import Base  # noqa: E402
from integrations.command_channel import CommandAck, CommandChannel  # noqa: E402
from tasks.base_task import BaseTaskHandler, HandlerResult  # noqa: E402
from tasks.registry import TaskRegistry  # noqa: E402
from workflow.compiler import WorkflowCompiler  # noqa: E402
from workflow.engine import ExecutionEngine  # noqa: E402
from workflow.invoker import TaskInvoker  # noqa: E402


# ---------------------------------------------------------------------------
# Fake handlers
# ---------------------------------------------------------------------------

class FakeHandler(BaseTaskHandler):
    """Handler whose behaviour is chosen per test.

    ``mode`` is one of "succeed", "fail", "raise" or "hang". A handler
    with ``gate`` set waits for the event before finishing.
    """

    def __init__(self, name: str, mode: str = "succeed", gate: Optional[asyncio.Event] = None):
        self.display_name = name
        self.description = f"fake {name}"
        self.mode = mode
        self.gate = gate
        self.calls: list[dict] = []
        self.started = asyncio.Event()
        self.finished = asyncio.Event()

    async def execute(self, run_input: Any, task_context: dict) -> HandlerResult:
        self.calls.append(task_context)
        self.started.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.mode == "hang":
                await asyncio.sleep(3600)
            if self.mode == "fail":
                return HandlerResult(success=False, error=f"{self.display_name} broke")
            if self.mode == "raise":
                raise RuntimeError(f"{self.display_name} exploded")
            return HandlerResult(success=True, output={"task": self.display_name})
        finally:
            self.finished.set()

    @property
    def call_count(self) -> int:
        return len(self.calls)


class FakeCommandChannel(CommandChannel):
    """Records dispatched commands and acknowledges each with a fixed exit code."""

    def __init__(self, exit_code: int = 0, stderr: str = "", errors: Optional[list] = None):
        self.exit_code = exit_code
        self.stderr = stderr
        self.errors = list(errors or [])
        self.dispatched: list[dict] = []

    async def dispatch(self, target: str, commands: list[str], timeout: float) -> CommandAck:
        self.dispatched.append({"target": target, "commands": list(commands), "timeout": timeout})
        if self.errors:
            raise self.errors.pop(0)
        return CommandAck(
            command_id=f"cmd-{len(self.dispatched)}",
            target=target,
            success=self.exit_code == 0,
            exit_code=self.exit_code,
            stdout="container found: abc123\n",
            stderr=self.stderr,
        )


async def wait_for_run(engine: ExecutionEngine, run_id: str, timeout: float = 2.0):
    """Poll until a background run reaches a terminal status."""
    async def _poll():
        while True:
            context = engine.get_run(run_id)
            if context is not None and context.is_terminal:
                return context
            await asyncio.sleep(0.01)

    return await asyncio.wait_for(_poll(), timeout)


# ---------------------------------------------------------------------------
# Registry / engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def registry() -> TaskRegistry:
    return TaskRegistry()


@pytest.fixture
def make_handlers(registry):
    """Register fake handlers: ``make_handlers("a", "b", c="fail")``."""
    def _make(*names: str, timeout: Optional[float] = None, **modes: str) -> dict:
        handlers = {}
        for name in list(names) + list(modes):
            handler = FakeHandler(name, mode=modes.get(name, "succeed"))
            registry.register(name, handler, timeout=timeout)
            handlers[name] = handler
        return handlers

    return _make


@pytest.fixture
def compiler(registry) -> WorkflowCompiler:
    return WorkflowCompiler(registry)


@pytest.fixture
def invoker(registry) -> TaskInvoker:
    return TaskInvoker(registry)


@pytest_asyncio.fixture
async def engine(invoker) -> AsyncGenerator[ExecutionEngine, None]:
    engine = ExecutionEngine(invoker, max_concurrent_runs=10, history_limit=50)
    yield engine
    await engine.shutdown(timeout=1)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """A fresh in-memory database per test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def command_channel() -> FakeCommandChannel:
    return FakeCommandChannel()


@pytest_asyncio.fixture
async def app(db_engine, session_factory, command_channel):
    """FastAPI app running its lifespan against the fake channel and test database."""
    from app.main import create_app

    test_app = create_app(
        channel=command_channel,
        session_factory=session_factory,
        db_engine=db_engine,
    )
    async with test_app.router.lifespan_context(test_app):
        yield test_app


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac

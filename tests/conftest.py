"""
Pytest fixtures for TaskGate tests.
"""

import os
from types import SimpleNamespace
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Ensure test config is set before importing taskgate modules.
os.environ.setdefault("TASKGATE_ALLOW_INSECURE_DEV", "true")
os.environ.setdefault("TASKGATE_ENV", "development")
os.environ.setdefault("TASKGATE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TASKGATE_APPROVAL_TOKEN_SECRET", "test-signing-key")
os.environ.setdefault("TASKGATE_REMINDER_SWEEP_ENABLED", "false")
os.environ.setdefault("TASKGATE_PUBLIC_BASE_URL", "https://tasks.example.com")

from taskgate.db.base import init_db, make_engine  # noqa: E402
from taskgate.engine.core import TaskGateEngine  # noqa: E402
from taskgate.engine.tokens import CapabilityTokenService  # noqa: E402
from taskgate.models import Actor, ActorRole  # noqa: E402
from taskgate.notifications.dispatcher import NotificationDispatcher  # noqa: E402

from factories import FrozenClock, make_actor  # noqa: E402


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
async def db_engine(tmp_path):
    """A fresh SQLite database per test."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskgate.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def tokens(clock):
    return CapabilityTokenService(secret="test-signing-key", clock=clock)


@pytest.fixture
def dispatcher(session_factory, clock):
    return NotificationDispatcher(session_factory=session_factory, clock=clock)


@pytest.fixture
def engine(session_factory, dispatcher, tokens, clock):
    return TaskGateEngine(
        session_factory=session_factory,
        dispatcher=dispatcher,
        tokens=tokens,
        clock=clock,
    )


@pytest.fixture
async def actors(engine):
    """A small organisation: one creator, three employees, two HODs and an admin."""
    department = uuid4()
    people = SimpleNamespace(
        department=department,
        creator=make_actor("Casey Creator", department_id=department),
        alice=make_actor("Alice", department_id=department),
        bob=make_actor("Bob", department_id=department),
        carol=make_actor("Carol", department_id=department),
        hod=make_actor("Harper Head", ActorRole.HOD, department_id=department),
        other_hod=make_actor("Olive Other", ActorRole.HOD, department_id=uuid4()),
        admin=make_actor("Ada Admin", ActorRole.ADMIN),
    )
    for value in vars(people).values():
        if isinstance(value, Actor):
            await engine.create_actor(value)
    return people


@pytest.fixture
async def client(engine):
    """Async test client bound to the test engine."""
    from taskgate.main import create_app
    from taskgate.tasks.sweep import ReminderSweeper

    app = create_app()
    app.state.engine = engine
    app.state.sweeper = ReminderSweeper(engine)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

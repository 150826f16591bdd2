"""Database engine and session factory."""

import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from taskgate.config import settings
from taskgate.observability.metrics import metrics


class Base(DeclarativeBase):
    pass


def make_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with query timing attached.

    Pool sizing is only passed for server databases; aiosqlite rejects it.
    """
    options = {}
    if not database_url.startswith("sqlite"):
        options = {"pool_pre_ping": True, "pool_size": 20, "max_overflow": 10}
    db_engine = create_async_engine(database_url, echo=echo, **options)
    _time_queries(db_engine)
    return db_engine


def _time_queries(db_engine: AsyncEngine) -> None:
    sync_engine = db_engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _started(conn, cursor, statement, parameters, context, executemany):
        conn.info["taskgate_query_started"] = time.perf_counter()

    @event.listens_for(sync_engine, "after_cursor_execute")
    def _finished(conn, cursor, statement, parameters, context, executemany):
        started = conn.info.pop("taskgate_query_started", None)
        if started is None:
            return
        metrics.inc_counter("db.query.count")
        metrics.observe("db.query.duration_ms", (time.perf_counter() - started) * 1000.0)


engine = make_engine(settings.database_url, echo=settings.debug)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Create any missing tables."""
    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()

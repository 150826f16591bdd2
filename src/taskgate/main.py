"""TaskGate main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskgate import __version__
from taskgate.api import email_approval_router, router
from taskgate.api.deps import validate_auth_config
from taskgate.config import settings
from taskgate.db.base import async_session_factory, close_db, init_db
from taskgate.engine.core import TaskGateEngine
from taskgate.integrations.mail_relay import MailRelayClient
from taskgate.notifications.dispatcher import NotificationDispatcher
from taskgate.tasks.sweep import ReminderSweeper

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("taskgate")


def build_engine(session_factory=async_session_factory) -> TaskGateEngine:
    """Wire the engine to its dispatcher and mail relay."""
    dispatcher = NotificationDispatcher(session_factory=session_factory, mail=MailRelayClient())
    return TaskGateEngine(session_factory=session_factory, dispatcher=dispatcher)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting TaskGate server...")
    logger.info(f"Environment: {settings.env.value}")

    # Fail fast on insecure configuration
    validate_auth_config()

    await init_db()
    logger.info("Database initialized")

    engine = build_engine()
    sweeper = ReminderSweeper(engine)
    app.state.engine = engine
    app.state.sweeper = sweeper

    if settings.reminder_sweep_enabled:
        sweeper.start()
        logger.info("Reminder sweep task started")

    yield

    logger.info("Shutting down TaskGate server...")
    await sweeper.stop()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="TaskGate",
        description="Task lifecycle engine with group approvals and email-link decisions",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allowed_methods,
        allow_headers=settings.cors_allowed_headers,
    )

    app.include_router(router)
    app.include_router(email_approval_router)
    return app


app = create_app()


def main():
    """Entry point for the application."""
    uvicorn.run(
        "taskgate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

"""TaskGate command line."""

import argparse
import asyncio
import logging
import sys
from uuid import UUID, uuid4

from taskgate.config import settings
from taskgate.models import Actor, ActorRole

logger = logging.getLogger("taskgate.cli")


async def _sweep_once() -> int:
    from taskgate.db.base import close_db, init_db
    from taskgate.main import build_engine
    from taskgate.tasks.sweep import ReminderSweeper

    await init_db()
    try:
        reminders = await ReminderSweeper(build_engine()).run_once()
    finally:
        await close_db()

    print(f"Sent {len(reminders)} approval reminder(s)")
    for event in reminders:
        print(f"  {event.task_id}")
    return 0


async def _create_actor(args: argparse.Namespace) -> int:
    from taskgate.db.base import close_db, init_db
    from taskgate.engine.core import TaskGateEngine

    await init_db()
    try:
        actor = await TaskGateEngine().create_actor(
            Actor(
                id=args.id or uuid4(),
                name=args.name,
                email=args.email,
                role=ActorRole(args.role),
                department_id=args.department,
            )
        )
    finally:
        await close_db()

    print(f"Created {actor.role.value} {actor.name} <{actor.email}> with id {actor.id}")
    return 0


async def _init_db() -> int:
    from taskgate.db.base import close_db, init_db

    await init_db()
    await close_db()
    print("Database initialized")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskgate", description="TaskGate task lifecycle server")
    parser.add_argument("-v", "--verbose", action="store_true")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("serve", help="Run the HTTP server")
    commands.add_parser("sweep-once", help="Run one approval reminder sweep and exit")
    commands.add_parser("init-db", help="Create database tables")

    actor = commands.add_parser("create-actor", help="Register a user with the identity store")
    actor.add_argument("--name", required=True)
    actor.add_argument("--email", required=True)
    actor.add_argument(
        "--role",
        choices=[r.value for r in ActorRole],
        default=ActorRole.EMPLOYEE.value,
    )
    actor.add_argument("--department", type=UUID, default=None)
    actor.add_argument("--id", type=UUID, default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "serve":
        from taskgate.main import main as serve

        serve()
        return 0
    if args.command == "sweep-once":
        return asyncio.run(_sweep_once())
    if args.command == "init-db":
        return asyncio.run(_init_db())
    if args.command == "create-actor":
        return asyncio.run(_create_actor(args))
    return 1


if __name__ == "__main__":
    sys.exit(main())

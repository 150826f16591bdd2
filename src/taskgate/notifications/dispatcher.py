"""Notification dispatcher - domain events to per-recipient notifications."""

import logging
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskgate.db.base import async_session_factory
from taskgate.db.repositories import ActorRepository, NotificationRepository
from taskgate.integrations.mail_relay import MailRelayClient
from taskgate.models import Actor, DomainEvent, EventAction, Notification, Task
from taskgate.notifications.rules import recipients_for, render_message
from taskgate.observability.metrics import metrics
from taskgate.utils.time import Clock, utc_now

logger = logging.getLogger("taskgate.notifications")


class NotificationDispatcher:
    """
    Turns committed domain events into notifications.

    Each event reaches each recipient at most once: the (event, recipient)
    pair is unique in storage, so re-dispatching an event is a no-op.
    Failures are logged per recipient and never propagate to the caller.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        mail: Optional[MailRelayClient] = None,
        clock: Clock = utc_now,
    ):
        self.session_factory = session_factory or async_session_factory
        self.mail = mail
        self.clock = clock

    async def dispatch(self, task: Task, events: list[DomainEvent]) -> list[Notification]:
        created: list[Notification] = []
        for event in events:
            recipients = recipients_for(task, event)
            if not recipients:
                continue

            try:
                actors = await self._load_actors(recipients)
            except Exception as e:
                logger.error(f"Could not resolve recipients for event {event.event_id}: {e}", exc_info=True)
                actors = {}

            for recipient_id in recipients:
                try:
                    notification = await self._record(task, event, recipient_id)
                except Exception as e:
                    metrics.inc_counter("notification.failed")
                    logger.error(
                        f"Failed to record notification for {recipient_id} "
                        f"(event {event.event_id}): {e}",
                        exc_info=True,
                    )
                    continue

                if notification is None:
                    metrics.inc_counter("notification.duplicate")
                    continue

                metrics.inc_counter("notification.created", type=event.action.value)
                created.append(notification)
                await self._email(notification, event, actors.get(recipient_id))

        return created

    async def _load_actors(self, actor_ids: list[UUID]) -> dict[UUID, Actor]:
        async with self.session_factory() as session:
            return await ActorRepository(session).get_many(actor_ids)

    async def _record(
        self,
        task: Task,
        event: DomainEvent,
        recipient_id: UUID,
    ) -> Optional[Notification]:
        title, message = render_message(task, event)
        async with self.session_factory() as session:
            notification = await NotificationRepository(session).create(
                Notification(
                    notification_id=uuid4(),
                    event_id=event.event_id,
                    recipient_id=recipient_id,
                    task_id=task.task_id,
                    type=event.action,
                    title=title,
                    message=message,
                    created_at=self.clock(),
                )
            )
            if notification is not None:
                await session.commit()
        return notification

    async def _email(
        self,
        notification: Notification,
        event: DomainEvent,
        recipient: Optional[Actor],
    ) -> None:
        if not self.mail or not self.mail.enabled or recipient is None or not recipient.email:
            return

        text = notification.message
        links = event.metadata.get("links")
        if event.action is EventAction.APPROVAL_LINKS_ISSUED and links:
            text = f"{text}\n\nApprove: {links['approve']}\nReject: {links['reject']}"

        error: Optional[str] = None
        try:
            sent = await self.mail.send(recipient.email, notification.title, text)
        except Exception as e:
            sent = False
            error = str(e)[:500] or e.__class__.__name__
            metrics.inc_counter("notification.email_failed")
            logger.warning(f"Email to {recipient.email} failed for notification {notification.notification_id}: {e}")

        try:
            async with self.session_factory() as session:
                await NotificationRepository(session).record_email(
                    notification.notification_id, sent, error
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Could not record email outcome for {notification.notification_id}: {e}", exc_info=True)

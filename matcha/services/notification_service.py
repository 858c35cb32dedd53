"""
Matcha: Notification Sink

Append-only event log of things that happened to a user (liked, unliked,
viewed, matched, messaged).  Rows are written inside the caller's
transaction; the realtime push happens once that transaction has
committed, through an injected transport.  The push is fire-and-forget:
a transport failure is logged and never reaches the caller.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Protocol

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.database import after_commit
from matcha.errors import NotFoundError
from matcha.models.notification import Notification, NotificationType

logger = structlog.get_logger("matcha.notification_service")

# One template per notification type.  ``{actor}`` is the username of the
# user who triggered the event.
_TEMPLATES: dict[NotificationType, str] = {
    NotificationType.LIKE: "{actor} liked your profile",
    NotificationType.UNLIKE: "{actor} unliked your profile",
    NotificationType.VIEW: "{actor} viewed your profile",
    NotificationType.MATCH: "You matched with {actor}!",
    NotificationType.MESSAGE: "New message from {actor}",
}


def describe(type: NotificationType, actor: str) -> str:
    """Render the human-readable text for a notification of *type*."""
    return _TEMPLATES[type].format(actor=actor)


class NotificationTransport(Protocol):
    async def emit(self, user_id: uuid.UUID, type: NotificationType, message: str) -> None: ...


class NotificationService:
    """Write, read and push user notifications."""

    def __init__(self, transport: NotificationTransport | None = None) -> None:
        self.transport = transport

    async def create(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        type: NotificationType,
        actor: str,
    ) -> Notification:
        """Add a notification row for *user_id* in the current transaction.

        The row is not pushed; call :meth:`publish_on_commit` after the
        surrounding ``atomic`` scope.
        """
        notification = Notification(
            user_id=user_id,
            type=type,
            message=describe(type, actor),
            is_read=False,
        )
        db_session.add(notification)
        await db_session.flush()

        logger.debug(
            "notification_created",
            user_id=str(user_id),
            type=type.value,
        )
        return notification

    async def publish(self, notifications: Iterable[Notification]) -> None:
        """Push committed notifications to live connections."""
        if self.transport is None:
            return

        for notification in notifications:
            try:
                await self.transport.emit(
                    notification.user_id, notification.type, notification.message
                )
            except Exception as exc:
                logger.warning(
                    "notification_push_failed",
                    user_id=str(notification.user_id),
                    type=notification.type.value,
                    error=str(exc),
                )

    async def publish_on_commit(
        self,
        db_session: AsyncSession,
        notifications: list[Notification],
    ) -> None:
        """Publish *notifications* once *db_session* has committed them."""
        if not notifications:
            return
        await after_commit(db_session, lambda: self.publish(notifications))

    async def list_for_user(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        unread_only: bool = False,
        limit: int | None = None,
    ) -> list[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await db_session.execute(stmt)
        return list(result.scalars().all())

    async def unread_count(self, db_session: AsyncSession, user_id: uuid.UUID) -> int:
        stmt = select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
        return (await db_session.execute(stmt)).scalar_one()

    async def mark_as_read(
        self,
        db_session: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        notification = await self._get_owned(db_session, notification_id, user_id)
        notification.is_read = True
        await db_session.flush()
        return notification

    async def mark_all_as_read(self, db_session: AsyncSession, user_id: uuid.UUID) -> int:
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        result = await db_session.execute(stmt)
        logger.info("notifications_marked_read", user_id=str(user_id), count=result.rowcount)
        return result.rowcount

    async def delete(
        self,
        db_session: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> None:
        notification = await self._get_owned(db_session, notification_id, user_id)
        await db_session.delete(notification)
        await db_session.flush()

    async def delete_all(self, db_session: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db_session.execute(
            delete(Notification).where(Notification.user_id == user_id)
        )
        return result.rowcount

    async def purge_older_than(self, db_session: AsyncSession, days: int) -> int:
        """Delete every notification created more than *days* days ago."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        result = await db_session.execute(
            delete(Notification).where(Notification.created_at < cutoff)
        )
        logger.info("notifications_purged", days=days, count=result.rowcount)
        return result.rowcount

    async def _get_owned(
        self,
        db_session: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        stmt = select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
        notification = (await db_session.execute(stmt)).scalar_one_or_none()
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found.")
        return notification

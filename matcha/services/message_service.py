"""
Matcha: Messaging Gate

Authorises and records chat messages.  A message may only be stored when
the two users are matched and neither blocks the other.  Both conditions
are checked against current relationship state inside the write
transaction, the block first, so a rejected caller always learns which
condition failed:

  BlockedError     one of the two users blocks the other
  NotMatchedError  no match exists for the pair

Conversation summaries are derived on read by grouping a user's messages
per counterpart.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.config import get_settings
from matcha.database import atomic
from matcha.errors import BlockedError, NotMatchedError, ValidationError
from matcha.models.message import Message
from matcha.models.notification import NotificationType
from matcha.models.user import User
from matcha.services.match_engine import MatchEngine, block_between, lock_pair
from matcha.services.notification_service import NotificationService
from matcha.services.user_service import require_user
from matcha.utils.sanitize import sanitize_text

logger = structlog.get_logger("matcha.message_service")

RECENT_MESSAGES_DEFAULT = 50


@dataclass
class ConversationSummary:
    other_user_id: uuid.UUID
    other_user_name: str
    other_user_photo: str
    is_online: bool
    last_message: str
    last_message_time: datetime
    unread_count: int


def _between(user_a: uuid.UUID, user_b: uuid.UUID):
    return or_(
        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
        and_(Message.sender_id == user_b, Message.receiver_id == user_a),
    )


class MessageService:
    def __init__(
        self,
        notifications: NotificationService | None = None,
        match_engine: MatchEngine | None = None,
    ) -> None:
        self.notifications = notifications or NotificationService()
        self.match_engine = match_engine or MatchEngine()

    async def send_message(
        self,
        db_session: AsyncSession,
        sender_id: uuid.UUID,
        receiver_id: uuid.UUID,
        content: str,
    ) -> Message:
        """Store a message from *sender_id* to *receiver_id*.

        Raises
        ------
        ValidationError
            Empty content, content over ``MESSAGE_MAX_LENGTH``, or a message
            to oneself.
        BlockedError
            Either user blocks the other.
        NotMatchedError
            The pair is not matched.
        NotFoundError
            Either user does not exist or is deactivated.
        """
        log = logger.bind(sender=str(sender_id), receiver=str(receiver_id))
        max_length = get_settings().MESSAGE_MAX_LENGTH

        errors: list[str] = []
        if sender_id == receiver_id:
            errors.append("You cannot message yourself.")
        if content is None or not content.strip():
            errors.append("Message content is required.")
        elif len(content) > max_length:
            errors.append(f"Message must be at most {max_length} characters.")
        if errors:
            raise ValidationError(errors)

        cleaned = sanitize_text(content)
        if not cleaned:
            raise ValidationError("Message content is required.")

        async with atomic(db_session):
            await lock_pair(db_session, sender_id, receiver_id)
            sender = await require_user(db_session, sender_id)
            await require_user(db_session, receiver_id)

            blocked = (
                await db_session.execute(select(exists().where(block_between(sender_id, receiver_id))))
            ).scalar_one()
            if blocked:
                log.info("message_rejected", reason="blocked")
                raise BlockedError()

            if not await self.match_engine.is_matched(db_session, sender_id, receiver_id):
                log.info("message_rejected", reason="not_matched")
                raise NotMatchedError()

            message = Message(sender_id=sender_id, receiver_id=receiver_id, content=cleaned)
            db_session.add(message)
            await db_session.flush()

            notification = await self.notifications.create(
                db_session, receiver_id, NotificationType.MESSAGE, sender.username
            )

        log.info("message_sent", message_id=str(message.id), length=len(cleaned))
        await self.notifications.publish_on_commit(db_session, [notification])
        return message

    async def mark_as_read(
        self,
        db_session: AsyncSession,
        receiver_id: uuid.UUID,
        sender_id: uuid.UUID,
    ) -> int:
        """Mark every message from *sender_id* to *receiver_id* as read."""
        async with atomic(db_session):
            result = await db_session.execute(
                update(Message)
                .where(
                    Message.sender_id == sender_id,
                    Message.receiver_id == receiver_id,
                    Message.is_read.is_(False),
                )
                .values(is_read=True)
            )
        logger.debug(
            "messages_marked_read",
            receiver=str(receiver_id),
            sender=str(sender_id),
            count=result.rowcount,
        )
        return result.rowcount

    # ── Reads ────────────────────────────────────────────────────────────

    async def get_conversation(
        self,
        db_session: AsyncSession,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
    ) -> list[Message]:
        """Every message between the pair, oldest first."""
        stmt = select(Message).where(_between(user_a, user_b)).order_by(Message.sent_at.asc())
        return list((await db_session.execute(stmt)).scalars().all())

    async def get_recent_messages(
        self,
        db_session: AsyncSession,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
        count: int = RECENT_MESSAGES_DEFAULT,
    ) -> list[Message]:
        """The last *count* messages between the pair, oldest first."""
        stmt = (
            select(Message)
            .where(_between(user_a, user_b))
            .order_by(Message.sent_at.desc())
            .limit(count)
        )
        messages = list((await db_session.execute(stmt)).scalars().all())
        messages.reverse()
        return messages

    async def get_last_message(
        self,
        db_session: AsyncSession,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
    ) -> Message | None:
        stmt = (
            select(Message)
            .where(_between(user_a, user_b))
            .order_by(Message.sent_at.desc())
            .limit(1)
        )
        return (await db_session.execute(stmt)).scalar_one_or_none()

    async def unread_count(self, db_session: AsyncSession, user_id: uuid.UUID) -> int:
        stmt = select(func.count()).select_from(Message).where(
            Message.receiver_id == user_id, Message.is_read.is_(False)
        )
        return (await db_session.execute(stmt)).scalar_one()

    async def unread_counts_by_sender(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
    ) -> dict[uuid.UUID, int]:
        stmt = (
            select(Message.sender_id, func.count())
            .where(Message.receiver_id == user_id, Message.is_read.is_(False))
            .group_by(Message.sender_id)
        )
        return {sender: count for sender, count in (await db_session.execute(stmt)).all()}

    async def list_conversations(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
    ) -> list[ConversationSummary]:
        """One summary per counterpart, most recently active first."""
        stmt = (
            select(Message)
            .where(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
            .order_by(Message.sent_at.desc())
        )
        messages = (await db_session.execute(stmt)).scalars().all()

        # First message seen per counterpart is the latest one.
        latest: dict[uuid.UUID, Message] = {}
        for message in messages:
            other = message.receiver_id if message.sender_id == user_id else message.sender_id
            latest.setdefault(other, message)

        if not latest:
            return []

        users = {
            u.id: u
            for u in (
                await db_session.execute(select(User).where(User.id.in_(list(latest))))
            ).scalars()
        }
        unread = await self.unread_counts_by_sender(db_session, user_id)

        summaries: list[ConversationSummary] = []
        for other_id, message in latest.items():
            other = users.get(other_id)
            if other is None:
                continue
            summaries.append(ConversationSummary(
                other_user_id=other_id,
                other_user_name=other.username,
                other_user_photo=other.profile_photo_url,
                is_online=other.is_online,
                last_message=message.content,
                last_message_time=message.sent_at,
                unread_count=unread.get(other_id, 0),
            ))
        return summaries

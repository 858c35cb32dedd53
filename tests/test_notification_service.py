"""Unit tests for NotificationService."""
import uuid
from datetime import timedelta

import pytest

from matcha.errors import NotFoundError
from matcha.models import Notification, NotificationType
from matcha.models.user import utcnow
from matcha.services.notification_service import NotificationService, describe


class ExplodingTransport:
    async def emit(self, user_id, type, message):
        raise ConnectionError("socket closed")


class TestDescribe:

    def test_every_type_has_a_template(self):
        for type in NotificationType:
            text = describe(type, "alice")
            assert "alice" in text

    def test_known_texts(self):
        assert describe(NotificationType.LIKE, "bob") == "bob liked your profile"
        assert describe(NotificationType.MATCH, "bob") == "You matched with bob!"


class TestPublish:

    @pytest.mark.asyncio
    async def test_transport_failure_is_swallowed(self, db, make_user):
        user = await make_user()
        service = NotificationService(transport=ExplodingTransport())
        notification = await service.create(db, user.id, NotificationType.LIKE, "bob")

        await service.publish([notification])

    @pytest.mark.asyncio
    async def test_no_transport_is_a_no_op(self, db, make_user):
        user = await make_user()
        service = NotificationService()
        notification = await service.create(db, user.id, NotificationType.VIEW, "bob")
        await service.publish([notification])

    @pytest.mark.asyncio
    async def test_pushes_type_and_text(self, db, make_user, notifications, transport):
        user = await make_user()
        notification = await notifications.create(db, user.id, NotificationType.UNLIKE, "bob")
        await notifications.publish([notification])
        assert transport.for_user(user.id) == [(NotificationType.UNLIKE, "bob unliked your profile")]


class TestInbox:

    @pytest.mark.asyncio
    async def test_read_flags(self, db, make_user, notifications):
        user = await make_user()
        first = await notifications.create(db, user.id, NotificationType.LIKE, "a")
        await notifications.create(db, user.id, NotificationType.VIEW, "b")

        assert await notifications.unread_count(db, user.id) == 2
        await notifications.mark_as_read(db, first.id, user.id)
        assert await notifications.unread_count(db, user.id) == 1
        assert len(await notifications.list_for_user(db, user.id, unread_only=True)) == 1

        assert await notifications.mark_all_as_read(db, user.id) == 1
        assert await notifications.unread_count(db, user.id) == 0

    @pytest.mark.asyncio
    async def test_foreign_notification_not_found(self, db, make_user, notifications):
        owner = await make_user()
        stranger = await make_user()
        notification = await notifications.create(db, owner.id, NotificationType.LIKE, "a")

        with pytest.raises(NotFoundError):
            await notifications.mark_as_read(db, notification.id, stranger.id)
        with pytest.raises(NotFoundError):
            await notifications.delete(db, uuid.uuid4(), owner.id)

    @pytest.mark.asyncio
    async def test_delete_and_delete_all(self, db, make_user, notifications):
        user = await make_user()
        first = await notifications.create(db, user.id, NotificationType.LIKE, "a")
        await notifications.create(db, user.id, NotificationType.VIEW, "b")
        await notifications.create(db, user.id, NotificationType.VIEW, "c")

        await notifications.delete(db, first.id, user.id)
        assert len(await notifications.list_for_user(db, user.id)) == 2
        assert await notifications.delete_all(db, user.id) == 2
        assert await notifications.list_for_user(db, user.id) == []

    @pytest.mark.asyncio
    async def test_purge_older_than(self, db, make_user, notifications):
        user = await make_user()
        db.add(Notification(
            user_id=user.id,
            type=NotificationType.VIEW,
            message="old",
            created_at=utcnow() - timedelta(days=40),
        ))
        await notifications.create(db, user.id, NotificationType.VIEW, "fresh")
        await db.flush()

        assert await notifications.purge_older_than(db, 30) == 1
        remaining = await notifications.list_for_user(db, user.id)
        assert [n.message for n in remaining] == ["fresh viewed your profile"]

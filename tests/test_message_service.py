"""Unit tests for MessageService: the messaging gate and conversation reads."""
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from matcha.errors import AuthorizationError, BlockedError, NotMatchedError, ValidationError
from matcha.models import Block, Message, NotificationType
from matcha.services.match_engine import lock_pair


@pytest.fixture
def pair(db, make_user):
    """Return ids of two users, optionally matched and/or blocked."""

    async def _pair(ledger, *, matched, blocked):
        a_id = (await make_user(username="alice")).id
        b_id = (await make_user(username="bob")).id
        if matched:
            await ledger.like(db, a_id, b_id)
            await ledger.like(db, b_id, a_id)
        if blocked:
            # Inserted directly: a block through the ledger would dissolve the
            # match, and the gate must hold even if a stale match row exists.
            db.add(Block(blocker_id=b_id, blocked_id=a_id))
            await db.commit()
        return a_id, b_id

    return _pair


async def _message_count(db):
    return (await db.execute(select(func.count()).select_from(Message))).scalar_one()


class TestGate:

    @pytest.mark.asyncio
    async def test_matched_and_not_blocked_succeeds(self, db, pair, ledger, messages, transport):
        a_id, b_id = await pair(ledger, matched=True, blocked=False)

        message = await messages.send_message(db, a_id, b_id, "hi")

        assert message.content == "hi"
        assert message.is_read is False
        assert await _message_count(db) == 1
        assert (NotificationType.MESSAGE, "New message from alice") in transport.for_user(b_id)

    @pytest.mark.asyncio
    async def test_not_matched_and_not_blocked_fails_not_matched(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=False, blocked=False)

        with pytest.raises(NotMatchedError) as excinfo:
            await messages.send_message(db, a_id, b_id, "hi")

        assert excinfo.value.code == "not_matched"
        assert isinstance(excinfo.value, AuthorizationError)
        assert await _message_count(db) == 0

    @pytest.mark.asyncio
    async def test_matched_and_blocked_fails_blocked(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=True, blocked=True)

        with pytest.raises(BlockedError) as excinfo:
            await messages.send_message(db, a_id, b_id, "hi")

        assert excinfo.value.code == "blocked"
        assert await _message_count(db) == 0

    @pytest.mark.asyncio
    async def test_not_matched_and_blocked_fails_blocked(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=False, blocked=True)

        with pytest.raises(BlockedError):
            await messages.send_message(db, a_id, b_id, "hi")
        with pytest.raises(BlockedError):
            await messages.send_message(db, b_id, a_id, "hi")

    @pytest.mark.asyncio
    async def test_rejected_send_emits_nothing(self, db, pair, ledger, messages, transport):
        a_id, b_id = await pair(ledger, matched=False, blocked=False)
        with pytest.raises(NotMatchedError):
            await messages.send_message(db, a_id, b_id, "hi")
        assert transport.for_user(b_id) == []

    @pytest.mark.asyncio
    async def test_send_locks_the_pair(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=True, blocked=False)

        with patch("matcha.services.message_service.lock_pair", wraps=lock_pair) as locked:
            await messages.send_message(db, a_id, b_id, "hi")

        locked.assert_awaited_once_with(db, a_id, b_id)

    @pytest.mark.asyncio
    async def test_block_through_ledger_closes_channel(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=True, blocked=False)
        await messages.send_message(db, a_id, b_id, "before")

        await ledger.block(db, a_id, b_id)

        with pytest.raises(BlockedError):
            await messages.send_message(db, b_id, a_id, "after")


class TestContent:

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=True, blocked=False)
        with pytest.raises(ValidationError):
            await messages.send_message(db, a_id, b_id, "   ")

    @pytest.mark.asyncio
    async def test_too_long_content_rejected(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=True, blocked=False)
        with pytest.raises(ValidationError) as excinfo:
            await messages.send_message(db, a_id, b_id, "x" * 1001)
        assert "1000" in excinfo.value.errors[0]

    @pytest.mark.asyncio
    async def test_content_is_sanitised(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=True, blocked=False)
        message = await messages.send_message(
            db, a_id, b_id, "hello <script>alert(1)</script><b>you</b>"
        )
        assert "<script>" not in message.content
        assert "&lt;b&gt;you&lt;/b&gt;" in message.content

    @pytest.mark.asyncio
    async def test_script_only_content_rejected(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=True, blocked=False)
        with pytest.raises(ValidationError):
            await messages.send_message(db, a_id, b_id, "<script>alert(1)</script>")


class TestReads:

    @pytest.mark.asyncio
    async def test_mark_as_read_is_directional(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=True, blocked=False)
        await messages.send_message(db, b_id, a_id, "hi")
        await messages.send_message(db, b_id, a_id, "there")
        await messages.send_message(db, a_id, b_id, "hey")

        assert await messages.unread_count(db, a_id) == 2
        assert await messages.mark_as_read(db, a_id, b_id) == 2

        assert await messages.unread_count(db, a_id) == 0
        assert await messages.unread_count(db, b_id) == 1

    @pytest.mark.asyncio
    async def test_conversation_order(self, db, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=True, blocked=False)
        for text in ("one", "two", "three"):
            await messages.send_message(db, a_id, b_id, text)

        conversation = await messages.get_conversation(db, b_id, a_id)
        assert [m.content for m in conversation] == ["one", "two", "three"]

        recent = await messages.get_recent_messages(db, a_id, b_id, count=2)
        assert [m.content for m in recent] == ["two", "three"]

        last = await messages.get_last_message(db, b_id, a_id)
        assert last.content == "three"

    @pytest.mark.asyncio
    async def test_list_conversations(self, db, make_user, pair, ledger, messages):
        a_id, b_id = await pair(ledger, matched=True, blocked=False)
        c_id = (await make_user(username="carol")).id
        await ledger.like(db, a_id, c_id)
        await ledger.like(db, c_id, a_id)

        await messages.send_message(db, b_id, a_id, "from bob")
        await messages.send_message(db, c_id, a_id, "from carol 1")
        await messages.send_message(db, c_id, a_id, "from carol 2")

        summaries = await messages.list_conversations(db, a_id)

        assert [s.other_user_name for s in summaries] == ["carol", "bob"]
        assert summaries[0].last_message == "from carol 2"
        assert summaries[0].unread_count == 2
        assert summaries[1].unread_count == 1
        assert await messages.unread_counts_by_sender(db, a_id) == {b_id: 1, c_id: 2}

    @pytest.mark.asyncio
    async def test_no_conversations(self, db, make_user, messages):
        a = await make_user()
        assert await messages.list_conversations(db, a.id) == []

"""Tests for the chat websocket endpoint and its ChatSession frame handling.

The session is driven directly with a stand-in websocket; every frame runs
its own unit of work against the test database through the session factory
exposed on ``app.state``.
"""
import json
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import WebSocketDisconnect, status

from matcha.api.chat import ChatSession, chat
from matcha.errors import TransientStoreError
from matcha.realtime.hub import ConnectionHub
from matcha.realtime.presence import InMemoryPresenceStore


class FakeWebSocket:
    def __init__(self, session_factory):
        self.app = SimpleNamespace(state=SimpleNamespace(session_factory=session_factory))
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)

    def events(self):
        return [frame["event"] for frame in self.sent]


class ScriptedWebSocket(FakeWebSocket):
    """Replays the given text frames, then reports the client as gone."""

    def __init__(self, session_factory, hub, frames):
        super().__init__(session_factory)
        self.app.state.hub = hub
        self.frames = list(frames)
        self.accepted = False
        self.close_code = None

    async def accept(self):
        self.accepted = True

    async def close(self, code=1000):
        self.close_code = code

    async def receive_text(self):
        if not self.frames:
            raise WebSocketDisconnect(code=1000)
        return self.frames.pop(0)


@pytest.fixture
def hub():
    return ConnectionHub(InMemoryPresenceStore())


@pytest.fixture
def connect(hub, session_factory):
    async def _connect(user_id):
        websocket = FakeWebSocket(session_factory)
        await hub.connect(websocket, user_id)
        return websocket, ChatSession(websocket, hub, user_id)

    return _connect


@pytest.fixture
def matched(db, make_user, ledger):
    async def _matched():
        a_id = (await make_user(username="alice")).id
        b_id = (await make_user(username="bob")).id
        await ledger.like(db, a_id, b_id)
        await ledger.like(db, b_id, a_id)
        return a_id, b_id

    return _matched


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_delivered_to_receiver_and_acknowledged(self, matched, connect):
        a_id, b_id = await matched()
        alice_ws, alice = await connect(a_id)
        bob_ws, _ = await connect(b_id)

        await alice.handle({"type": "send_message", "receiver_id": str(b_id), "content": "hi bob"})

        assert alice_ws.events() == ["message_sent"]
        assert "receive_message" in bob_ws.events()
        # The MESSAGE notification is pushed alongside the chat event.
        assert "notification" in bob_ws.events()
        received = next(f for f in bob_ws.sent if f["event"] == "receive_message")
        assert received["data"]["content"] == "hi bob"
        assert received["data"]["sender_id"] == str(a_id)

    @pytest.mark.asyncio
    async def test_unmatched_send_is_rejected_with_reason(self, make_user, connect):
        a_id = (await make_user()).id
        b_id = (await make_user()).id
        alice_ws, alice = await connect(a_id)
        bob_ws, _ = await connect(b_id)

        await alice.handle({"type": "send_message", "receiver_id": str(b_id), "content": "hi"})

        assert alice_ws.sent[-1]["event"] == "message_rejected"
        assert alice_ws.sent[-1]["data"]["reason"] == "not_matched"
        assert bob_ws.sent == []

    @pytest.mark.asyncio
    async def test_blocked_send_is_rejected_with_reason(self, db, matched, ledger, connect):
        a_id, b_id = await matched()
        await ledger.block(db, b_id, a_id)
        alice_ws, alice = await connect(a_id)

        await alice.handle({"type": "send_message", "receiver_id": str(b_id), "content": "hi"})

        assert alice_ws.sent[-1]["data"]["reason"] == "blocked"

    @pytest.mark.asyncio
    async def test_empty_content_is_rejected(self, matched, connect):
        a_id, b_id = await matched()
        alice_ws, alice = await connect(a_id)

        await alice.handle({"type": "send_message", "receiver_id": str(b_id), "content": ""})

        assert alice_ws.sent[-1]["data"]["reason"] == "validation_failed"


class TestOtherFrames:

    @pytest.mark.asyncio
    async def test_mark_read_notifies_sender(self, matched, connect):
        a_id, b_id = await matched()
        alice_ws, alice = await connect(a_id)
        bob_ws, bob = await connect(b_id)
        await alice.handle({"type": "send_message", "receiver_id": str(b_id), "content": "one"})
        await alice.handle({"type": "send_message", "receiver_id": str(b_id), "content": "two"})

        await bob.handle({"type": "mark_read", "sender_id": str(a_id)})

        assert bob_ws.sent[-1] == {"event": "marked_read", "data": {"sender_id": str(a_id), "count": 2}}
        assert alice_ws.sent[-1] == {"event": "messages_read", "data": {"user_id": str(b_id)}}

    @pytest.mark.asyncio
    async def test_typing_is_relayed(self, connect):
        a_id, b_id = uuid.uuid4(), uuid.uuid4()
        _, alice = await connect(a_id)
        bob_ws, _ = await connect(b_id)

        await alice.handle({"type": "typing", "receiver_id": str(b_id), "is_typing": True})

        assert bob_ws.sent == [{
            "event": "user_typing",
            "data": {"user_id": str(a_id), "is_typing": True},
        }]

    @pytest.mark.asyncio
    async def test_unknown_frame_and_bad_id(self, connect):
        alice_ws, alice = await connect(uuid.uuid4())

        await alice.handle({"type": "dance"})
        await alice.handle({"type": "typing", "receiver_id": "not-a-uuid"})

        assert alice_ws.events() == ["error", "error"]

    @pytest.mark.asyncio
    async def test_presence_broadcast(self, make_user, connect):
        a_id = (await make_user()).id
        b_id = (await make_user()).id
        alice_ws, alice = await connect(a_id)
        bob_ws, _ = await connect(b_id)

        await alice.set_presence(True)

        assert alice_ws.sent == []
        assert bob_ws.sent == [{
            "event": "user_status_changed",
            "data": {"user_id": str(a_id), "is_online": True},
        }]

    @pytest.mark.asyncio
    async def test_mark_read_store_failure_is_reported(self, connect):
        alice_ws, alice = await connect(uuid.uuid4())
        failing = AsyncMock(side_effect=TransientStoreError("store down"))

        with patch.object(alice.messages, "mark_as_read", failing):
            await alice.handle({"type": "mark_read", "sender_id": str(uuid.uuid4())})

        assert alice_ws.sent[-1]["event"] == "error"
        assert alice_ws.sent[-1]["data"]["code"] == "store_unavailable"


class TestChatEndpoint:

    @pytest.mark.asyncio
    async def test_malformed_frames_keep_connection_open(self, hub, session_factory, matched, connect):
        a_id, b_id = await matched()
        bob_ws, _ = await connect(b_id)
        alice_ws = ScriptedWebSocket(session_factory, hub, [
            "{not json",
            "[1, 2]",
            json.dumps({"type": "dance"}),
            json.dumps({"type": "send_message", "receiver_id": str(b_id), "content": "still here"}),
        ])

        await chat(alice_ws, user_id=a_id)

        assert alice_ws.accepted is True
        assert alice_ws.events() == ["error", "error", "error", "message_sent"]
        assert "receive_message" in bob_ws.events()
        # The client left, so the connection is gone and alice is offline again.
        assert not await hub.is_online(a_id)

    @pytest.mark.asyncio
    async def test_presence_flips_on_connect_and_disconnect(self, hub, session_factory, make_user, connect):
        a_id = (await make_user()).id
        b_id = (await make_user()).id
        bob_ws, _ = await connect(b_id)

        await chat(ScriptedWebSocket(session_factory, hub, []), user_id=a_id)

        assert [f["data"]["is_online"] for f in bob_ws.sent if f["event"] == "user_status_changed"] == [
            True,
            False,
        ]

    @pytest.mark.asyncio
    async def test_unknown_user_is_refused(self, hub, session_factory):
        websocket = ScriptedWebSocket(session_factory, hub, [])

        await chat(websocket, user_id=uuid.uuid4())

        assert websocket.accepted is False
        assert websocket.close_code == status.WS_1008_POLICY_VIOLATION

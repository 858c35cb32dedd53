"""Unit tests for presence stores and the connection hub."""
import uuid

import pytest

from matcha.models import NotificationType
from matcha.realtime.hub import ConnectionHub
from matcha.realtime.presence import InMemoryPresenceStore, RedisPresenceStore


class FakeRedis:
    """The handful of hash/set commands RedisPresenceStore issues, held in dicts.

    Values come back as bytes, as redis-py returns them by default.
    """

    def __init__(self):
        self.hashes = {}
        self.sets = {}

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def hget(self, key, field):
        value = self.hashes.get(key, {}).get(field)
        return value.encode() if value is not None else None

    async def smembers(self, key):
        return {m.encode() for m in self.sets.get(key, set())}

    async def scard(self, key):
        return len(self.sets.get(key, set()))


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.queued = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def hset(self, key, field, value):
        self.queued.append(lambda: self.redis.hashes.setdefault(key, {}).__setitem__(field, value))

    def hdel(self, key, field):
        self.queued.append(lambda: self.redis.hashes.get(key, {}).pop(field, None))

    def sadd(self, key, member):
        self.queued.append(lambda: self.redis.sets.setdefault(key, set()).add(member))

    def srem(self, key, member):
        self.queued.append(lambda: self.redis.sets.get(key, set()).discard(member))

    async def execute(self):
        results = [command() for command in self.queued]
        self.queued = []
        return results


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(data)


@pytest.fixture(params=["memory", "redis"])
def presence(request):
    if request.param == "memory":
        return InMemoryPresenceStore()
    return RedisPresenceStore(FakeRedis(), prefix="test:presence")


class TestPresenceStore:

    @pytest.mark.asyncio
    async def test_online_while_any_connection_remains(self, presence):
        user = uuid.uuid4()
        await presence.add("c1", user)
        await presence.add("c2", user)

        assert await presence.is_online(user)
        assert await presence.connections_for(user) == {"c1", "c2"}

        assert await presence.remove("c1") == user
        assert await presence.is_online(user)
        assert await presence.remove("c2") == user
        assert not await presence.is_online(user)

    @pytest.mark.asyncio
    async def test_unknown_connection(self, presence):
        assert await presence.remove("missing") is None
        assert await presence.user_for("missing") is None
        assert await presence.connections_for(uuid.uuid4()) == set()

    @pytest.mark.asyncio
    async def test_user_for(self, presence):
        user = uuid.uuid4()
        await presence.add("c1", user)
        assert await presence.user_for("c1") == user


class TestConnectionHub:

    @pytest.mark.asyncio
    async def test_connect_reports_first_connection(self):
        hub = ConnectionHub(InMemoryPresenceStore())
        user = uuid.uuid4()

        first_id, came_online = await hub.connect(FakeSocket(), user)
        second_id, again = await hub.connect(FakeSocket(), user)
        assert came_online is True
        assert again is False

        assert await hub.disconnect(first_id) == (user, False)
        assert await hub.disconnect(second_id) == (user, True)
        assert not await hub.is_online(user)

    @pytest.mark.asyncio
    async def test_send_to_every_connection_of_user(self):
        hub = ConnectionHub(InMemoryPresenceStore())
        user, other = uuid.uuid4(), uuid.uuid4()
        phone, laptop, stranger = FakeSocket(), FakeSocket(), FakeSocket()
        await hub.connect(phone, user)
        await hub.connect(laptop, user)
        await hub.connect(stranger, other)

        assert await hub.send_to_user(user, "ping", {"n": 1}) == 2
        assert phone.sent == laptop.sent == [{"event": "ping", "data": {"n": 1}}]
        assert stranger.sent == []

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        hub = ConnectionHub(InMemoryPresenceStore())
        user = uuid.uuid4()
        await hub.connect(FakeSocket(fail=True), user)

        assert await hub.send_to_user(user, "ping", {}) == 0
        assert not await hub.is_online(user)

    @pytest.mark.asyncio
    async def test_dead_connection_does_not_block_live_one(self):
        hub = ConnectionHub(InMemoryPresenceStore())
        user = uuid.uuid4()
        dead, live = FakeSocket(fail=True), FakeSocket()
        dead_id, _ = await hub.connect(dead, user)
        await hub.connect(live, user)

        assert await hub.send_to_user(user, "receive_message", {"content": "hi"}) == 1
        assert live.sent == [{"event": "receive_message", "data": {"content": "hi"}}]
        # The dead connection was dropped; the user stays online through the live one.
        assert await hub.disconnect(dead_id) == (None, False)
        assert await hub.is_online(user)

    @pytest.mark.asyncio
    async def test_broadcast_excludes_user(self):
        hub = ConnectionHub(InMemoryPresenceStore())
        me, other = uuid.uuid4(), uuid.uuid4()
        mine, theirs = FakeSocket(), FakeSocket()
        await hub.connect(mine, me)
        await hub.connect(theirs, other)

        assert await hub.broadcast("user_status_changed", {"online": True}, exclude_user=me) == 1
        assert mine.sent == []
        assert theirs.sent[0]["event"] == "user_status_changed"

    @pytest.mark.asyncio
    async def test_emit_pushes_notification_event(self):
        hub = ConnectionHub(InMemoryPresenceStore())
        user = uuid.uuid4()
        socket = FakeSocket()
        await hub.connect(socket, user)

        await hub.emit(user, NotificationType.MATCH, "You matched with bob!")

        assert socket.sent == [{
            "event": "notification",
            "data": {"type": "match", "message": "You matched with bob!"},
        }]

    @pytest.mark.asyncio
    async def test_connections_held_elsewhere_are_skipped(self):
        presence = RedisPresenceStore(FakeRedis())
        here = ConnectionHub(presence)
        there = ConnectionHub(presence)
        user = uuid.uuid4()
        local = FakeSocket()
        await here.connect(local, user)
        await there.connect(FakeSocket(), user)

        assert await here.send_to_user(user, "ping", {}) == 1
        assert len(local.sent) == 1

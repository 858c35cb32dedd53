"""
Matcha: presence store.

Maps realtime connection ids to user ids and back.  A user is online while
at least one connection is registered for them.  ``InMemoryPresenceStore``
serves a single process; ``RedisPresenceStore`` is shared by every instance
pointed at the same Redis.
"""

from __future__ import annotations

import uuid
from typing import Protocol

import structlog

logger = structlog.get_logger("matcha.realtime.presence")


class PresenceStore(Protocol):
    async def add(self, connection_id: str, user_id: uuid.UUID) -> None: ...

    async def remove(self, connection_id: str) -> uuid.UUID | None: ...

    async def user_for(self, connection_id: str) -> uuid.UUID | None: ...

    async def connections_for(self, user_id: uuid.UUID) -> set[str]: ...

    async def is_online(self, user_id: uuid.UUID) -> bool: ...


class InMemoryPresenceStore:
    """Process-local presence.

    Mutated only from the event loop thread, so plain dicts suffice.
    """

    def __init__(self) -> None:
        self._users_by_connection: dict[str, uuid.UUID] = {}
        self._connections_by_user: dict[uuid.UUID, set[str]] = {}

    async def add(self, connection_id: str, user_id: uuid.UUID) -> None:
        previous = self._users_by_connection.get(connection_id)
        if previous is not None and previous != user_id:
            self._discard(previous, connection_id)
        self._users_by_connection[connection_id] = user_id
        self._connections_by_user.setdefault(user_id, set()).add(connection_id)

    async def remove(self, connection_id: str) -> uuid.UUID | None:
        user_id = self._users_by_connection.pop(connection_id, None)
        if user_id is not None:
            self._discard(user_id, connection_id)
        return user_id

    async def user_for(self, connection_id: str) -> uuid.UUID | None:
        return self._users_by_connection.get(connection_id)

    async def connections_for(self, user_id: uuid.UUID) -> set[str]:
        return set(self._connections_by_user.get(user_id, ()))

    async def is_online(self, user_id: uuid.UUID) -> bool:
        return bool(self._connections_by_user.get(user_id))

    def _discard(self, user_id: uuid.UUID, connection_id: str) -> None:
        connections = self._connections_by_user.get(user_id)
        if connections is None:
            return
        connections.discard(connection_id)
        if not connections:
            del self._connections_by_user[user_id]


class RedisPresenceStore:
    """Presence kept in Redis so that every app instance sees it.

    Layout: one hash ``<prefix>:connections`` (connection id -> user id) and
    one set ``<prefix>:user:<user id>`` per user holding connection ids.
    """

    def __init__(self, redis, prefix: str = "matcha:presence") -> None:
        self._redis = redis
        self._prefix = prefix

    @property
    def _connections_key(self) -> str:
        return f"{self._prefix}:connections"

    def _user_key(self, user_id: uuid.UUID) -> str:
        return f"{self._prefix}:user:{user_id}"

    async def add(self, connection_id: str, user_id: uuid.UUID) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._connections_key, connection_id, str(user_id))
            pipe.sadd(self._user_key(user_id), connection_id)
            await pipe.execute()

    async def remove(self, connection_id: str) -> uuid.UUID | None:
        raw = await self._redis.hget(self._connections_key, connection_id)
        if raw is None:
            return None
        user_id = uuid.UUID(_as_text(raw))
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hdel(self._connections_key, connection_id)
            pipe.srem(self._user_key(user_id), connection_id)
            await pipe.execute()
        return user_id

    async def user_for(self, connection_id: str) -> uuid.UUID | None:
        raw = await self._redis.hget(self._connections_key, connection_id)
        return uuid.UUID(_as_text(raw)) if raw is not None else None

    async def connections_for(self, user_id: uuid.UUID) -> set[str]:
        members = await self._redis.smembers(self._user_key(user_id))
        return {_as_text(m) for m in members}

    async def is_online(self, user_id: uuid.UUID) -> bool:
        return await self._redis.scard(self._user_key(user_id)) > 0


def _as_text(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)

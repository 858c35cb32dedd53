"""
Matcha: realtime connection hub.

Owns the websockets connected to this process and routes events to users
through the presence store.  The hub is the notification transport handed
to ``NotificationService``: ``emit`` pushes a ``notification`` event to
every live connection of the recipient.
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol

import structlog

from matcha.models.notification import NotificationType
from matcha.realtime.presence import PresenceStore

logger = structlog.get_logger("matcha.realtime.hub")


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ConnectionHub:
    def __init__(self, presence: PresenceStore) -> None:
        self.presence = presence
        self._connections: dict[str, Connection] = {}

    async def connect(self, connection: Connection, user_id: uuid.UUID) -> tuple[str, bool]:
        """Register *connection* for *user_id*.

        Returns the new connection id and whether the user just came online.
        """
        was_online = await self.presence.is_online(user_id)
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = connection
        await self.presence.add(connection_id, user_id)
        logger.info("connection_opened", connection_id=connection_id, user_id=str(user_id))
        return connection_id, not was_online

    async def disconnect(self, connection_id: str) -> tuple[uuid.UUID | None, bool]:
        """Forget *connection_id*.

        Returns the user it belonged to and whether that user is now offline.
        """
        self._connections.pop(connection_id, None)
        user_id = await self.presence.remove(connection_id)
        if user_id is None:
            return None, False
        went_offline = not await self.presence.is_online(user_id)
        logger.info(
            "connection_closed",
            connection_id=connection_id,
            user_id=str(user_id),
            went_offline=went_offline,
        )
        return user_id, went_offline

    async def is_online(self, user_id: uuid.UUID) -> bool:
        return await self.presence.is_online(user_id)

    async def send_to_user(self, user_id: uuid.UUID, event: str, payload: dict) -> int:
        """Push *event* to every connection of *user_id* held by this process.

        Returns the number of connections the event reached.
        """
        delivered = 0
        for connection_id in await self.presence.connections_for(user_id):
            connection = self._connections.get(connection_id)
            if connection is None:
                # Held by another instance.
                continue
            if await self._send(connection_id, connection, event, payload):
                delivered += 1
        return delivered

    async def broadcast(
        self,
        event: str,
        payload: dict,
        exclude_user: uuid.UUID | None = None,
    ) -> int:
        delivered = 0
        for connection_id, connection in list(self._connections.items()):
            if exclude_user is not None:
                owner = await self.presence.user_for(connection_id)
                if owner == exclude_user:
                    continue
            if await self._send(connection_id, connection, event, payload):
                delivered += 1
        return delivered

    async def emit(self, user_id: uuid.UUID, type: NotificationType, message: str) -> None:
        await self.send_to_user(
            user_id,
            "notification",
            {"type": type.value, "message": message},
        )

    async def _send(self, connection_id: str, connection: Connection, event: str, payload: dict) -> bool:
        try:
            await connection.send_json({"event": event, "data": payload})
        except Exception as exc:
            logger.warning(
                "connection_send_failed",
                connection_id=connection_id,
                frame=event,
                error=str(exc),
            )
            await self.disconnect(connection_id)
            return False
        return True

"""
Matcha: Realtime chat websocket

``/ws/chat?user_id=<uuid>`` registers the connection with the hub and then
handles JSON frames of the form ``{"type": ..., ...}``:

  send_message  {"receiver_id", "content"}
                -> "receive_message" to the receiver, "message_sent" back;
                   a gate rejection answers "message_rejected" with the
                   reason code (``not_matched``, ``blocked``, ...)
  mark_read     {"sender_id"}  -> "messages_read" to the other user
  typing        {"receiver_id", "is_typing"} -> "user_typing" to the receiver

Coming online and going offline (first/last connection of a user) flips the
stored online flag and broadcasts "user_status_changed" to everyone else.

There is no request-scoped session here: every frame runs its own unit of
work through ``run_in_transaction``.
"""

from __future__ import annotations

import json
import uuid

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from matcha.database import run_in_transaction
from matcha.errors import MatchaError, NotFoundError
from matcha.realtime.hub import ConnectionHub
from matcha.services.message_service import MessageService
from matcha.services.notification_service import NotificationService
from matcha.services.user_service import UserService, require_user

logger = structlog.get_logger("matcha.api.chat")

router = APIRouter()

_users = UserService()


async def _reply(websocket: WebSocket, event: str, payload: dict) -> None:
    await websocket.send_json({"event": event, "data": payload})


class ChatSession:
    """Frame handling for one websocket connection."""

    def __init__(self, websocket: WebSocket, hub: ConnectionHub, user_id: uuid.UUID) -> None:
        self.websocket = websocket
        self.hub = hub
        self.user_id = user_id
        self.session_factory = getattr(websocket.app.state, "session_factory", None)
        self.messages = MessageService(notifications=NotificationService(transport=hub))

    async def run(self, operation):
        return await run_in_transaction(operation, session_factory=self.session_factory)

    async def set_presence(self, online: bool) -> None:
        if online:
            await self.run(lambda s: _users.set_online(s, self.user_id))
        else:
            await self.run(lambda s: _users.set_offline(s, self.user_id))
        await self.hub.broadcast(
            "user_status_changed",
            {"user_id": str(self.user_id), "is_online": online},
            exclude_user=self.user_id,
        )

    async def dispatch(self, raw: str) -> None:
        """Parse one text frame and handle it.  Bad frames get an "error" reply."""
        try:
            frame = json.loads(raw)
        except ValueError:
            await _reply(self.websocket, "error", {"message": "Frames must be valid JSON."})
            return
        if not isinstance(frame, dict):
            await _reply(self.websocket, "error", {"message": "Frames must be JSON objects."})
            return
        await self.handle(frame)

    async def handle(self, frame: dict) -> None:
        frame_type = frame.get("type")
        try:
            if frame_type == "send_message":
                await self.send_message(uuid.UUID(str(frame.get("receiver_id"))), frame.get("content") or "")
            elif frame_type == "mark_read":
                await self.mark_read(uuid.UUID(str(frame.get("sender_id"))))
            elif frame_type == "typing":
                await self.hub.send_to_user(
                    uuid.UUID(str(frame.get("receiver_id"))),
                    "user_typing",
                    {"user_id": str(self.user_id), "is_typing": bool(frame.get("is_typing"))},
                )
            else:
                await _reply(self.websocket, "error", {"message": f"Unknown frame type: {frame_type!r}"})
        except ValueError:
            await _reply(self.websocket, "error", {"message": "Malformed user id."})

    async def send_message(self, receiver_id: uuid.UUID, content: str) -> None:
        try:
            message = await self.run(
                lambda s: self.messages.send_message(s, self.user_id, receiver_id, content)
            )
        except MatchaError as exc:
            await _reply(self.websocket, "message_rejected", {
                "receiver_id": str(receiver_id),
                "reason": exc.code,
                "message": exc.message,
            })
            return

        payload = {
            "id": str(message.id),
            "sender_id": str(message.sender_id),
            "receiver_id": str(message.receiver_id),
            "content": message.content,
            "sent_at": message.sent_at.isoformat(),
        }
        await self.hub.send_to_user(receiver_id, "receive_message", payload)
        await _reply(self.websocket, "message_sent", payload)

    async def mark_read(self, sender_id: uuid.UUID) -> None:
        try:
            marked = await self.run(
                lambda s: self.messages.mark_as_read(s, self.user_id, sender_id)
            )
        except MatchaError as exc:
            await _reply(self.websocket, "error", {"code": exc.code, "message": exc.message})
            return
        await self.hub.send_to_user(sender_id, "messages_read", {"user_id": str(self.user_id)})
        await _reply(self.websocket, "marked_read", {"sender_id": str(sender_id), "count": marked})


@router.websocket("/ws/chat")
async def chat(websocket: WebSocket, user_id: uuid.UUID = Query(...)) -> None:
    hub: ConnectionHub = websocket.app.state.hub
    session = ChatSession(websocket, hub, user_id)
    log = logger.bind(user_id=str(user_id))

    try:
        await session.run(lambda s: require_user(s, user_id))
    except NotFoundError:
        log.info("chat_refused", reason="unknown_user")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection_id, came_online = await hub.connect(websocket, user_id)
    if came_online:
        await session.set_presence(True)

    try:
        while True:
            await session.dispatch(await websocket.receive_text())
    except WebSocketDisconnect:
        log.debug("chat_disconnected")
    finally:
        _, went_offline = await hub.disconnect(connection_id)
        if went_offline:
            await session.set_presence(False)

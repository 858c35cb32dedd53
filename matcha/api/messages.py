"""
Matcha: Messages API

HTTP access to the messaging gate: send, read a thread, mark it read, and
list conversations.  Rejections surface as 403 with code ``not_matched`` or
``blocked``.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.api.dependencies import get_current_user_id, get_message_service
from matcha.database import get_db
from matcha.models.message import Message
from matcha.schemas.message import (
    ConversationResponse,
    MarkReadResponse,
    MessageCreate,
    MessageResponse,
    UnreadCountResponse,
)
from matcha.services.message_service import MessageService

logger = structlog.get_logger("matcha.api.messages")

router = APIRouter()


@router.get("/conversations", response_model=list[ConversationResponse], summary="My conversations")
async def list_conversations(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    messages: MessageService = Depends(get_message_service),
):
    return await messages.list_conversations(db, user_id)


@router.get("/unread", response_model=UnreadCountResponse, summary="Unread message count")
async def unread_count(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    messages: MessageService = Depends(get_message_service),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread=await messages.unread_count(db, user_id))


@router.post(
    "/{other_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message to a match",
)
async def send_message(
    other_id: uuid.UUID,
    payload: MessageCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    messages: MessageService = Depends(get_message_service),
) -> Message:
    return await messages.send_message(db, user_id, other_id, payload.content)


@router.get("/{other_id}", response_model=list[MessageResponse], summary="Recent messages in a thread")
async def get_thread(
    other_id: uuid.UUID,
    count: int = Query(50, ge=1, le=500),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    messages: MessageService = Depends(get_message_service),
):
    return await messages.get_recent_messages(db, user_id, other_id, count=count)


@router.post("/{other_id}/read", response_model=MarkReadResponse, summary="Mark a thread read")
async def mark_read(
    other_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    messages: MessageService = Depends(get_message_service),
) -> MarkReadResponse:
    return MarkReadResponse(marked=await messages.mark_as_read(db, user_id, other_id))

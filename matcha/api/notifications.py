"""
Matcha: Notifications API
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.api.dependencies import get_current_user_id, get_notification_service
from matcha.database import get_db
from matcha.models.notification import Notification
from matcha.schemas.message import MarkReadResponse, UnreadCountResponse
from matcha.schemas.notification import DeletedResponse, NotificationResponse
from matcha.services.notification_service import NotificationService

logger = structlog.get_logger("matcha.api.notifications")

router = APIRouter()


@router.get("/", response_model=list[NotificationResponse], summary="My notifications")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1, le=500),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
):
    return await notifications.list_for_user(db, user_id, unread_only=unread_only, limit=limit)


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Unread notifications")
async def unread_count(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread=await notifications.unread_count(db, user_id))


@router.post("/read-all", response_model=MarkReadResponse, summary="Mark all as read")
async def mark_all_read(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> MarkReadResponse:
    return MarkReadResponse(marked=await notifications.mark_all_as_read(db, user_id))


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark one notification read",
)
async def mark_read(
    notification_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> Notification:
    return await notifications.mark_as_read(db, notification_id, user_id)


@router.delete(
    "/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete one notification",
)
async def delete_notification(
    notification_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> None:
    await notifications.delete(db, notification_id, user_id)


@router.delete("/", response_model=DeletedResponse, summary="Delete all my notifications")
async def delete_all(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> DeletedResponse:
    return DeletedResponse(deleted=await notifications.delete_all(db, user_id))

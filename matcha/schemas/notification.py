from pydantic import BaseModel
from uuid import UUID
from datetime import datetime

from matcha.models.notification import NotificationType

class NotificationResponse(BaseModel):
    id: UUID
    type: NotificationType
    message: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}

class DeletedResponse(BaseModel):
    deleted: int

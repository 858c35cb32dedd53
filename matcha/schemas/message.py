from pydantic import BaseModel
from uuid import UUID
from datetime import datetime

class MessageCreate(BaseModel):
    content: str

class MessageResponse(BaseModel):
    id: UUID
    sender_id: UUID
    receiver_id: UUID
    content: str
    sent_at: datetime
    is_read: bool

    model_config = {"from_attributes": True}

class ConversationResponse(BaseModel):
    other_user_id: UUID
    other_user_name: str
    other_user_photo: str
    is_online: bool
    last_message: str
    last_message_time: datetime
    unread_count: int

    model_config = {"from_attributes": True}

class UnreadCountResponse(BaseModel):
    unread: int

class MarkReadResponse(BaseModel):
    marked: int

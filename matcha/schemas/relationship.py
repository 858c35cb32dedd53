from pydantic import BaseModel
from uuid import UUID
from datetime import datetime

class LikeResponse(BaseModel):
    status: str
    match_created: bool = False

class StatusResponse(BaseModel):
    status: str

class ReportCreate(BaseModel):
    reason: str

class ReportResponse(BaseModel):
    id: UUID
    reporter_id: UUID
    reported_id: UUID
    reason: str
    is_resolved: bool
    created_at: datetime

    model_config = {"from_attributes": True}

class MatchResponse(BaseModel):
    id: UUID
    other_user_id: UUID
    matched_at: datetime

from pydantic import BaseModel, Field
from uuid import UUID
from datetime import date, datetime
from typing import Optional

class UserResponse(BaseModel):
    id: UUID
    username: str
    first_name: str
    last_name: str
    birth_date: date
    age: int
    gender: str
    sexual_preference: str
    biography: str
    interest_tags: list[str] = []
    profile_photo_url: str
    photo_urls: list[str] = []
    fame_rating: int
    is_online: bool
    last_seen: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}

class PrivateUserResponse(UserResponse):
    email: str
    latitude: float
    longitude: float
    is_email_verified: bool
    is_active: bool

class RankedUserResponse(BaseModel):
    user: UserResponse
    distance_km: float

    model_config = {"from_attributes": True}

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    biography: Optional[str] = None
    gender: Optional[str] = None
    sexual_preference: Optional[str] = None
    interest_tags: Optional[list[str]] = None
    profile_photo_url: Optional[str] = None
    photo_urls: Optional[list[str]] = None

class LocationUpdate(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

class ProfileViewResponse(BaseModel):
    id: UUID
    viewer_id: UUID
    viewed_id: UUID
    viewed_at: datetime

    model_config = {"from_attributes": True}

class RecordViewResponse(BaseModel):
    recorded: bool

"""
Matcha: Users API

Own profile management, suggestions, search and viewing other profiles.
Viewing someone's profile records a profile view.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.api.dependencies import (
    get_current_user_id,
    get_profile_view_service,
    get_user_service,
)
from matcha.database import get_db
from matcha.models.user import User
from matcha.schemas.relationship import StatusResponse
from matcha.schemas.user import (
    LocationUpdate,
    PrivateUserResponse,
    ProfileUpdate,
    ProfileViewResponse,
    RankedUserResponse,
    UserResponse,
)
from matcha.services.profile_view_service import ProfileViewService
from matcha.services.user_service import RankedUser, UserService, require_user

logger = structlog.get_logger("matcha.api.users")

router = APIRouter()


def _ranked(results: list[RankedUser]) -> list[RankedUserResponse]:
    return [
        RankedUserResponse(
            user=UserResponse.model_validate(r.user),
            distance_km=round(r.distance_km, 2),
        )
        for r in results
    ]


# ──────────────────────────────────────────────────────────────────────────────
# Own profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/me", response_model=PrivateUserResponse, summary="Get own profile")
async def get_me(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    return await require_user(db, user_id, active=False)


@router.patch("/me", response_model=PrivateUserResponse, summary="Update own profile")
async def update_me(
    payload: ProfileUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
) -> User:
    return await users.update_profile(db, user_id, **payload.model_dump(exclude_unset=True))


@router.put("/me/location", response_model=PrivateUserResponse, summary="Update own location")
async def update_location(
    payload: LocationUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
) -> User:
    return await users.update_location(db, user_id, payload.latitude, payload.longitude)


@router.post("/me/deactivate", response_model=StatusResponse, summary="Deactivate account")
async def deactivate(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
) -> StatusResponse:
    await users.deactivate(db, user_id)
    return StatusResponse(status="deactivated")


@router.post("/me/reactivate", response_model=StatusResponse, summary="Reactivate account")
async def reactivate(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
) -> StatusResponse:
    await users.reactivate(db, user_id)
    return StatusResponse(status="active")


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT, summary="Delete account")
async def delete_me(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
) -> None:
    await users.delete_user(db, user_id)


@router.get("/me/views", response_model=list[ProfileViewResponse], summary="Who viewed me")
async def list_views(
    limit: int = Query(50, ge=1, le=200),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    views: ProfileViewService = Depends(get_profile_view_service),
):
    return await views.list_views(db, user_id, limit=limit)


@router.get("/me/viewers", response_model=list[UserResponse], summary="Distinct viewers")
async def list_viewers(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    views: ProfileViewService = Depends(get_profile_view_service),
):
    return await views.list_viewers(db, user_id)


# ──────────────────────────────────────────────────────────────────────────────
# Browsing
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/suggestions", response_model=list[RankedUserResponse], summary="Suggested profiles")
async def suggestions(
    limit: Optional[int] = Query(None, ge=1, le=100),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
) -> list[RankedUserResponse]:
    return _ranked(await users.get_suggestions(db, user_id, limit=limit))


@router.get("/search", response_model=list[RankedUserResponse], summary="Search profiles")
async def search(
    age_min: Optional[int] = Query(None, ge=18),
    age_max: Optional[int] = Query(None, ge=18),
    fame_min: Optional[int] = Query(None, ge=0, le=100),
    fame_max: Optional[int] = Query(None, ge=0, le=100),
    distance_max_km: Optional[float] = Query(None, gt=0),
    tags: Optional[list[str]] = Query(None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
) -> list[RankedUserResponse]:
    results = await users.search_users(
        db,
        user_id,
        age_min=age_min,
        age_max=age_max,
        fame_min=fame_min,
        fame_max=fame_max,
        distance_max_km=distance_max_km,
        tags=tags,
    )
    return _ranked(results)


@router.get("/{target_id}", response_model=UserResponse, summary="View a profile")
async def view_profile(
    target_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    users: UserService = Depends(get_user_service),
    views: ProfileViewService = Depends(get_profile_view_service),
) -> User:
    target = await users.get_user(db, target_id)
    if target is None or not target.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {target_id} not found.",
        )
    await views.record_view(db, user_id, target_id)
    return target

"""
Matcha: Relationships API

Likes, blocks, reports and matches of the acting user.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.api.dependencies import get_current_user_id, get_relationship_service
from matcha.database import get_db
from matcha.models.relationship import Report
from matcha.schemas.relationship import (
    LikeResponse,
    MatchResponse,
    ReportCreate,
    ReportResponse,
    StatusResponse,
)
from matcha.schemas.user import UserResponse
from matcha.services.relationship_service import RelationshipService

logger = structlog.get_logger("matcha.api.relationships")

router = APIRouter()


# ── Likes ─────────────────────────────────────────────────────────────────────

@router.post("/likes/{target_id}", response_model=LikeResponse, summary="Like a user")
async def like(
    target_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: RelationshipService = Depends(get_relationship_service),
) -> LikeResponse:
    result = await ledger.like(db, user_id, target_id)
    return LikeResponse(status=result.status.value, match_created=result.match_created)


@router.delete("/likes/{target_id}", response_model=StatusResponse, summary="Unlike a user")
async def unlike(
    target_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: RelationshipService = Depends(get_relationship_service),
) -> StatusResponse:
    result = await ledger.unlike(db, user_id, target_id)
    return StatusResponse(status=result.value)


@router.get("/likes", response_model=list[UserResponse], summary="Users I like")
async def list_liked(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: RelationshipService = Depends(get_relationship_service),
):
    return await ledger.list_liked(db, user_id)


@router.get("/likes/received", response_model=list[UserResponse], summary="Users who like me")
async def list_liked_by(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: RelationshipService = Depends(get_relationship_service),
):
    return await ledger.list_liked_by(db, user_id)


# ── Blocks and reports ────────────────────────────────────────────────────────

@router.post("/blocks/{target_id}", response_model=StatusResponse, summary="Block a user")
async def block(
    target_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: RelationshipService = Depends(get_relationship_service),
) -> StatusResponse:
    result = await ledger.block(db, user_id, target_id)
    return StatusResponse(status=result.value)


@router.delete("/blocks/{target_id}", response_model=StatusResponse, summary="Unblock a user")
async def unblock(
    target_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: RelationshipService = Depends(get_relationship_service),
) -> StatusResponse:
    removed = await ledger.unblock(db, user_id, target_id)
    return StatusResponse(status="removed" if removed else "not_found")


@router.get("/blocks", response_model=list[UserResponse], summary="Users I block")
async def list_blocked(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: RelationshipService = Depends(get_relationship_service),
):
    return await ledger.list_blocked(db, user_id)


@router.post(
    "/reports/{target_id}",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report a user (also blocks them)",
)
async def report(
    target_id: uuid.UUID,
    payload: ReportCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: RelationshipService = Depends(get_relationship_service),
) -> Report:
    return await ledger.report(db, user_id, target_id, payload.reason)


# ── Matches ───────────────────────────────────────────────────────────────────

@router.get("/matches", response_model=list[MatchResponse], summary="My matches")
async def list_matches(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: RelationshipService = Depends(get_relationship_service),
) -> list[MatchResponse]:
    matches = await ledger.match_engine.list_matches(db, user_id)
    return [
        MatchResponse(id=m.id, other_user_id=m.other(user_id), matched_at=m.matched_at)
        for m in matches
    ]


@router.get("/status/{other_id}", response_model=StatusResponse, summary="Relationship status")
async def relationship_status(
    other_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: RelationshipService = Depends(get_relationship_service),
) -> StatusResponse:
    result = await ledger.relationship_status(db, user_id, other_id)
    return StatusResponse(status=result.value)

"""
Matcha: Fame Scorer

Recomputes a user's bounded popularity score:

  fame = clamp(0, 100, completeness + popularity)

  completeness (max 20): 5 each for a non-default avatar, at least one extra
                         photo, a biography longer than 50 characters, and
                         at least 3 interest tags.
  popularity   (max 80): min(views // 10, 20)
                         + min(likes received * 2, 30)
                         + min(matches * 5, 30)

Recompute is idempotent; calling it redundantly only rewrites the same value.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.errors import NotFoundError
from matcha.models.match import Match
from matcha.models.relationship import Like, ProfileView
from matcha.models.user import DEFAULT_AVATAR_URL, User

logger = structlog.get_logger("matcha.fame_service")

FAME_MIN = 0
FAME_MAX = 100

_COMPLETENESS_POINTS = 5
_BIOGRAPHY_MIN_LENGTH = 50
_MIN_TAGS = 3

_VIEW_DIVISOR = 10
_VIEW_CAP = 20
_LIKE_WEIGHT = 2
_LIKE_CAP = 30
_MATCH_WEIGHT = 5
_MATCH_CAP = 30


def completeness_points(user: User) -> int:
    points = 0
    if user.profile_photo_url and user.profile_photo_url != DEFAULT_AVATAR_URL:
        points += _COMPLETENESS_POINTS
    if user.photo_urls:
        points += _COMPLETENESS_POINTS
    if user.biography and user.biography.strip() and len(user.biography) > _BIOGRAPHY_MIN_LENGTH:
        points += _COMPLETENESS_POINTS
    if len(user.interest_tags or []) >= _MIN_TAGS:
        points += _COMPLETENESS_POINTS
    return points


def popularity_points(view_count: int, like_count: int, match_count: int) -> int:
    view_count = max(view_count, 0)
    like_count = max(like_count, 0)
    match_count = max(match_count, 0)
    return (
        min(view_count // _VIEW_DIVISOR, _VIEW_CAP)
        + min(like_count * _LIKE_WEIGHT, _LIKE_CAP)
        + min(match_count * _MATCH_WEIGHT, _MATCH_CAP)
    )


def calculate_fame(completeness: int, view_count: int, like_count: int, match_count: int) -> int:
    score = completeness + popularity_points(view_count, like_count, match_count)
    return max(FAME_MIN, min(FAME_MAX, score))


class FameService:
    async def recompute(self, db_session: AsyncSession, user_id: uuid.UUID) -> int:
        """Recalculate and store the fame rating of *user_id*.

        Raises
        ------
        NotFoundError
            If the user does not exist.
        """
        user = await db_session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.")

        view_count = (
            await db_session.execute(
                select(func.count()).select_from(ProfileView).where(ProfileView.viewed_id == user_id)
            )
        ).scalar_one()
        like_count = (
            await db_session.execute(
                select(func.count()).select_from(Like).where(Like.liked_id == user_id)
            )
        ).scalar_one()
        match_count = (
            await db_session.execute(
                select(func.count()).select_from(Match).where(
                    or_(Match.user1_id == user_id, Match.user2_id == user_id)
                )
            )
        ).scalar_one()

        fame = calculate_fame(completeness_points(user), view_count, like_count, match_count)

        if user.fame_rating != fame:
            user.fame_rating = fame
            await db_session.flush()

        logger.debug(
            "fame_recomputed",
            user_id=str(user_id),
            fame=fame,
            views=view_count,
            likes=like_count,
            matches=match_count,
        )
        return fame

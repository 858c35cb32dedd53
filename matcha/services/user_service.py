"""
Matcha: User Directory

Owns user records: lookups, profile and location edits, presence flags,
soft deactivation and hard deletion, and the two browsing queries
(suggestions and search) that rank other users by great-circle distance.

Browsing never shows a user someone they block or who blocks them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.config import get_settings
from matcha.database import atomic
from matcha.errors import NotFoundError, ValidationError
from matcha.models.auth import EmailVerification, PasswordReset, UserPassword
from matcha.models.match import Match
from matcha.models.message import Message
from matcha.models.notification import Notification
from matcha.models.relationship import Block, Like, ProfileView, Report
from matcha.models.user import User, utcnow
from matcha.utils.geo import haversine_km, is_valid_coordinate
from matcha.utils.sanitize import (
    BIOGRAPHY_MAX_LENGTH,
    is_url_safe,
    sanitize_biography,
    sanitize_tags,
    sanitize_text,
)

logger = structlog.get_logger("matcha.user_service")

GENDERS = ("male", "female", "other")
SEXUAL_PREFERENCES = ("male", "female", "both")
MAX_EXTRA_PHOTOS = 5
NAME_MAX_LENGTH = 100


async def require_user(
    db_session: AsyncSession,
    user_id: uuid.UUID,
    *,
    active: bool = True,
) -> User:
    """Load a user or raise ``NotFoundError``.

    With ``active=True`` (the default) a deactivated account counts as
    missing.
    """
    user = await db_session.get(User, user_id)
    if user is None or (active and not user.is_active):
        raise NotFoundError(f"User {user_id} not found.")
    return user


@dataclass(frozen=True)
class RankedUser:
    """A browsing result: the user and their distance from the caller."""

    user: User
    distance_km: float


class UserService:
    # ── Lookups ──────────────────────────────────────────────────────────

    async def get_user(self, db_session: AsyncSession, user_id: uuid.UUID) -> User | None:
        return await db_session.get(User, user_id)

    async def get_by_username(self, db_session: AsyncSession, username: str) -> User | None:
        stmt = select(User).where(User.username == username)
        return (await db_session.execute(stmt)).scalar_one_or_none()

    async def get_by_email(self, db_session: AsyncSession, email: str) -> User | None:
        stmt = select(User).where(User.email == email.strip().lower())
        return (await db_session.execute(stmt)).scalar_one_or_none()

    # ── Profile edits ────────────────────────────────────────────────────

    async def update_profile(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
        biography: str | None = None,
        gender: str | None = None,
        sexual_preference: str | None = None,
        interest_tags: list[str] | None = None,
        profile_photo_url: str | None = None,
        photo_urls: list[str] | None = None,
    ) -> User:
        """Apply the given profile fields.  ``None`` leaves a field unchanged.

        All problems are collected and raised together as one
        ``ValidationError``; nothing is written in that case.
        """
        errors: list[str] = []
        changes: dict = {}

        for field, value in (("first_name", first_name), ("last_name", last_name)):
            if value is None:
                continue
            cleaned = sanitize_text(value)
            if not cleaned:
                errors.append(f"{field.replace('_', ' ').capitalize()} is required.")
            elif len(cleaned) > NAME_MAX_LENGTH:
                errors.append(
                    f"{field.replace('_', ' ').capitalize()} must be at most "
                    f"{NAME_MAX_LENGTH} characters."
                )
            else:
                changes[field] = cleaned

        if biography is not None:
            if len(biography) > BIOGRAPHY_MAX_LENGTH:
                errors.append(f"Biography must be at most {BIOGRAPHY_MAX_LENGTH} characters.")
            else:
                changes["biography"] = sanitize_biography(biography)

        if gender is not None:
            if gender not in GENDERS:
                errors.append(f"Gender must be one of: {', '.join(GENDERS)}.")
            else:
                changes["gender"] = gender

        if sexual_preference is not None:
            if sexual_preference not in SEXUAL_PREFERENCES:
                errors.append(
                    f"Sexual preference must be one of: {', '.join(SEXUAL_PREFERENCES)}."
                )
            else:
                changes["sexual_preference"] = sexual_preference

        if interest_tags is not None:
            changes["interest_tags"] = sanitize_tags(interest_tags)

        if profile_photo_url is not None:
            if not is_url_safe(profile_photo_url):
                errors.append("Profile photo URL is not allowed.")
            else:
                changes["profile_photo_url"] = profile_photo_url.strip()

        if photo_urls is not None:
            if len(photo_urls) > MAX_EXTRA_PHOTOS:
                errors.append(f"At most {MAX_EXTRA_PHOTOS} extra photos are allowed.")
            elif not all(is_url_safe(url) for url in photo_urls):
                errors.append("One or more photo URLs are not allowed.")
            else:
                changes["photo_urls"] = [url.strip() for url in photo_urls]

        if errors:
            raise ValidationError(errors)

        async with atomic(db_session):
            user = await require_user(db_session, user_id)
            for field, value in changes.items():
                setattr(user, field, value)
            await db_session.flush()

        logger.info("profile_updated", user_id=str(user_id), fields=sorted(changes))
        return user

    async def update_location(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        latitude: float,
        longitude: float,
    ) -> User:
        if not is_valid_coordinate(latitude, longitude):
            raise ValidationError(
                "Latitude must be within [-90, 90] and longitude within [-180, 180]."
            )

        async with atomic(db_session):
            user = await require_user(db_session, user_id)
            user.latitude = latitude
            user.longitude = longitude
            await db_session.flush()

        logger.debug("location_updated", user_id=str(user_id))
        return user

    # ── Presence and lifecycle ───────────────────────────────────────────

    async def set_online(self, db_session: AsyncSession, user_id: uuid.UUID) -> None:
        await self._set_presence(db_session, user_id, online=True)

    async def set_offline(self, db_session: AsyncSession, user_id: uuid.UUID) -> None:
        await self._set_presence(db_session, user_id, online=False)

    async def deactivate(self, db_session: AsyncSession, user_id: uuid.UUID) -> User:
        async with atomic(db_session):
            user = await require_user(db_session, user_id, active=False)
            if user.is_active:
                user.is_active = False
                user.is_online = False
                user.deactivated_at = utcnow()
                await db_session.flush()
        logger.info("user_deactivated", user_id=str(user_id))
        return user

    async def reactivate(self, db_session: AsyncSession, user_id: uuid.UUID) -> User:
        async with atomic(db_session):
            user = await require_user(db_session, user_id, active=False)
            if not user.is_active:
                user.is_active = True
                user.deactivated_at = None
                await db_session.flush()
        logger.info("user_reactivated", user_id=str(user_id))
        return user

    async def delete_user(self, db_session: AsyncSession, user_id: uuid.UUID) -> None:
        """Hard-delete a user and every row that refers to them."""
        async with atomic(db_session):
            user = await require_user(db_session, user_id, active=False)

            dependents = (
                delete(Like).where(or_(Like.liker_id == user_id, Like.liked_id == user_id)),
                delete(Match).where(or_(Match.user1_id == user_id, Match.user2_id == user_id)),
                delete(Block).where(or_(Block.blocker_id == user_id, Block.blocked_id == user_id)),
                delete(Report).where(
                    or_(Report.reporter_id == user_id, Report.reported_id == user_id)
                ),
                delete(ProfileView).where(
                    or_(ProfileView.viewer_id == user_id, ProfileView.viewed_id == user_id)
                ),
                delete(Message).where(
                    or_(Message.sender_id == user_id, Message.receiver_id == user_id)
                ),
                delete(Notification).where(Notification.user_id == user_id),
                delete(EmailVerification).where(EmailVerification.user_id == user_id),
                delete(PasswordReset).where(PasswordReset.user_id == user_id),
                delete(UserPassword).where(UserPassword.user_id == user_id),
            )
            for stmt in dependents:
                await db_session.execute(stmt)

            await db_session.delete(user)
            await db_session.flush()

        logger.info("user_deleted", user_id=str(user_id))

    # ── Browsing ─────────────────────────────────────────────────────────

    async def get_suggestions(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        limit: int | None = None,
    ) -> list[RankedUser]:
        """Suggest profiles to *user_id*, nearest first, then most famous.

        Excludes the caller, deactivated users, anyone in a block with the
        caller and anyone the caller already liked.  Candidates are limited
        to the caller's preferred gender unless the preference is ``both``.
        """
        limit = limit or get_settings().SUGGESTION_LIMIT
        me = await require_user(db_session, user_id)

        already_liked = select(Like.liked_id).where(Like.liker_id == user_id)
        stmt = self._visible_to(user_id).where(User.id.not_in(already_liked))
        if me.sexual_preference and me.sexual_preference != "both":
            stmt = stmt.where(User.gender == me.sexual_preference)

        candidates = (await db_session.execute(stmt)).scalars().all()
        ranked = [
            RankedUser(u, haversine_km(me.latitude, me.longitude, u.latitude, u.longitude))
            for u in candidates
        ]
        ranked.sort(key=lambda r: (r.distance_km, -r.user.fame_rating))

        logger.debug("suggestions_computed", user_id=str(user_id), candidates=len(ranked))
        return ranked[:limit]

    async def search_users(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        *,
        age_min: int | None = None,
        age_max: int | None = None,
        fame_min: int | None = None,
        fame_max: int | None = None,
        distance_max_km: float | None = None,
        tags: list[str] | None = None,
    ) -> list[RankedUser]:
        """Filter visible users by age, fame, distance and shared tags.

        A user matches the tag filter when they carry any of *tags*.  The
        result is sorted by distance from the caller.
        """
        me = await require_user(db_session, user_id)

        stmt = self._visible_to(user_id)
        if fame_min is not None:
            stmt = stmt.where(User.fame_rating >= fame_min)
        if fame_max is not None:
            stmt = stmt.where(User.fame_rating <= fame_max)

        wanted_tags = set(sanitize_tags(tags)) if tags else set()
        results: list[RankedUser] = []
        for user in (await db_session.execute(stmt)).scalars().all():
            age = user.age
            if age_min is not None and age < age_min:
                continue
            if age_max is not None and age > age_max:
                continue

            distance = haversine_km(me.latitude, me.longitude, user.latitude, user.longitude)
            if distance_max_km is not None and distance > distance_max_km:
                continue

            if wanted_tags and not wanted_tags.intersection(user.interest_tags or []):
                continue

            results.append(RankedUser(user, distance))

        results.sort(key=lambda r: r.distance_km)
        return results

    # ── Private helpers ──────────────────────────────────────────────────

    def _visible_to(self, user_id: uuid.UUID):
        """Active users other than *user_id* with no block between them."""
        blocked = select(Block.blocked_id).where(Block.blocker_id == user_id)
        blocking = select(Block.blocker_id).where(Block.blocked_id == user_id)
        return select(User).where(
            User.id != user_id,
            User.is_active.is_(True),
            User.id.not_in(blocked),
            User.id.not_in(blocking),
        )

    async def _set_presence(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        *,
        online: bool,
    ) -> None:
        async with atomic(db_session):
            user = await require_user(db_session, user_id, active=False)
            user.is_online = online
            user.last_seen = utcnow()
            await db_session.flush()
        logger.debug("presence_updated", user_id=str(user_id), online=online)


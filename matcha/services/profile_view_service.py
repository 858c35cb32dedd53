"""
Matcha: Profile view recording

A view of B's profile by A is recorded at most once per cool-down window
(``PROFILE_VIEW_COOLDOWN_HOURS``).  A recorded view notifies B and
recomputes B's fame.  Views of oneself and views across a block are
ignored.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.config import get_settings
from matcha.database import atomic
from matcha.models.notification import NotificationType
from matcha.models.relationship import ProfileView
from matcha.models.user import User
from matcha.services.fame_service import FameService
from matcha.services.match_engine import block_between
from matcha.services.notification_service import NotificationService
from matcha.services.user_service import require_user

logger = structlog.get_logger("matcha.profile_view_service")


class ProfileViewService:
    def __init__(
        self,
        notifications: NotificationService | None = None,
        fame: FameService | None = None,
        cooldown_hours: int | None = None,
    ) -> None:
        self.notifications = notifications or NotificationService()
        self.fame = fame or FameService()
        if cooldown_hours is None:
            cooldown_hours = get_settings().PROFILE_VIEW_COOLDOWN_HOURS
        self.cooldown = timedelta(hours=cooldown_hours)

    async def record_view(
        self,
        db_session: AsyncSession,
        viewer_id: uuid.UUID,
        viewed_id: uuid.UUID,
    ) -> bool:
        """Record that *viewer_id* looked at *viewed_id*'s profile.

        Returns ``True`` when a new view row was written.
        """
        log = logger.bind(viewer=str(viewer_id), viewed=str(viewed_id))

        if viewer_id == viewed_id:
            return False

        async with atomic(db_session):
            viewer = await require_user(db_session, viewer_id)
            await require_user(db_session, viewed_id)

            blocked = (
                await db_session.execute(select(exists().where(block_between(viewer_id, viewed_id))))
            ).scalar_one()
            if blocked:
                log.debug("view_ignored", reason="blocked")
                return False

            cutoff = datetime.now(timezone.utc) - self.cooldown
            recent = (
                await db_session.execute(
                    select(
                        exists().where(
                            ProfileView.viewer_id == viewer_id,
                            ProfileView.viewed_id == viewed_id,
                            ProfileView.viewed_at > cutoff,
                        )
                    )
                )
            ).scalar_one()
            if recent:
                log.debug("view_ignored", reason="cooldown")
                return False

            db_session.add(ProfileView(viewer_id=viewer_id, viewed_id=viewed_id))
            await db_session.flush()

            notification = await self.notifications.create(
                db_session, viewed_id, NotificationType.VIEW, viewer.username
            )
            await self.fame.recompute(db_session, viewed_id)

        log.info("profile_view_recorded")
        await self.notifications.publish_on_commit(db_session, [notification])
        return True

    async def list_views(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        limit: int = 50,
    ) -> list[ProfileView]:
        """Views of *user_id*'s profile, newest first."""
        stmt = (
            select(ProfileView)
            .where(ProfileView.viewed_id == user_id)
            .order_by(ProfileView.viewed_at.desc())
            .limit(limit)
        )
        return list((await db_session.execute(stmt)).scalars().all())

    async def list_viewers(self, db_session: AsyncSession, user_id: uuid.UUID) -> list[User]:
        """Distinct users who viewed *user_id*, most recent viewer first."""
        last_view = func.max(ProfileView.viewed_at).label("last_view")
        stmt = (
            select(User, last_view)
            .join(ProfileView, ProfileView.viewer_id == User.id)
            .where(ProfileView.viewed_id == user_id)
            .group_by(User.id)
            .order_by(last_view.desc())
        )
        return [user for user, _ in (await db_session.execute(stmt)).all()]

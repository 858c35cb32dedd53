"""
Matcha: Relationship Ledger

Likes, blocks and reports between ordered pairs of users.  Every mutating
operation runs as one atomic unit over the Like, Match and Block tables so
that, once it commits, the following holds for every pair ``(a, b)``:

  Match(a, b)  <=>  Like(a -> b) and Like(b -> a) and no Block either way

Each operation starts by locking both user rows (``lock_pair``), so two
writers on the same pair never interleave their check and write steps.

Duplicate likes and blocks are not errors.  They come back as a distinct
result status so callers can stay idempotent.

Side effects:
  like     -> "match" notification to both users when the like completes a
              pair, otherwise a "like" notification to the liked user
  unlike   -> "unlike" notification; dissolves the match if there was one
  block    -> deletes both likes and the match in the same transaction
  report   -> stores the report, then blocks the reported user
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import and_, delete, exists, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.database import atomic
from matcha.errors import ValidationError
from matcha.models.notification import Notification, NotificationType
from matcha.models.relationship import Block, Like, Report
from matcha.models.user import User
from matcha.services.fame_service import FameService
from matcha.services.match_engine import MatchEngine, block_between, lock_pair
from matcha.services.notification_service import NotificationService
from matcha.services.user_service import require_user
from matcha.utils.sanitize import sanitize_text

logger = structlog.get_logger("matcha.relationship_service")

REPORT_REASON_MAX_LENGTH = 500


# ──────────────────────────────────────────────────────────────────────────────
# Result types
# ──────────────────────────────────────────────────────────────────────────────

class LikeStatus(str, enum.Enum):
    CREATED = "created"
    ALREADY_LIKED = "already_liked"
    REJECTED_SELF = "rejected_self"
    REJECTED_BLOCKED = "rejected_blocked"


@dataclass(frozen=True)
class LikeResult:
    status: LikeStatus
    match_created: bool = False


class UnlikeStatus(str, enum.Enum):
    REMOVED = "removed"
    NOT_FOUND = "not_found"


class BlockStatus(str, enum.Enum):
    CREATED = "created"
    ALREADY_BLOCKED = "already_blocked"
    REJECTED_SELF = "rejected_self"


class RelationshipStatus(str, enum.Enum):
    """Derived state of a pair, seen from the first user."""

    UNCONNECTED = "unconnected"
    LIKED = "liked"
    LIKED_BY = "liked_by"
    MATCHED = "matched"
    BLOCKED = "blocked"


# ──────────────────────────────────────────────────────────────────────────────
# Service
# ──────────────────────────────────────────────────────────────────────────────

class RelationshipService:
    def __init__(
        self,
        notifications: NotificationService | None = None,
        match_engine: MatchEngine | None = None,
        fame: FameService | None = None,
    ) -> None:
        self.notifications = notifications or NotificationService()
        self.match_engine = match_engine or MatchEngine()
        self.fame = fame or FameService()

    # ── Likes ────────────────────────────────────────────────────────────

    async def like(
        self,
        db_session: AsyncSession,
        liker_id: uuid.UUID,
        liked_id: uuid.UUID,
    ) -> LikeResult:
        """Record that *liker_id* likes *liked_id*.

        Raises
        ------
        NotFoundError
            If either user does not exist or is deactivated.
        """
        log = logger.bind(liker=str(liker_id), liked=str(liked_id))

        if liker_id == liked_id:
            log.info("like_rejected", reason="self")
            return LikeResult(LikeStatus.REJECTED_SELF)

        pending: list[Notification] = []
        async with atomic(db_session):
            await lock_pair(db_session, liker_id, liked_id)
            liker = await require_user(db_session, liker_id)
            liked = await require_user(db_session, liked_id)

            if await self.is_blocked(db_session, liker_id, liked_id):
                log.info("like_rejected", reason="blocked")
                return LikeResult(LikeStatus.REJECTED_BLOCKED)

            if await self.is_liked(db_session, liker_id, liked_id):
                log.debug("like_already_exists")
                return LikeResult(LikeStatus.ALREADY_LIKED)

            try:
                async with db_session.begin_nested():
                    db_session.add(Like(liker_id=liker_id, liked_id=liked_id))
            except IntegrityError:
                log.info("like_insert_race_lost")
                return LikeResult(LikeStatus.ALREADY_LIKED)

            match = await self.match_engine.try_form_match(db_session, liker_id, liked_id)
            if match is not None:
                pending.append(await self.notifications.create(
                    db_session, liked_id, NotificationType.MATCH, liker.username
                ))
                pending.append(await self.notifications.create(
                    db_session, liker_id, NotificationType.MATCH, liked.username
                ))
                await self.fame.recompute(db_session, liker_id)
            else:
                pending.append(await self.notifications.create(
                    db_session, liked_id, NotificationType.LIKE, liker.username
                ))
            await self.fame.recompute(db_session, liked_id)

        log.info("like_created", match_created=match is not None)
        await self.notifications.publish_on_commit(db_session, pending)
        return LikeResult(LikeStatus.CREATED, match_created=match is not None)

    async def unlike(
        self,
        db_session: AsyncSession,
        liker_id: uuid.UUID,
        liked_id: uuid.UUID,
    ) -> UnlikeStatus:
        """Withdraw a like.  A match resting on it is dissolved first."""
        log = logger.bind(liker=str(liker_id), liked=str(liked_id))

        pending: list[Notification] = []
        async with atomic(db_session):
            await lock_pair(db_session, liker_id, liked_id)
            liker = await require_user(db_session, liker_id, active=False)
            await require_user(db_session, liked_id, active=False)

            if not await self.is_liked(db_session, liker_id, liked_id):
                log.debug("unlike_not_found")
                return UnlikeStatus.NOT_FOUND

            dissolved = await self.match_engine.dissolve_match(db_session, liker_id, liked_id)
            await db_session.execute(
                delete(Like).where(Like.liker_id == liker_id, Like.liked_id == liked_id)
            )

            pending.append(await self.notifications.create(
                db_session, liked_id, NotificationType.UNLIKE, liker.username
            ))
            await self.fame.recompute(db_session, liked_id)
            if dissolved:
                await self.fame.recompute(db_session, liker_id)

        log.info("like_removed", match_dissolved=dissolved)
        await self.notifications.publish_on_commit(db_session, pending)
        return UnlikeStatus.REMOVED

    async def is_liked(
        self,
        db_session: AsyncSession,
        liker_id: uuid.UUID,
        liked_id: uuid.UUID,
    ) -> bool:
        stmt = select(exists().where(Like.liker_id == liker_id, Like.liked_id == liked_id))
        return (await db_session.execute(stmt)).scalar_one()

    async def list_liked(self, db_session: AsyncSession, user_id: uuid.UUID) -> list[User]:
        """Users *user_id* has liked, most recent first."""
        stmt = (
            select(User)
            .join(Like, Like.liked_id == User.id)
            .where(Like.liker_id == user_id)
            .order_by(Like.created_at.desc())
        )
        return list((await db_session.execute(stmt)).scalars().all())

    async def list_liked_by(self, db_session: AsyncSession, user_id: uuid.UUID) -> list[User]:
        """Users who liked *user_id*, most recent first."""
        stmt = (
            select(User)
            .join(Like, Like.liker_id == User.id)
            .where(Like.liked_id == user_id)
            .order_by(Like.created_at.desc())
        )
        return list((await db_session.execute(stmt)).scalars().all())

    # ── Blocks ───────────────────────────────────────────────────────────

    async def block(
        self,
        db_session: AsyncSession,
        blocker_id: uuid.UUID,
        blocked_id: uuid.UUID,
    ) -> BlockStatus:
        """Block *blocked_id* and clear every like and match between the pair.

        The block row, the removal of both likes and the removal of the
        match commit together or not at all.
        """
        log = logger.bind(blocker=str(blocker_id), blocked=str(blocked_id))

        if blocker_id == blocked_id:
            log.info("block_rejected", reason="self")
            return BlockStatus.REJECTED_SELF

        async with atomic(db_session):
            await lock_pair(db_session, blocker_id, blocked_id)
            await require_user(db_session, blocker_id, active=False)
            await require_user(db_session, blocked_id, active=False)

            if await self.has_blocked(db_session, blocker_id, blocked_id):
                log.debug("block_already_exists")
                return BlockStatus.ALREADY_BLOCKED

            try:
                async with db_session.begin_nested():
                    db_session.add(Block(blocker_id=blocker_id, blocked_id=blocked_id))
            except IntegrityError:
                log.info("block_insert_race_lost")
                return BlockStatus.ALREADY_BLOCKED

            removed = await db_session.execute(
                delete(Like).where(
                    or_(
                        and_(Like.liker_id == blocker_id, Like.liked_id == blocked_id),
                        and_(Like.liker_id == blocked_id, Like.liked_id == blocker_id),
                    )
                )
            )
            dissolved = await self.match_engine.dissolve_match(db_session, blocker_id, blocked_id)

            await self.fame.recompute(db_session, blocker_id)
            await self.fame.recompute(db_session, blocked_id)

        log.info("block_created", likes_removed=removed.rowcount, match_dissolved=dissolved)
        return BlockStatus.CREATED

    async def unblock(
        self,
        db_session: AsyncSession,
        blocker_id: uuid.UUID,
        blocked_id: uuid.UUID,
    ) -> bool:
        """Lift a block.  Likes cleared by the block are not restored."""
        async with atomic(db_session):
            await lock_pair(db_session, blocker_id, blocked_id)
            result = await db_session.execute(
                delete(Block).where(
                    Block.blocker_id == blocker_id, Block.blocked_id == blocked_id
                )
            )
        removed = result.rowcount > 0
        logger.info(
            "block_removed" if removed else "unblock_not_found",
            blocker=str(blocker_id),
            blocked=str(blocked_id),
        )
        return removed

    async def is_blocked(
        self,
        db_session: AsyncSession,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
    ) -> bool:
        """True when either user blocks the other."""
        stmt = select(exists().where(block_between(user_a, user_b)))
        return (await db_session.execute(stmt)).scalar_one()

    async def has_blocked(
        self,
        db_session: AsyncSession,
        blocker_id: uuid.UUID,
        blocked_id: uuid.UUID,
    ) -> bool:
        """True when *blocker_id* blocks *blocked_id* (one direction only)."""
        stmt = select(
            exists().where(Block.blocker_id == blocker_id, Block.blocked_id == blocked_id)
        )
        return (await db_session.execute(stmt)).scalar_one()

    async def list_blocked(self, db_session: AsyncSession, user_id: uuid.UUID) -> list[User]:
        stmt = (
            select(User)
            .join(Block, Block.blocked_id == User.id)
            .where(Block.blocker_id == user_id)
            .order_by(Block.created_at.desc())
        )
        return list((await db_session.execute(stmt)).scalars().all())

    # ── Reports ──────────────────────────────────────────────────────────

    async def report(
        self,
        db_session: AsyncSession,
        reporter_id: uuid.UUID,
        reported_id: uuid.UUID,
        reason: str,
    ) -> Report:
        """File a report and block the reported user in the same transaction.

        Raises
        ------
        ValidationError
            On a self-report or an empty reason.
        NotFoundError
            If either user does not exist.
        """
        errors: list[str] = []
        if reporter_id == reported_id:
            errors.append("You cannot report yourself.")
        cleaned = sanitize_text(reason)[:REPORT_REASON_MAX_LENGTH]
        if not cleaned:
            errors.append("A reason is required.")
        if errors:
            raise ValidationError(errors)

        async with atomic(db_session):
            await lock_pair(db_session, reporter_id, reported_id)
            await require_user(db_session, reporter_id, active=False)
            await require_user(db_session, reported_id, active=False)

            report = Report(reporter_id=reporter_id, reported_id=reported_id, reason=cleaned)
            db_session.add(report)
            await db_session.flush()

            await self.block(db_session, reporter_id, reported_id)

        logger.info(
            "report_created",
            report_id=str(report.id),
            reporter=str(reporter_id),
            reported=str(reported_id),
        )
        return report

    # ── Derived state ────────────────────────────────────────────────────

    async def relationship_status(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        other_id: uuid.UUID,
    ) -> RelationshipStatus:
        if await self.is_blocked(db_session, user_id, other_id):
            return RelationshipStatus.BLOCKED
        if await self.match_engine.is_matched(db_session, user_id, other_id):
            return RelationshipStatus.MATCHED
        if await self.is_liked(db_session, user_id, other_id):
            return RelationshipStatus.LIKED
        if await self.is_liked(db_session, other_id, user_id):
            return RelationshipStatus.LIKED_BY
        return RelationshipStatus.UNCONNECTED

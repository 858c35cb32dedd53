"""
Matcha: Match Engine

Derives the match set from reciprocal likes.  A match between two users
exists iff both like each other and neither blocks the other; it is stored
once, under the canonical key ``(min(a, b), max(a, b))``.

The engine has no state of its own.  The relationship ledger calls
``try_form_match`` after a like and ``dissolve_match`` after an unlike or a
block, inside the ledger's transaction.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import and_, delete, exists, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.models.match import Match
from matcha.models.relationship import Block, Like
from matcha.models.user import User

logger = structlog.get_logger("matcha.match_engine")


def canonical_pair(user_a: uuid.UUID, user_b: uuid.UUID) -> tuple[uuid.UUID, uuid.UUID]:
    """Return the pair ordered as it is keyed in the ``matches`` table."""
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def block_between(user_a: uuid.UUID, user_b: uuid.UUID):
    """SQL criterion matching a block in either direction."""
    return or_(
        and_(Block.blocker_id == user_a, Block.blocked_id == user_b),
        and_(Block.blocker_id == user_b, Block.blocked_id == user_a),
    )


def pair_lock_statement(user_a: uuid.UUID, user_b: uuid.UUID):
    """``SELECT ... FOR UPDATE`` over both user rows, in canonical order."""
    return (
        select(User.id)
        .where(User.id.in_(canonical_pair(user_a, user_b)))
        .order_by(User.id)
        .with_for_update()
    )


async def lock_pair(db_session: AsyncSession, user_a: uuid.UUID, user_b: uuid.UUID) -> None:
    """Serialise writers on the pair ``(user_a, user_b)``.

    Every operation that changes likes, blocks, matches or messages between
    two users takes this lock first, so two such operations on the same pair
    run one after the other and each sees the other's committed rows.  The
    rows are locked in canonical order, so ``like(a, b)`` racing
    ``like(b, a)`` cannot deadlock.  Held until the enclosing transaction
    ends.
    """
    await db_session.execute(pair_lock_statement(user_a, user_b))


class MatchEngine:
    async def get_match(
        self,
        db_session: AsyncSession,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
    ) -> Match | None:
        user1, user2 = canonical_pair(user_a, user_b)
        stmt = select(Match).where(Match.user1_id == user1, Match.user2_id == user2)
        return (await db_session.execute(stmt)).scalar_one_or_none()

    async def is_matched(
        self,
        db_session: AsyncSession,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
    ) -> bool:
        user1, user2 = canonical_pair(user_a, user_b)
        stmt = select(exists().where(Match.user1_id == user1, Match.user2_id == user2))
        return (await db_session.execute(stmt)).scalar_one()

    async def try_form_match(
        self,
        db_session: AsyncSession,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
    ) -> Match | None:
        """Create the match for ``(user_a, user_b)`` if it is due.

        Returns the newly created match, or ``None`` when no new row was
        written: the likes are not reciprocal, a block exists, or the
        match already exists.

        The insert runs in its own SAVEPOINT.  When a concurrent reciprocal
        like wins the race, the unique key rejects the second row and the
        savepoint rollback leaves the caller's transaction intact.
        """
        if user_a == user_b:
            return None

        log = logger.bind(user_a=str(user_a), user_b=str(user_b))

        if not await self._reciprocal_likes(db_session, user_a, user_b):
            log.debug("match_not_due", reason="not_reciprocal")
            return None

        if await self._blocked(db_session, user_a, user_b):
            log.debug("match_not_due", reason="blocked")
            return None

        if await self.is_matched(db_session, user_a, user_b):
            log.debug("match_not_due", reason="already_matched")
            return None

        user1, user2 = canonical_pair(user_a, user_b)
        match = Match(user1_id=user1, user2_id=user2)
        try:
            async with db_session.begin_nested():
                db_session.add(match)
        except IntegrityError:
            log.info("match_insert_race_lost")
            return None

        log.info("match_formed", match_id=str(match.id))
        return match

    async def dissolve_match(
        self,
        db_session: AsyncSession,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
    ) -> bool:
        """Delete the match between the pair.  Returns whether one existed."""
        user1, user2 = canonical_pair(user_a, user_b)
        result = await db_session.execute(
            delete(Match).where(Match.user1_id == user1, Match.user2_id == user2)
        )
        dissolved = result.rowcount > 0
        if dissolved:
            logger.info("match_dissolved", user_a=str(user_a), user_b=str(user_b))
        return dissolved

    async def list_matches(self, db_session: AsyncSession, user_id: uuid.UUID) -> list[Match]:
        stmt = (
            select(Match)
            .where(or_(Match.user1_id == user_id, Match.user2_id == user_id))
            .order_by(Match.matched_at.desc())
        )
        return list((await db_session.execute(stmt)).scalars().all())

    # ── Private helpers ──────────────────────────────────────────────────

    async def _reciprocal_likes(
        self,
        db_session: AsyncSession,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
    ) -> bool:
        a_likes_b = exists().where(Like.liker_id == user_a, Like.liked_id == user_b)
        b_likes_a = exists().where(Like.liker_id == user_b, Like.liked_id == user_a)
        stmt = select(and_(a_likes_b, b_likes_a))
        return bool((await db_session.execute(stmt)).scalar_one())

    async def _blocked(
        self,
        db_session: AsyncSession,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
    ) -> bool:
        stmt = select(exists().where(block_between(user_a, user_b)))
        return (await db_session.execute(stmt)).scalar_one()

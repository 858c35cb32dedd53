"""Unit tests for MatchEngine: derivation of matches from reciprocal likes."""
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from matcha.models import Block, Like, Match
from matcha.services.match_engine import canonical_pair


async def _match_count(db):
    return (await db.execute(select(func.count()).select_from(Match))).scalar_one()


class TestCanonicalPair:

    def test_orders_by_uuid(self):
        low = uuid.UUID(int=1)
        high = uuid.UUID(int=2)
        assert canonical_pair(low, high) == (low, high)
        assert canonical_pair(high, low) == (low, high)

    def test_symmetric(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        assert canonical_pair(a, b) == canonical_pair(b, a)


class TestTryFormMatch:

    @pytest.mark.asyncio
    async def test_requires_reciprocal_likes(self, db, make_user, match_engine):
        a = await make_user()
        b = await make_user()
        db.add(Like(liker_id=a.id, liked_id=b.id))
        await db.flush()

        assert await match_engine.try_form_match(db, a.id, b.id) is None
        assert await _match_count(db) == 0

    @pytest.mark.asyncio
    async def test_creates_canonical_row(self, db, make_user, match_engine):
        a = await make_user()
        b = await make_user()
        db.add_all([Like(liker_id=a.id, liked_id=b.id), Like(liker_id=b.id, liked_id=a.id)])
        await db.flush()

        match = await match_engine.try_form_match(db, b.id, a.id)

        assert match is not None
        assert (match.user1_id, match.user2_id) == canonical_pair(a.id, b.id)
        assert match.user1_id < match.user2_id
        assert await match_engine.is_matched(db, a.id, b.id)
        assert await match_engine.is_matched(db, b.id, a.id)

    @pytest.mark.asyncio
    async def test_second_call_does_not_duplicate(self, db, make_user, match_engine):
        a = await make_user()
        b = await make_user()
        db.add_all([Like(liker_id=a.id, liked_id=b.id), Like(liker_id=b.id, liked_id=a.id)])
        await db.flush()

        assert await match_engine.try_form_match(db, a.id, b.id) is not None
        assert await match_engine.try_form_match(db, b.id, a.id) is None
        assert await _match_count(db) == 1

    @pytest.mark.asyncio
    async def test_block_prevents_match(self, db, make_user, match_engine):
        a = await make_user()
        b = await make_user()
        db.add_all([
            Like(liker_id=a.id, liked_id=b.id),
            Like(liker_id=b.id, liked_id=a.id),
            Block(blocker_id=b.id, blocked_id=a.id),
        ])
        await db.flush()

        assert await match_engine.try_form_match(db, a.id, b.id) is None
        assert await _match_count(db) == 0

    @pytest.mark.asyncio
    async def test_self_pair_is_ignored(self, db, make_user, match_engine):
        a = await make_user()
        assert await match_engine.try_form_match(db, a.id, a.id) is None

    @pytest.mark.asyncio
    async def test_lost_insert_race_is_absorbed(self, db, make_user, match_engine):
        """A concurrent insert of the same pair hits the unique key; the
        savepoint absorbs it and the outer transaction stays usable."""
        a = await make_user()
        b = await make_user()
        user1, user2 = canonical_pair(a.id, b.id)
        db.add_all([
            Like(liker_id=a.id, liked_id=b.id),
            Like(liker_id=b.id, liked_id=a.id),
            Match(user1_id=user1, user2_id=user2),
        ])
        await db.flush()

        # Pretend the existence check ran before the other writer committed.
        with patch.object(match_engine, "is_matched", AsyncMock(return_value=False)):
            assert await match_engine.try_form_match(db, a.id, b.id) is None

        assert await _match_count(db) == 1
        # The session is still usable after the absorbed failure.
        assert (await db.execute(select(func.count()).select_from(Like))).scalar_one() == 2


class TestDissolveMatch:

    @pytest.mark.asyncio
    async def test_dissolve_existing(self, db, make_user, match_engine):
        a = await make_user()
        b = await make_user()
        user1, user2 = canonical_pair(a.id, b.id)
        db.add(Match(user1_id=user1, user2_id=user2))
        await db.flush()

        assert await match_engine.dissolve_match(db, b.id, a.id) is True
        assert not await match_engine.is_matched(db, a.id, b.id)

    @pytest.mark.asyncio
    async def test_dissolve_missing(self, db, make_user, match_engine):
        a = await make_user()
        b = await make_user()
        assert await match_engine.dissolve_match(db, a.id, b.id) is False

    @pytest.mark.asyncio
    async def test_list_matches_either_side(self, db, make_user, match_engine):
        a = await make_user()
        b = await make_user()
        c = await make_user()
        for other in (b, c):
            user1, user2 = canonical_pair(a.id, other.id)
            db.add(Match(user1_id=user1, user2_id=user2))
        await db.flush()

        matches = await match_engine.list_matches(db, a.id)
        assert {m.other(a.id) for m in matches} == {b.id, c.id}
        assert len(await match_engine.list_matches(db, b.id)) == 1

"""End-to-end flows across registration, the ledger, matching and chat."""
import itertools
from datetime import date

import pytest
from sqlalchemy import func, or_, select

from matcha.errors import BlockedError
from matcha.models import Like, Match, NotificationType
from matcha.services.auth_service import AuthService
from matcha.services.fame_service import calculate_fame
from matcha.utils.security import ScryptPasswordHasher

PASSWORD = "Matchabowl9"


class SilentMailer:
    async def send_verification(self, email, username, link):
        pass

    async def send_password_reset(self, email, username, link):
        pass


@pytest.fixture
def register(db):
    counter = itertools.count(1)
    auth = AuthService(
        hasher=ScryptPasswordHasher(n=2**10),
        mailer=SilentMailer(),
        token_factory=lambda: f"verify-{next(counter)}",
    )

    async def _register(username):
        user = await auth.register(
            db,
            username=username,
            email=f"{username}@example.com",
            password=PASSWORD,
            confirm_password=PASSWORD,
            first_name=username.capitalize(),
            last_name="Tester",
            birth_date=date(1994, 3, 2),
            gender="female",
        )
        return user.id

    return _register


async def _rows_between(db, a_id, b_id):
    likes = (
        await db.execute(
            select(func.count()).select_from(Like).where(or_(
                (Like.liker_id == a_id) & (Like.liked_id == b_id),
                (Like.liker_id == b_id) & (Like.liked_id == a_id),
            ))
        )
    ).scalar_one()
    matches = (await db.execute(select(func.count()).select_from(Match))).scalar_one()
    # End the read so the next ledger call commits, and pushes, on its own.
    await db.commit()
    return likes, matches


class TestMatchLifecycle:

    @pytest.mark.asyncio
    async def test_like_match_block(self, db, register, ledger, messages, transport):
        a_id = await register("anna")
        b_id = await register("bella")

        first = await ledger.like(db, a_id, b_id)
        assert first.match_created is False
        assert transport.for_user(b_id) == [(NotificationType.LIKE, "anna liked your profile")]
        assert await _rows_between(db, a_id, b_id) == (1, 0)

        second = await ledger.like(db, b_id, a_id)
        assert second.match_created is True
        assert (NotificationType.MATCH, "You matched with bella!") in transport.for_user(a_id)
        assert (NotificationType.MATCH, "You matched with anna!") in transport.for_user(b_id)
        assert await _rows_between(db, a_id, b_id) == (2, 1)

        await ledger.block(db, a_id, b_id)
        assert await _rows_between(db, a_id, b_id) == (0, 0)

        with pytest.raises(BlockedError):
            await messages.send_message(db, b_id, a_id, "still there?")

    @pytest.mark.asyncio
    async def test_message_then_mark_read(self, db, register, ledger, messages):
        a_id = await register("carla")
        b_id = await register("dana")
        await ledger.like(db, a_id, b_id)
        await ledger.like(db, b_id, a_id)

        await messages.send_message(db, b_id, a_id, "hi")
        assert (await messages.unread_counts_by_sender(db, a_id)).get(b_id) == 1

        await messages.mark_as_read(db, a_id, b_id)

        assert (await messages.unread_counts_by_sender(db, a_id)).get(b_id, 0) == 0
        assert await messages.unread_count(db, a_id) == 0

    @pytest.mark.asyncio
    async def test_unblock_does_not_restore_match(self, db, register, ledger, match_engine):
        a_id = await register("erin")
        b_id = await register("fay")
        await ledger.like(db, a_id, b_id)
        await ledger.like(db, b_id, a_id)
        await ledger.block(db, a_id, b_id)

        assert await ledger.unblock(db, a_id, b_id) is True
        assert not await match_engine.is_matched(db, a_id, b_id)

        # Matching again takes two fresh likes.
        assert (await ledger.like(db, a_id, b_id)).match_created is False
        assert (await ledger.like(db, b_id, a_id)).match_created is True


class TestFameBounds:

    @pytest.mark.parametrize("counts", [
        (0, 0, 0),
        (9, 1, 0),
        (10**6, 0, 0),
        (0, 10**9, 0),
        (0, 0, 10**12),
        (10**15, 10**15, 10**15),
    ])
    @pytest.mark.parametrize("completeness", [0, 10, 20])
    def test_always_within_bounds(self, counts, completeness):
        assert 0 <= calculate_fame(completeness, *counts) <= 100

"""Create the tables and seed a handful of verified demo users around Paris."""
import asyncio
import sys
sys.path.insert(0, ".")

from datetime import date

from sqlalchemy import select
from matcha.database import Base, async_session_factory, engine
from matcha.models import User, UserPassword
from matcha.utils.security import ScryptPasswordHasher

DEMO_PASSWORD = "Matcha2024demo"

DEMO_USERS = [
    {
        "username": "camille",
        "first_name": "Camille",
        "last_name": "Durand",
        "birth_date": date(1994, 4, 12),
        "gender": "female",
        "sexual_preference": "male",
        "biography": "Climbing on weekends, ceramics on weeknights, always up for a long walk along the canal.",
        "interest_tags": ["climbing", "ceramics", "walking"],
        "latitude": 48.8722,
        "longitude": 2.3631,
    },
    {
        "username": "hugo",
        "first_name": "Hugo",
        "last_name": "Martin",
        "birth_date": date(1991, 9, 3),
        "gender": "male",
        "sexual_preference": "female",
        "biography": "Bakes sourdough badly. Plays bass slightly better.",
        "interest_tags": ["music", "baking", "cycling"],
        "latitude": 48.8530,
        "longitude": 2.3499,
    },
    {
        "username": "ines",
        "first_name": "Ines",
        "last_name": "Moreau",
        "birth_date": date(1998, 1, 27),
        "gender": "female",
        "sexual_preference": "both",
        "biography": "Film photography, late cinema showings and too many houseplants.",
        "interest_tags": ["photography", "cinema", "plants"],
        "latitude": 48.8867,
        "longitude": 2.3431,
    },
    {
        "username": "leo",
        "first_name": "Leo",
        "last_name": "Bernard",
        "birth_date": date(1989, 11, 8),
        "gender": "male",
        "sexual_preference": "both",
        "biography": "Trail running and board games.",
        "interest_tags": ["running", "boardgames"],
        "latitude": 48.8049,
        "longitude": 2.1204,
    },
    {
        "username": "sacha",
        "first_name": "Sacha",
        "last_name": "Petit",
        "birth_date": date(1996, 6, 19),
        "gender": "other",
        "sexual_preference": "both",
        "biography": "Jazz records and street food.",
        "interest_tags": ["jazz", "food", "travel"],
        "latitude": 45.7640,
        "longitude": 4.8357,
    },
]


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables ready.")

    hasher = ScryptPasswordHasher()
    async with async_session_factory() as session:
        for fields in DEMO_USERS:
            existing = await session.execute(
                select(User).where(User.username == fields["username"])
            )
            if existing.scalar_one_or_none() is not None:
                print(f"  User {fields['username']} already exists, skipping.")
                continue

            user = User(
                email=f"{fields['username']}@example.com",
                is_email_verified=True,
                **fields,
            )
            session.add(user)
            await session.flush()
            session.add(UserPassword(user_id=user.id, password_hash=hasher.hash(DEMO_PASSWORD)))
            print(f"  Seeded user {user.username} ({user.gender}, {user.sexual_preference})")
        await session.commit()
    print(f"Done seeding users. Password for every demo account: {DEMO_PASSWORD}")


if __name__ == "__main__":
    asyncio.run(seed())

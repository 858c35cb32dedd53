"""
Matcha: Match model.

A match is stored once per unordered pair under the canonical key
``(min(a, b), max(a, b))``.
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from matcha.database import Base
from matcha.models.user import utcnow


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_match_pair"),
        CheckConstraint("user1_id < user2_id", name="ck_match_canonical_order"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user1_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user2_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    matched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def other(self, user_id: uuid.UUID) -> uuid.UUID:
        """Return the id of the counterpart of *user_id* in this match."""
        return self.user2_id if self.user1_id == user_id else self.user1_id

    def __repr__(self) -> str:
        return f"<Match {self.user1_id} <-> {self.user2_id}>"

"""Initial schema: all 11 Matcha tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _user_fk(name: str, index: bool = True) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        index=index,
        nullable=False,
    )


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    # ── 1. users ────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.String(50), unique=True, index=True, nullable=False),
        sa.Column("email", sa.String(255), unique=True, index=True, nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("birth_date", sa.Date, nullable=False),
        sa.Column("gender", sa.String(20), nullable=False),
        sa.Column(
            "sexual_preference",
            sa.String(20),
            nullable=False,
            server_default="both",
            comment="male / female / both",
        ),
        sa.Column("biography", sa.Text, nullable=False, server_default=""),
        sa.Column(
            "interest_tags",
            postgresql.JSONB,
            nullable=False,
            server_default="[]",
            comment="Array of tag strings",
        ),
        sa.Column(
            "profile_photo_url",
            sa.String(500),
            nullable=False,
            server_default="/images/default-avatar.png",
        ),
        sa.Column(
            "photo_urls",
            postgresql.JSONB,
            nullable=False,
            server_default="[]",
            comment="Array of extra photo URLs",
        ),
        sa.Column("latitude", sa.Float, nullable=False, server_default="0"),
        sa.Column("longitude", sa.Float, nullable=False, server_default="0"),
        sa.Column("fame_rating", sa.Integer, nullable=False, server_default="0", comment="0-100"),
        sa.Column("is_online", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_email_verified", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── 2. user_passwords ───────────────────────────────────────────
    op.create_table(
        "user_passwords",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            unique=True,
            nullable=False,
        ),
        sa.Column("password_hash", sa.String(255), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── 3-4. one-time tokens ────────────────────────────────────────
    for table in ("email_verifications", "password_resets"):
        op.create_table(
            table,
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            _user_fk("user_id"),
            sa.Column(
                "token_hash",
                sa.String(64),
                unique=True,
                nullable=False,
                comment="SHA-256 of the mailed token",
            ),
            _created_at(),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("is_used", sa.Boolean, nullable=False, server_default="false"),
        )

    # ── 5. likes ────────────────────────────────────────────────────
    op.create_table(
        "likes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("liker_id"),
        _user_fk("liked_id"),
        _created_at(),
        sa.UniqueConstraint("liker_id", "liked_id", name="uq_like_pair"),
        sa.CheckConstraint("liker_id <> liked_id", name="ck_like_not_self"),
    )

    # ── 6. matches ──────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("user1_id"),
        _user_fk("user2_id"),
        _created_at("matched_at"),
        sa.UniqueConstraint("user1_id", "user2_id", name="uq_match_pair"),
        sa.CheckConstraint("user1_id < user2_id", name="ck_match_canonical_order"),
    )

    # ── 7. blocks ───────────────────────────────────────────────────
    op.create_table(
        "blocks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("blocker_id"),
        _user_fk("blocked_id"),
        _created_at(),
        sa.UniqueConstraint("blocker_id", "blocked_id", name="uq_block_pair"),
        sa.CheckConstraint("blocker_id <> blocked_id", name="ck_block_not_self"),
    )

    # ── 8. reports ──────────────────────────────────────────────────
    op.create_table(
        "reports",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("reporter_id"),
        _user_fk("reported_id"),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("is_resolved", sa.Boolean, nullable=False, server_default="false"),
        _created_at(),
    )

    # ── 9. profile_views ────────────────────────────────────────────
    op.create_table(
        "profile_views",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("viewer_id", index=False),
        _user_fk("viewed_id"),
        _created_at("viewed_at"),
    )
    op.create_index(
        "ix_profile_views_pair_time",
        "profile_views",
        ["viewer_id", "viewed_id", "viewed_at"],
    )

    # ── 10. notifications ───────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("user_id", index=False),
        sa.Column(
            "type",
            sa.String(16),
            nullable=False,
            comment="like / unlike / view / match / message",
        ),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default="false"),
        _created_at(),
    )
    op.create_index(
        "ix_notifications_user_read",
        "notifications",
        ["user_id", "is_read"],
    )

    # ── 11. messages ────────────────────────────────────────────────
    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk("sender_id", index=False),
        _user_fk("receiver_id", index=False),
        sa.Column("content", sa.Text, nullable=False),
        _created_at("sent_at"),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default="false"),
    )
    op.create_index(
        "ix_messages_pair_time",
        "messages",
        ["sender_id", "receiver_id", "sent_at"],
    )
    op.create_index(
        "ix_messages_receiver_read",
        "messages",
        ["receiver_id", "is_read"],
    )


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_index("ix_messages_receiver_read", table_name="messages")
    op.drop_index("ix_messages_pair_time", table_name="messages")
    op.drop_table("messages")

    op.drop_index("ix_notifications_user_read", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_profile_views_pair_time", table_name="profile_views")
    op.drop_table("profile_views")

    op.drop_table("reports")
    op.drop_table("blocks")
    op.drop_table("matches")
    op.drop_table("likes")
    op.drop_table("password_resets")
    op.drop_table("email_verifications")
    op.drop_table("user_passwords")
    op.drop_table("users")

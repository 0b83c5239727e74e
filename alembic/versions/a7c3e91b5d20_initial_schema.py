"""Initial schema: members, topics, votes, comments, karma, achievements, giveaways

Revision ID: a7c3e91b5d20
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a7c3e91b5d20"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=True,
        server_default=sa.func.now(),
    )


def _user_fk(name: str = "user_id", ondelete: str = "CASCADE", nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.BigInteger(),
        sa.ForeignKey("users.id", ondelete=ondelete),
        nullable=nullable,
    )


def upgrade() -> None:
    """Create every table of the discussion platform."""
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("role", sa.String(10), nullable=False, server_default="USER"),
        sa.Column("is_owner", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("karma", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.CheckConstraint("karma >= 0", name="ck_users_karma_non_negative"),
    )
    op.create_index("ix_users_karma_desc", "users", ["karma"])

    op.create_table(
        "topics",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("slug", sa.String(250), nullable=False, unique=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("tags", postgresql.JSONB(), nullable=True),
        sa.Column("type", sa.String(20), nullable=False, server_default="YES_NO"),
        sa.Column("status", sa.String(10), nullable=False, server_default="ACTIVE"),
        sa.Column("allow_multiple_votes", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("max_choices", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("voting_opens_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voting_closes_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("report_count", sa.Integer(), nullable=False, server_default="0"),
        _user_fk("created_by_id"),
        _created_at(),
        sa.CheckConstraint("max_choices >= 1", name="ck_topics_max_choices"),
    )
    op.create_index("ix_topics_status_created", "topics", ["status", "created_at"])
    op.create_index("ix_topics_created_by", "topics", ["created_by_id"])

    op.create_table(
        "topic_options",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "topic_id", sa.Integer(),
            sa.ForeignKey("topics.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("label", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=True, server_default="0"),
    )
    op.create_index("ix_topic_options_topic", "topic_options", ["topic_id"])

    op.create_table(
        "topic_votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column(
            "topic_id", sa.Integer(),
            sa.ForeignKey("topics.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("choice", sa.String(10), nullable=False),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=True,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("user_id", "topic_id", name="uq_topic_votes_user_topic"),
        sa.CheckConstraint("choice IN ('YES', 'NO', 'DEPENDS')", name="ck_topic_votes_choice"),
    )
    op.create_index("ix_topic_votes_topic", "topic_votes", ["topic_id"])

    op.create_table(
        "topic_option_votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column(
            "topic_id", sa.Integer(),
            sa.ForeignKey("topics.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "option_id", sa.Integer(),
            sa.ForeignKey("topic_options.id", ondelete="CASCADE"), nullable=False,
        ),
        _created_at(),
        sa.UniqueConstraint(
            "user_id", "topic_id", "option_id",
            name="uq_topic_option_votes_user_topic_option",
        ),
    )
    op.create_index("ix_topic_option_votes_topic", "topic_option_votes", ["topic_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "topic_id", sa.Integer(),
            sa.ForeignKey("topics.id", ondelete="CASCADE"), nullable=False,
        ),
        _user_fk(),
        sa.Column(
            "parent_id", sa.Integer(),
            sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", sa.String(10), nullable=False, server_default="ACTIVE"),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=True,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_comments_topic_created", "comments", ["topic_id", "created_at"])
    op.create_index("ix_comments_user", "comments", ["user_id"])

    op.create_table(
        "comment_votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column(
            "comment_id", sa.Integer(),
            sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("value", sa.SmallInteger(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id", "comment_id", name="uq_comment_votes_user_comment"),
        sa.CheckConstraint("value IN (1, -1)", name="ck_comment_votes_value"),
    )
    op.create_index("ix_comment_votes_comment", "comment_votes", ["comment_id"])

    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(20), nullable=True),
        sa.Column("tier", sa.String(10), nullable=False, server_default="BRONZE"),
        sa.Column("metric", sa.String(50), nullable=False),
        sa.Column("threshold", sa.Integer(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=True, server_default=sa.true()),
    )

    op.create_table(
        "user_achievements",
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "achievement_id", sa.Integer(),
            sa.ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "unlocked_at", sa.DateTime(timezone=True), nullable=True,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "karma_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("action", sa.String(30), nullable=True),
        sa.Column("subject", sa.String(100), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            "user_id", "action", "subject", name="uq_karma_log_user_action_subject",
        ),
    )
    op.create_index("ix_karma_log_user_time", "karma_log", ["user_id", "created_at"])

    op.create_table(
        "giveaways",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("prize", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="DRAFT"),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        _user_fk("winner_id", ondelete="SET NULL", nullable=True),
        _user_fk("created_by_id"),
        _created_at(),
    )

    op.create_table(
        "giveaway_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "giveaway_id", sa.Integer(),
            sa.ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False,
        ),
        _user_fk(),
        sa.Column("has_voted", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("has_commented", sa.Boolean(), nullable=True, server_default=sa.false()),
        _created_at(),
        sa.UniqueConstraint("giveaway_id", "user_id", name="uq_giveaway_entries_giveaway_user"),
    )

    op.create_table(
        "moderation_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.BigInteger(), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "timestamp", sa.DateTime(timezone=True), nullable=True,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_moderation_log_actor_time", "moderation_log", ["actor_id", "timestamp"])
    op.create_index("ix_moderation_log_target", "moderation_log", ["target_table", "target_id"])


def downgrade() -> None:
    """Drop every table, children first."""
    for table in (
        "moderation_log",
        "giveaway_entries",
        "giveaways",
        "karma_log",
        "user_achievements",
        "achievements",
        "comment_votes",
        "comments",
        "topic_option_votes",
        "topic_votes",
        "topic_options",
        "topics",
        "users",
    ):
        op.drop_table(table)

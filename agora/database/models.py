"""
agora.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- users              — Member accounts and running karma total
- topics             — Debate topics (YES_NO or MULTI_CHOICE)
- topic_options      — Selectable options of a MULTI_CHOICE topic
- topic_votes        — One YES/NO/DEPENDS choice per (user, topic)
- topic_option_votes — Option selections per (user, topic, option)
- comments           — Threaded comments with a denormalized score
- comment_votes      — One signed vote per (user, comment)
- achievements       — Static badge catalog with threshold predicates
- user_achievements  — Unlocked badges (one row per user + achievement)
- karma_log          — Append-only journal of karma awards
- giveaways          — Prize draws
- giveaway_entries   — One entry per (giveaway, user)
- moderation_log     — Append-only moderator audit trail
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Agora ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Role(enum.StrEnum):
    USER = "USER"
    MOD = "MOD"
    ADMIN = "ADMIN"


class TopicType(enum.StrEnum):
    YES_NO = "YES_NO"
    MULTI_CHOICE = "MULTI_CHOICE"


class TopicStatus(enum.StrEnum):
    ACTIVE = "ACTIVE"
    HIDDEN = "HIDDEN"
    LOCKED = "LOCKED"


class TopicChoice(enum.StrEnum):
    """Choices available on a YES_NO topic."""
    YES = "YES"
    NO = "NO"
    DEPENDS = "DEPENDS"


class CommentStatus(enum.StrEnum):
    ACTIVE = "ACTIVE"
    HIDDEN = "HIDDEN"
    DELETED = "DELETED"


class AchievementTier(enum.StrEnum):
    """Display rank of an achievement.  Ordering is presentation only."""
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class KarmaAction(enum.StrEnum):
    """Qualifying actions that award karma."""
    CREATE_TOPIC = "CREATE_TOPIC"
    CREATE_COMMENT = "CREATE_COMMENT"
    VOTE_ON_TOPIC = "VOTE_ON_TOPIC"
    RECEIVE_COMMENT_VOTE = "RECEIVE_COMMENT_VOTE"
    RECEIVE_TOPIC_VOTE = "RECEIVE_TOPIC_VOTE"


class GiveawayStatus(enum.StrEnum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"
    WINNER_SELECTED = "WINNER_SELECTED"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    role: Mapped[str] = mapped_column(String(10), nullable=False, default=Role.USER.value)
    is_owner: Mapped[bool] = mapped_column(Boolean, default=False)
    karma: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    achievements: Mapped[list[UserAchievement]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("karma >= 0", name="ck_users_karma_non_negative"),
        Index("ix_users_karma_desc", "karma"),
    )

    @property
    def is_moderator(self) -> bool:
        return self.role in (Role.MOD, Role.ADMIN)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} karma={self.karma}>"


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------
class Topic(Base):
    __tablename__ = "topics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(250), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[list | None] = mapped_column(JSONB, default=list)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TopicType.YES_NO.value
    )
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=TopicStatus.ACTIVE.value
    )
    allow_multiple_votes: Mapped[bool] = mapped_column(Boolean, default=False)
    max_choices: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    voting_opens_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    voting_closes_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    report_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    created_by: Mapped[User] = relationship()
    options: Mapped[list[TopicOption]] = relationship(
        back_populates="topic",
        cascade="all, delete-orphan",
        order_by="TopicOption.sort_order",
    )

    __table_args__ = (
        CheckConstraint("max_choices >= 1", name="ck_topics_max_choices"),
        Index("ix_topics_status_created", "status", "created_at"),
        Index("ix_topics_created_by", "created_by_id"),
    )

    def __repr__(self) -> str:
        return f"<Topic id={self.id} slug={self.slug!r} type={self.type}>"


class TopicOption(Base):
    __tablename__ = "topic_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("topics.id", ondelete="CASCADE"), nullable=False
    )
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    topic: Mapped[Topic] = relationship(back_populates="options")

    __table_args__ = (
        Index("ix_topic_options_topic", "topic_id"),
    )

    def __repr__(self) -> str:
        return f"<TopicOption id={self.id} topic={self.topic_id} label={self.label!r}>"


class TopicVote(Base):
    """A user's single choice on a YES_NO topic."""
    __tablename__ = "topic_votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    topic_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("topics.id", ondelete="CASCADE"), nullable=False
    )
    choice: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "topic_id", name="uq_topic_votes_user_topic"),
        CheckConstraint(
            "choice IN ('YES', 'NO', 'DEPENDS')", name="ck_topic_votes_choice"
        ),
        Index("ix_topic_votes_topic", "topic_id"),
    )

    def __repr__(self) -> str:
        return f"<TopicVote user={self.user_id} topic={self.topic_id} choice={self.choice}>"


class TopicOptionVote(Base):
    """One selected option of a user's choice set on a MULTI_CHOICE topic."""
    __tablename__ = "topic_option_votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    topic_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("topics.id", ondelete="CASCADE"), nullable=False
    )
    option_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("topic_options.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "topic_id", "option_id",
            name="uq_topic_option_votes_user_topic_option",
        ),
        Index("ix_topic_option_votes_topic", "topic_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TopicOptionVote user={self.user_id} topic={self.topic_id} "
            f"option={self.option_id}>"
        )


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("topics.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=CommentStatus.ACTIVE.value
    )
    # Denormalized sum of comment_votes.value — mutated only by relative UPDATE
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    report_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship()

    __table_args__ = (
        Index("ix_comments_topic_created", "topic_id", "created_at"),
        Index("ix_comments_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Comment id={self.id} topic={self.topic_id} score={self.score}>"


class Vote(Base):
    """A user's signed vote on a comment.  No row means no vote."""
    __tablename__ = "comment_votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    comment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=False
    )
    value: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "comment_id", name="uq_comment_votes_user_comment"),
        CheckConstraint("value IN (1, -1)", name="ck_comment_votes_value"),
        Index("ix_comment_votes_comment", "comment_id"),
    )

    def __repr__(self) -> str:
        return f"<Vote user={self.user_id} comment={self.comment_id} value={self.value}>"


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------
class Achievement(Base):
    """Catalog entry.  Unlocks when ``metric(snapshot) >= threshold``."""
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon: Mapped[str | None] = mapped_column(String(20), default=None)
    tier: Mapped[str] = mapped_column(
        String(10), nullable=False, default=AchievementTier.BRONZE.value
    )
    metric: Mapped[str] = mapped_column(String(50), nullable=False)
    threshold: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    unlocked_by: Mapped[list[UserAchievement]] = relationship(back_populates="achievement")

    def __repr__(self) -> str:
        return f"<Achievement id={self.id} key={self.key!r} tier={self.tier}>"


class UserAchievement(Base):
    __tablename__ = "user_achievements"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="achievements")
    achievement: Mapped[Achievement] = relationship(back_populates="unlocked_by")

    def __repr__(self) -> str:
        return f"<UserAchievement user={self.user_id} achievement={self.achievement_id}>"


# ---------------------------------------------------------------------------
# KarmaLog — append-only award journal
# ---------------------------------------------------------------------------
class KarmaLog(Base):
    __tablename__ = "karma_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str | None] = mapped_column(String(30), nullable=True)
    # What the award was for, e.g. "topic:12".  NULL for unkeyed awards.
    subject: Mapped[str | None] = mapped_column(String(100), nullable=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        # One award per (user, action, subject); NULL subjects never collide
        UniqueConstraint("user_id", "action", "subject", name="uq_karma_log_user_action_subject"),
        Index("ix_karma_log_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<KarmaLog user={self.user_id} action={self.action} points={self.points}>"


# ---------------------------------------------------------------------------
# Giveaways
# ---------------------------------------------------------------------------
class Giveaway(Base):
    __tablename__ = "giveaways"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    prize: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GiveawayStatus.DRAFT.value
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    winner_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_by_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    entries: Mapped[list[GiveawayEntry]] = relationship(
        back_populates="giveaway", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Giveaway id={self.id} title={self.title!r} status={self.status}>"


class GiveawayEntry(Base):
    __tablename__ = "giveaway_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    giveaway_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    has_voted: Mapped[bool] = mapped_column(Boolean, default=False)
    has_commented: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    giveaway: Mapped[Giveaway] = relationship(back_populates="entries")

    __table_args__ = (
        UniqueConstraint("giveaway_id", "user_id", name="uq_giveaway_entries_giveaway_user"),
    )

    def __repr__(self) -> str:
        return f"<GiveawayEntry giveaway={self.giveaway_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# ModerationLog — append-only audit trail
# ---------------------------------------------------------------------------
class ModerationLog(Base):
    __tablename__ = "moderation_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_moderation_log_actor_time", "actor_id", "timestamp"),
        Index("ix_moderation_log_target", "target_table", "target_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ModerationLog id={self.id} action={self.action_type} "
            f"target={self.target_table}:{self.target_id}>"
        )

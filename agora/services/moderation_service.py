"""
agora.services.moderation_service — Audited Moderator Actions
==============================================================

Every moderator write follows the pattern:
  1. Begin unit of work
  2. Read "before" snapshot
  3. Apply change
  4. Write moderation_log with before/after JSON
  5. Commit

MOD and ADMIN may change topic and comment status; only ADMIN changes
roles, and the site owner's role is never changed from the API.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, aliased

from agora.database.engine import unit_of_work
from agora.database.models import (
    Comment,
    CommentStatus,
    ModerationLog,
    Role,
    Topic,
    TopicOptionVote,
    TopicStatus,
    TopicVote,
    User,
    Vote,
)
from agora.errors import ForbiddenError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------
def _row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def _log_moderation_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into moderation_log within the current transaction."""
    session.add(ModerationLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _audited_update(
    session: Session,
    obj: Any,
    *,
    action_type: str,
    actor_id: int,
    reason: str | None = None,
    **changes: Any,
) -> Any:
    """Apply *changes* to *obj* and journal the before/after snapshots."""
    before = _row_to_dict(obj)
    for key, value in changes.items():
        setattr(obj, key, value)
    session.flush()
    after = _row_to_dict(obj)
    _log_moderation_action(
        session,
        actor_id=actor_id,
        action_type=action_type,
        target_table=obj.__tablename__,
        target_id=str(obj.id),
        before=before,
        after=after,
        reason=reason,
    )
    return obj


def _parse_enum(enum_cls: type[enum.StrEnum], value: str, field: str) -> str:
    try:
        return enum_cls(str(value).upper()).value
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{field} must be one of {allowed}", field=field) from None


# ---------------------------------------------------------------------------
# Content moderation
# ---------------------------------------------------------------------------
def set_topic_status(
    engine: Engine,
    actor_id: int,
    slug: str,
    status: str,
    reason: str | None = None,
) -> Topic:
    """Hide, lock or re-activate a topic."""
    status = _parse_enum(TopicStatus, status, "status")
    with unit_of_work(engine) as session:
        topic = session.scalar(select(Topic).where(Topic.slug == slug))
        if topic is None:
            raise NotFoundError("Topic", slug)
        _audited_update(
            session, topic,
            action_type="TOPIC_STATUS", actor_id=actor_id, reason=reason,
            status=status,
        )

    logger.info("Topic %s → %s by moderator %d", slug, status, actor_id)
    return topic


def set_comment_status(
    engine: Engine,
    actor_id: int,
    comment_id: int,
    status: str,
    reason: str | None = None,
) -> Comment:
    """Hide, delete or restore a comment."""
    status = _parse_enum(CommentStatus, status, "status")
    with unit_of_work(engine) as session:
        comment = session.get(Comment, comment_id)
        if comment is None:
            raise NotFoundError("Comment", comment_id)
        _audited_update(
            session, comment,
            action_type="COMMENT_STATUS", actor_id=actor_id, reason=reason,
            status=status,
        )

    logger.info("Comment %d → %s by moderator %d", comment_id, status, actor_id)
    return comment


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
def set_user_role(
    engine: Engine,
    actor_id: int,
    user_id: int,
    role: str,
    reason: str | None = None,
) -> User:
    """Change a user's role.  The actor must be an ADMIN."""
    role = _parse_enum(Role, role, "role")
    with unit_of_work(engine) as session:
        actor = session.get(User, actor_id)
        if actor is None or actor.role != Role.ADMIN:
            raise ForbiddenError("Only administrators can change roles")
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        if user.is_owner:
            raise ForbiddenError("The site owner's role cannot be changed")
        if user.id == actor_id:
            raise ForbiddenError("You cannot change your own role")
        _audited_update(
            session, user,
            action_type="USER_ROLE", actor_id=actor_id, reason=reason,
            role=role,
        )

    logger.info("User %d role → %s by admin %d", user_id, role, actor_id)
    return user


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------
def list_moderation_log(session: Session, limit: int = 50) -> list[ModerationLog]:
    """Most recent moderation actions first."""
    return list(session.scalars(
        select(ModerationLog)
        .order_by(ModerationLog.timestamp.desc(), ModerationLog.id.desc())
        .limit(limit)
    ).all())


# ---------------------------------------------------------------------------
# Review queues
# ---------------------------------------------------------------------------
def _count(model, *criteria):
    return select(func.count()).select_from(model).where(*criteria).scalar_subquery()


def list_topics_for_review(
    session: Session,
    *,
    reported_only: bool = False,
    limit: int = 100,
) -> list:
    """Topics of every status with their report, comment and vote counts.

    Most-reported first, then newest.  A topic's vote count is its YES_NO
    ballots plus its distinct MULTI_CHOICE voters.
    """
    option_voters = (
        select(func.count(func.distinct(TopicOptionVote.user_id)))
        .where(TopicOptionVote.topic_id == Topic.id)
        .scalar_subquery()
    )
    stmt = (
        select(
            Topic,
            User.username,
            _count(Comment, Comment.topic_id == Topic.id).label("comment_count"),
            (_count(TopicVote, TopicVote.topic_id == Topic.id) + option_voters).label("vote_count"),
        )
        .join(User, User.id == Topic.created_by_id)
        .order_by(Topic.report_count.desc(), Topic.created_at.desc(), Topic.id.desc())
        .limit(limit)
    )
    if reported_only:
        stmt = stmt.where(Topic.report_count > 0)
    return list(session.execute(stmt).all())


def list_comments_for_review(
    session: Session,
    *,
    reported_only: bool = False,
    limit: int = 100,
) -> list:
    """Comments of every status with their topic, reply and vote counts."""
    reply = aliased(Comment, name="reply")
    stmt = (
        select(
            Comment,
            User.username,
            Topic.slug,
            Topic.title,
            _count(reply, reply.parent_id == Comment.id).label("reply_count"),
            _count(Vote, Vote.comment_id == Comment.id).label("vote_count"),
        )
        .join(User, User.id == Comment.user_id)
        .join(Topic, Topic.id == Comment.topic_id)
        .order_by(Comment.report_count.desc(), Comment.created_at.desc(), Comment.id.desc())
        .limit(limit)
    )
    if reported_only:
        stmt = stmt.where(Comment.report_count > 0)
    return list(session.execute(stmt).all())


def list_users_for_review(session: Session, limit: int = 100) -> list:
    """Members, newest first, with how much each has posted and voted."""
    stmt = (
        select(
            User,
            _count(Topic, Topic.created_by_id == User.id).label("topic_count"),
            _count(Comment, Comment.user_id == User.id).label("comment_count"),
            _count(Vote, Vote.user_id == User.id).label("comment_vote_count"),
            _count(TopicVote, TopicVote.user_id == User.id).label("topic_vote_count"),
        )
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(limit)
    )
    return list(session.execute(stmt).all())

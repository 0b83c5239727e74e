"""
agora.services.comment_service — Comment Lifecycle
===================================================

Create, edit, soft-delete and list comments on a topic.  Deleted comments
keep their row (and votes) so reply threads stay intact; they are hidden
from listings and can no longer be voted on.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from agora.constants import COMMENT_MAX, COMMENT_MIN
from agora.database.engine import unit_of_work
from agora.database.models import Comment, CommentStatus, KarmaAction, Topic, TopicStatus
from agora.errors import ForbiddenError, NotFoundError, ValidationError
from agora.services import karma_service

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def _clean_content(content: str) -> str:
    content = (content or "").strip()
    if not COMMENT_MIN <= len(content) <= COMMENT_MAX:
        raise ValidationError(
            f"Comment must be between {COMMENT_MIN} and {COMMENT_MAX} characters",
            field="content",
        )
    return content


def _load_live_comment(session: Session, comment_id: int) -> Comment:
    comment = session.get(Comment, comment_id)
    if comment is None or comment.status == CommentStatus.DELETED:
        raise NotFoundError("Comment", comment_id)
    return comment


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def create_comment(
    engine: Engine,
    user_id: int,
    *,
    topic_id: int,
    content: str,
    parent_id: int | None = None,
) -> Comment:
    """Post a comment (or a reply when *parent_id* is given).

    Raises
    ------
    ValidationError
        Empty or over-long content, or a parent from another topic.
    NotFoundError
        The topic (or a hidden topic) doesn't exist.
    ForbiddenError
        The topic is LOCKED.
    """
    content = _clean_content(content)

    with unit_of_work(engine) as session:
        topic = session.get(Topic, topic_id)
        if topic is None or topic.status == TopicStatus.HIDDEN:
            raise NotFoundError("Topic", topic_id)
        if topic.status == TopicStatus.LOCKED:
            raise ForbiddenError("This topic is locked for new comments", {"topic_id": topic_id})

        if parent_id is not None:
            parent = session.get(Comment, parent_id)
            if parent is None or parent.topic_id != topic_id:
                raise ValidationError(
                    "Parent comment does not belong to this topic", field="parent_id",
                )

        comment = Comment(
            topic_id=topic_id,
            user_id=user_id,
            parent_id=parent_id,
            content=content,
            status=CommentStatus.ACTIVE.value,
            score=0,
        )
        session.add(comment)
        session.flush()
        session.refresh(comment, ["created_at", "updated_at"])

    logger.info("Comment %d posted on topic %d by user %d", comment.id, topic_id, user_id)
    karma_service.reward_action(
        engine, user_id, KarmaAction.CREATE_COMMENT, subject=f"comment:{comment.id}",
    )
    return comment


# ---------------------------------------------------------------------------
# Edit / delete
# ---------------------------------------------------------------------------
def edit_comment(engine: Engine, user_id: int, comment_id: int, content: str) -> Comment:
    """Replace the text of *user_id*'s own comment."""
    content = _clean_content(content)
    with unit_of_work(engine) as session:
        comment = _load_live_comment(session, comment_id)
        if comment.user_id != user_id:
            raise ForbiddenError("You can only edit your own comments")
        comment.content = content
        session.flush()
        session.refresh(comment, ["updated_at"])

    logger.info("Comment %d edited by user %d", comment_id, user_id)
    return comment


def delete_comment(
    engine: Engine,
    actor_id: int,
    comment_id: int,
    *,
    is_moderator: bool = False,
) -> Comment:
    """Soft-delete a comment.  Allowed for its author and for moderators."""
    with unit_of_work(engine) as session:
        comment = _load_live_comment(session, comment_id)
        if comment.user_id != actor_id and not is_moderator:
            raise ForbiddenError("You can only delete your own comments")
        comment.status = CommentStatus.DELETED.value
        session.flush()
        session.refresh(comment, ["updated_at"])

    logger.info("Comment %d deleted by user %d", comment_id, actor_id)
    return comment


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------
def list_comments(session: Session, topic_id: int) -> list[Comment]:
    """ACTIVE comments of a topic, oldest first, with authors loaded."""
    return list(session.scalars(
        select(Comment)
        .where(Comment.topic_id == topic_id, Comment.status == CommentStatus.ACTIVE.value)
        .options(selectinload(Comment.user))
        .order_by(Comment.created_at, Comment.id)
    ).all())


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------
def report_comment(engine: Engine, comment_id: int) -> int:
    """Increment a live comment's report counter.  Returns the new count."""
    with unit_of_work(engine) as session:
        result = session.execute(
            update(Comment)
            .where(Comment.id == comment_id, Comment.status != CommentStatus.DELETED.value)
            .values(report_count=Comment.report_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("Comment", comment_id)
        count = session.scalar(select(Comment.report_count).where(Comment.id == comment_id))

    logger.info("Comment %d reported (count=%d)", comment_id, count)
    return count

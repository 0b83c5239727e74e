"""
agora.services.voting_service — Comment & Topic Votes
======================================================

Every cast runs as one unit of work: read the existing vote(s), decide
(:mod:`agora.engine.voting`), write the vote row(s) and — for comments —
apply the score delta with a single relative ``UPDATE``.  Nothing is
persisted unless all of it is.

Two voters racing on the same comment compose correctly because the score
is only ever moved by ``score = score + :delta``.  The same user racing
with themselves (double click) cannot apply a delta twice: a second insert
trips the unique constraint on ``(user_id, comment_id)``, and a retract or
switch only touches the vote row if it still holds the value that was
read.  The loser gets a :class:`ConflictError` and nothing it did commits.

Topic votes lock the voter's ``users`` row first, so one user's selections
on a topic are replaced one request at a time.

Karma for the vote is awarded after the vote has committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from agora.database.engine import unit_of_work
from agora.database.models import (
    Comment,
    CommentStatus,
    KarmaAction,
    Topic,
    TopicChoice,
    TopicOptionVote,
    TopicType,
    TopicVote,
    User,
    Vote,
)
from agora.engine.voting import (
    VoteAction,
    is_voting_open,
    normalize_choice,
    normalize_option_selection,
    resolve_comment_vote,
    validate_vote_value,
)
from agora.errors import ConflictError, ForbiddenError, NotFoundError
from agora.services import karma_service

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass
class CommentVoteResult:
    comment_id: int
    score: int
    user_vote: int  # 0 when the vote was retracted
    action: VoteAction


@dataclass
class TopicVoteResult:
    topic_id: int
    user_vote: str | list[int] | None
    stats: dict = field(default_factory=dict)
    first_vote: bool = False


# ---------------------------------------------------------------------------
# Comment votes
# ---------------------------------------------------------------------------
def _find_comment_vote(
    session: Session,
    user_id: int,
    comment_id: int,
    lock: bool = False,
) -> Vote | None:
    stmt = select(Vote).where(Vote.user_id == user_id, Vote.comment_id == comment_id)
    if lock:
        stmt = stmt.with_for_update()
    return session.scalar(stmt)


def get_comment_vote(session: Session, user_id: int, comment_id: int) -> int:
    """The user's current vote on a comment, or 0."""
    vote = _find_comment_vote(session, user_id, comment_id)
    return vote.value if vote else 0


def apply_comment_vote(
    session: Session,
    user_id: int,
    comment_id: int,
    value: int,
) -> CommentVoteResult:
    """Unit-of-work body: toggle/switch/create the vote and move the score.

    The caller owns the transaction and has already checked that the
    comment exists and that *user_id* is not its author.

    Retracts and switches only match the row in the state it was read in.
    If another request changed or removed it first, :class:`ConflictError`
    is raised and the caller's unit of work rolls back, score included.
    """
    existing = _find_comment_vote(session, user_id, comment_id, True)
    transition = resolve_comment_vote(existing.value if existing else None, value)

    if transition.action == VoteAction.CREATE:
        session.add(Vote(user_id=user_id, comment_id=comment_id, value=transition.stored_value))
        session.flush()
    else:
        same_row = (Vote.id == existing.id, Vote.value == existing.value)
        if transition.action == VoteAction.DELETE:
            stmt = delete(Vote).where(*same_row)
        else:
            stmt = update(Vote).where(*same_row).values(value=transition.stored_value)
        matched = session.execute(
            stmt.execution_options(synchronize_session=False)
        ).rowcount
        if matched == 0:
            logger.warning(
                "Stale %s on comment %d by user %d", transition.action, comment_id, user_id,
            )
            raise ConflictError(
                "Your vote was changed by another request — please retry",
                {"comment_id": comment_id},
            )
        session.expunge(existing)

    session.execute(
        update(Comment)
        .where(Comment.id == comment_id)
        .values(score=Comment.score + transition.score_delta)
        .execution_options(synchronize_session=False)
    )
    score = session.scalar(select(Comment.score).where(Comment.id == comment_id))

    return CommentVoteResult(
        comment_id=comment_id,
        score=score,
        user_vote=transition.stored_value or 0,
        action=transition.action,
    )


def cast_comment_vote(
    engine: Engine,
    user_id: int,
    comment_id: int,
    value: int,
) -> CommentVoteResult:
    """Cast, switch, or retract (same value twice) a vote on a comment.

    Raises
    ------
    ValidationError
        *value* is not +1 or -1.
    NotFoundError
        The comment doesn't exist or was deleted.
    ForbiddenError
        *user_id* wrote the comment.
    ConflictError
        A concurrent vote by the same user won the race.  Retryable.
    """
    validate_vote_value(value)

    try:
        with unit_of_work(engine) as session:
            comment = session.get(Comment, comment_id)
            if comment is None or comment.status == CommentStatus.DELETED:
                raise NotFoundError("Comment", comment_id)
            if comment.user_id == user_id:
                raise ForbiddenError("You cannot vote on your own comment")
            author_id = comment.user_id

            result = apply_comment_vote(session, user_id, comment_id, value)
    except IntegrityError as exc:
        logger.warning(
            "Vote conflict on comment %d by user %d: %s", comment_id, user_id, exc.orig,
        )
        raise ConflictError(
            "Your vote was changed by another request — please retry",
            {"comment_id": comment_id},
        ) from exc

    logger.info(
        "Comment vote %s: user=%d comment=%d value=%+d score=%d",
        result.action, user_id, comment_id, value, result.score,
    )

    if result.action == VoteAction.CREATE and result.user_vote > 0:
        karma_service.reward_action(
            engine, author_id, KarmaAction.RECEIVE_COMMENT_VOTE,
            subject=f"comment:{comment_id}:voter:{user_id}",
        )

    return result


# ---------------------------------------------------------------------------
# Topic votes
# ---------------------------------------------------------------------------
def _load_topic(session: Session, slug: str) -> Topic:
    topic = session.scalar(
        select(Topic).where(Topic.slug == slug).options(selectinload(Topic.options))
    )
    if topic is None:
        raise NotFoundError("Topic", slug)
    return topic


def topic_vote_stats(session: Session, topic: Topic) -> dict:
    """Current vote counts for *topic*.

    YES_NO → ``{"YES": n, "NO": n, "DEPENDS": n, "total": n}``.
    MULTI_CHOICE → ``{"options": {option_id: n, ...}, "total": voters}``.
    """
    if topic.type == TopicType.MULTI_CHOICE:
        counts = {option.id: 0 for option in topic.options}
        rows = session.execute(
            select(TopicOptionVote.option_id, func.count().label("cnt"))
            .where(TopicOptionVote.topic_id == topic.id)
            .group_by(TopicOptionVote.option_id)
        ).all()
        for row in rows:
            counts[row.option_id] = row.cnt
        voters = session.scalar(
            select(func.count(func.distinct(TopicOptionVote.user_id)))
            .where(TopicOptionVote.topic_id == topic.id)
        ) or 0
        return {"options": counts, "total": voters}

    stats = {choice.value: 0 for choice in TopicChoice}
    rows = session.execute(
        select(TopicVote.choice, func.count().label("cnt"))
        .where(TopicVote.topic_id == topic.id)
        .group_by(TopicVote.choice)
    ).all()
    for row in rows:
        stats[row.choice] = row.cnt
    stats["total"] = sum(stats.values())
    return stats


def get_user_topic_selection(
    session: Session,
    user_id: int,
    topic: Topic,
) -> str | list[int] | None:
    """The user's current choice (YES_NO) or option ids (MULTI_CHOICE)."""
    if topic.type == TopicType.MULTI_CHOICE:
        option_ids = session.scalars(
            select(TopicOptionVote.option_id)
            .where(TopicOptionVote.user_id == user_id, TopicOptionVote.topic_id == topic.id)
            .order_by(TopicOptionVote.id)
        ).all()
        return list(option_ids) or None
    return session.scalar(
        select(TopicVote.choice)
        .where(TopicVote.user_id == user_id, TopicVote.topic_id == topic.id)
    )


def _replace_yes_no_vote(session: Session, user_id: int, topic: Topic, choice: str) -> bool:
    """Upsert the user's single choice.  Returns True when newly created."""
    vote = session.scalar(
        select(TopicVote).where(TopicVote.user_id == user_id, TopicVote.topic_id == topic.id)
    )
    if vote is None:
        session.add(TopicVote(user_id=user_id, topic_id=topic.id, choice=choice))
        session.flush()
        return True
    vote.choice = choice
    session.flush()
    return False


def _replace_option_votes(
    session: Session,
    user_id: int,
    topic: Topic,
    option_ids: list[int],
) -> bool:
    """Delete the user's previous selection and insert *option_ids*.

    Returns True when the user had no selection before.
    """
    removed = session.execute(
        delete(TopicOptionVote)
        .where(TopicOptionVote.user_id == user_id, TopicOptionVote.topic_id == topic.id)
        .execution_options(synchronize_session=False)
    ).rowcount
    for option_id in option_ids:
        session.add(TopicOptionVote(user_id=user_id, topic_id=topic.id, option_id=option_id))
    session.flush()
    return removed == 0


def voter_lock(user_id: int):
    """``SELECT ... FOR UPDATE`` on the voter's row.

    Held until the unit of work ends, it serializes one user's concurrent
    topic votes so a replace never runs against a selection it cannot see.
    SQLite has no row locks and already serializes writers.
    """
    return select(User.id).where(User.id == user_id).with_for_update()


def cast_topic_vote(
    engine: Engine,
    user_id: int,
    slug: str,
    *,
    choice: str | None = None,
    option_ids: list[int] | None = None,
    now: datetime | None = None,
) -> TopicVoteResult:
    """Record the user's selection on a topic, replacing any previous one.

    YES_NO topics take *choice*; MULTI_CHOICE topics take *option_ids*.

    Raises
    ------
    NotFoundError
        No topic with *slug*, or no user *user_id*.
    ForbiddenError
        The topic is not ACTIVE or its voting window is closed.
    ValidationError
        Malformed selection or more options than the topic allows.
    ConflictError
        A concurrent vote by the same user won the race.  Retryable.
    """
    try:
        with unit_of_work(engine) as session:
            topic = _load_topic(session, slug)
            if not is_voting_open(topic, now):
                raise ForbiddenError("Voting on this topic is closed", {"topic": slug})
            if session.scalar(voter_lock(user_id)) is None:
                raise NotFoundError("User", user_id)

            if topic.type == TopicType.MULTI_CHOICE:
                selection = normalize_option_selection(topic, option_ids)
                first_vote = _replace_option_votes(session, user_id, topic, selection)
                user_vote: str | list[int] = selection
            else:
                user_vote = normalize_choice(choice).value
                first_vote = _replace_yes_no_vote(session, user_id, topic, user_vote)

            topic_id = topic.id
            author_id = topic.created_by_id
            stats = topic_vote_stats(session, topic)
    except IntegrityError as exc:
        logger.warning("Vote conflict on topic %s by user %d: %s", slug, user_id, exc.orig)
        raise ConflictError(
            "Your vote was changed by another request — please retry",
            {"topic": slug},
        ) from exc

    logger.info(
        "Topic vote: user=%d topic=%s selection=%s first=%s",
        user_id, slug, user_vote, first_vote,
    )

    if first_vote:
        karma_service.reward_action(
            engine, user_id, KarmaAction.VOTE_ON_TOPIC, subject=f"topic:{topic_id}",
        )
        if author_id != user_id:
            karma_service.reward_action(
                engine, author_id, KarmaAction.RECEIVE_TOPIC_VOTE,
                subject=f"topic:{topic_id}:voter:{user_id}",
            )

    return TopicVoteResult(
        topic_id=topic_id, user_vote=user_vote, stats=stats, first_vote=first_vote,
    )


def retract_topic_vote(engine: Engine, user_id: int, slug: str) -> TopicVoteResult:
    """Remove the user's vote(s) on a topic.

    Raises :class:`NotFoundError` if the topic doesn't exist or the user
    has no vote on it.
    """
    with unit_of_work(engine) as session:
        topic = _load_topic(session, slug)
        model = TopicOptionVote if topic.type == TopicType.MULTI_CHOICE else TopicVote
        removed = session.execute(
            delete(model)
            .where(model.user_id == user_id, model.topic_id == topic.id)
            .execution_options(synchronize_session=False)
        ).rowcount
        if removed == 0:
            raise NotFoundError("TopicVote", slug)
        stats = topic_vote_stats(session, topic)
        topic_id = topic.id

    logger.info("Topic vote retracted: user=%d topic=%s", user_id, slug)
    return TopicVoteResult(topic_id=topic_id, user_vote=None, stats=stats)

"""
agora.services.karma_service — Karma Awards & Achievement Unlocking
====================================================================

Shared service module called by the topic, comment and voting services
after their own unit of work has committed.

* :func:`award` increments a user's karma by a positive amount with a
  relative ``UPDATE`` and journals it in ``karma_log``.
* :func:`evaluate_achievements` re-reads the user's activity counts and
  unlocks every catalog entry whose predicate now holds.  Each unlock is
  inserted under its own SAVEPOINT; a duplicate (another evaluation got
  there first) is skipped and the remaining candidates still go through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import func, select, union, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.constants import KARMA_POINTS
from agora.database.engine import unit_of_work
from agora.database.models import (
    Achievement,
    Comment,
    KarmaAction,
    KarmaLog,
    Topic,
    TopicOptionVote,
    TopicVote,
    User,
    UserAchievement,
)
from agora.engine.achievements import ActivitySnapshot, check_achievements
from agora.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass
class KarmaOutcome:
    """Result of :func:`reward_action`."""

    karma: int
    unlocked: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Award
# ---------------------------------------------------------------------------
def award_karma(
    session: Session,
    user_id: int,
    points: int,
    action: KarmaAction | str | None = None,
    subject: str | None = None,
) -> int:
    """Increment *user_id*'s karma by *points* inside *session*.

    Returns the new total.  Karma never decreases, so *points* must be a
    positive integer.  A second award with the same non-NULL
    ``(action, subject)`` violates ``uq_karma_log_user_action_subject``.
    """
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise ValidationError("Karma points must be a positive integer", field="points")

    result = session.execute(
        update(User)
        .where(User.id == user_id)
        .values(karma=User.karma + points)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("User", user_id)

    session.add(KarmaLog(
        user_id=user_id,
        action=str(action) if action is not None else None,
        subject=subject,
        points=points,
    ))
    session.flush()

    return session.scalar(select(User.karma).where(User.id == user_id))


def award(
    engine: Engine,
    user_id: int,
    points: int,
    action: KarmaAction | str | None = None,
) -> int:
    """Award karma in its own unit of work.  Returns the new total.

    Raises :class:`ValidationError` for non-positive *points* and
    :class:`NotFoundError` for an unknown user.
    """
    with unit_of_work(engine) as session:
        total = award_karma(session, user_id, points, action)
    logger.info("Karma +%d → user %d (total %d, %s)", points, user_id, total, action)
    return total


# ---------------------------------------------------------------------------
# Activity snapshot
# ---------------------------------------------------------------------------
def count_topic_votes_cast(session: Session, user_id: int) -> int:
    """Distinct topics the user currently holds a vote on (either kind)."""
    voted_topics = union(
        select(TopicVote.topic_id).where(TopicVote.user_id == user_id),
        select(TopicOptionVote.topic_id).where(TopicOptionVote.user_id == user_id),
    ).subquery()
    return session.scalar(select(func.count()).select_from(voted_topics)) or 0


def load_activity_snapshot(session: Session, user_id: int) -> ActivitySnapshot:
    """Read fresh activity counts for *user_id*."""
    karma = session.scalar(select(User.karma).where(User.id == user_id))
    if karma is None:
        raise NotFoundError("User", user_id)

    topics_created = session.scalar(
        select(func.count()).select_from(Topic).where(Topic.created_by_id == user_id)
    ) or 0
    comments_made = session.scalar(
        select(func.count()).select_from(Comment).where(Comment.user_id == user_id)
    ) or 0

    return ActivitySnapshot(
        topics_created=topics_created,
        comments_made=comments_made,
        topic_votes_cast=count_topic_votes_cast(session, user_id),
        karma=karma,
    )


def get_unlocked_keys(session: Session, user_id: int) -> set[str]:
    """Keys of achievements *user_id* has already unlocked."""
    rows = session.scalars(
        select(Achievement.key)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .where(UserAchievement.user_id == user_id)
    ).all()
    return set(rows)


# ---------------------------------------------------------------------------
# Evaluate
# ---------------------------------------------------------------------------
def evaluate_achievements(engine: Engine, user_id: int) -> list[str]:
    """Unlock every achievement *user_id* now qualifies for.

    Returns the keys unlocked by this call.  Safe to call repeatedly and
    concurrently: an achievement already unlocked is never inserted twice.
    """
    newly_unlocked: list[str] = []

    with unit_of_work(engine) as session:
        snapshot = load_activity_snapshot(session, user_id)
        catalog = session.scalars(
            select(Achievement).where(Achievement.active.is_(True))
        ).all()
        already = get_unlocked_keys(session, user_id)

        candidates = check_achievements(catalog, snapshot, already)
        by_key = {entry.key: entry for entry in catalog}

        for key in candidates:
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(UserAchievement(
                        user_id=user_id,
                        achievement_id=by_key[key].id,
                    ))
                    session.flush()
            except IntegrityError:
                # Another evaluation unlocked it first; the SAVEPOINT was
                # rolled back and the outer transaction is still alive.
                logger.info(
                    "Achievement %s already unlocked for user %d — skipped",
                    key, user_id,
                )
                continue
            newly_unlocked.append(key)

    for key in newly_unlocked:
        logger.info("Achievement unlocked: %s for user %d", key, user_id)
    return newly_unlocked


# ---------------------------------------------------------------------------
# Combined pipeline
# ---------------------------------------------------------------------------
def already_rewarded(session: Session, user_id: int, action: KarmaAction, subject: str) -> bool:
    return session.scalar(
        select(KarmaLog.id).where(
            KarmaLog.user_id == user_id,
            KarmaLog.action == action.value,
            KarmaLog.subject == subject,
        )
    ) is not None


def reward_action(
    engine: Engine,
    user_id: int,
    action: KarmaAction,
    subject: str | None = None,
) -> KarmaOutcome:
    """Award the karma table's points for *action*, then re-check achievements.

    With a *subject* (e.g. ``"topic:12"``) the award is paid at most once
    per user; repeats return the current total and unlock nothing.
    """
    points = KARMA_POINTS[action]
    try:
        with unit_of_work(engine) as session:
            if subject is not None and already_rewarded(session, user_id, action, subject):
                logger.debug("Karma %s for %s already paid to user %d", action, subject, user_id)
                current = session.scalar(select(User.karma).where(User.id == user_id))
                return KarmaOutcome(karma=current or 0)
            total = award_karma(session, user_id, points, action, subject)
    except IntegrityError:
        # Concurrent request paid the same (action, subject) first
        logger.info("Karma %s for %s raced for user %d — skipped", action, subject, user_id)
        with unit_of_work(engine) as session:
            current = session.scalar(select(User.karma).where(User.id == user_id))
        return KarmaOutcome(karma=current or 0)

    logger.info("Karma +%d → user %d (total %d, %s)", points, user_id, total, action)
    unlocked = evaluate_achievements(engine, user_id)
    return KarmaOutcome(karma=total, unlocked=unlocked)

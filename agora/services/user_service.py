"""
agora.services.user_service — Members, Profiles & Leaderboard
==============================================================

Accounts are issued by an external auth provider; the first authenticated
request from a user creates their local row from the token claims.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.constants import TIER_COLORS_HEX, TIER_RANK
from agora.database.engine import unit_of_work
from agora.database.models import Achievement, Role, User, UserAchievement
from agora.errors import ConflictError, NotFoundError
from agora.services.karma_service import load_activity_snapshot

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass
class Profile:
    user: User
    topics_created: int
    comments_made: int
    topic_votes_cast: int
    achievements: list[dict] = field(default_factory=list)


def get_or_create_user(
    engine: Engine,
    user_id: int,
    username: str,
    role: str = Role.USER,
) -> User:
    """Return the local row for *user_id*, creating it on first sight.

    Role and username changes in the claims are not copied over: roles
    are managed here through the moderation service.
    """
    with unit_of_work(engine) as session:
        user = session.get(User, user_id)
        if user is not None:
            return user

    try:
        with unit_of_work(engine) as session:
            user = User(id=user_id, username=username, display_name=username, role=str(role), karma=0)
            session.add(user)
            session.flush()
            session.refresh(user, ["created_at"])
    except IntegrityError as exc:
        # Either a concurrent first request created the row, or the
        # username belongs to someone else
        with unit_of_work(engine) as session:
            user = session.get(User, user_id)
        if user is None:
            raise ConflictError("Username is already taken", {"username": username}) from exc
        return user

    logger.info("New member: %s (id=%d)", username, user_id)
    return user


def _achievement_dict(ach: Achievement, unlocked_at) -> dict:
    return {
        "key": ach.key,
        "name": ach.name,
        "description": ach.description,
        "icon": ach.icon,
        "tier": ach.tier,
        "tier_color": TIER_COLORS_HEX.get(ach.tier, "#9e9e9e"),
        "unlocked_at": unlocked_at.isoformat() if unlocked_at else None,
    }


def get_profile(session: Session, username: str) -> Profile:
    """Karma, activity counts and unlocked achievements (best tier first)."""
    user = session.scalar(select(User).where(User.username == username))
    if user is None:
        raise NotFoundError("User", username)

    snapshot = load_activity_snapshot(session, user.id)
    rows = session.execute(
        select(Achievement, UserAchievement.unlocked_at)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .where(UserAchievement.user_id == user.id)
    ).all()
    rows = sorted(rows, key=lambda r: (-TIER_RANK.get(r[0].tier, 0), r[0].sort_order))

    return Profile(
        user=user,
        topics_created=snapshot.topics_created,
        comments_made=snapshot.comments_made,
        topic_votes_cast=snapshot.topic_votes_cast,
        achievements=[_achievement_dict(ach, unlocked_at) for ach, unlocked_at in rows],
    )


def karma_leaderboard(session: Session, limit: int = 20) -> list[User]:
    """Top users by karma; ties broken by earliest account."""
    return list(session.scalars(
        select(User).order_by(User.karma.desc(), User.id).limit(limit)
    ).all())

"""
agora.api.routes.users — Profiles, leaderboard & achievement catalog
=====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.api.deps import get_session
from agora.constants import MAX_PAGE_SIZE, TIER_COLORS_HEX
from agora.database.models import Achievement, User
from agora.services import user_service

router = APIRouter(tags=["users"])


def _user_dict(u: User) -> dict:
    return {
        "id": str(u.id),
        "username": u.username,
        "display_name": u.display_name or u.username,
        "role": u.role,
        "karma": u.karma,
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


@router.get("/users/{username}")
def get_profile(username: str, session: Session = Depends(get_session)):
    profile = user_service.get_profile(session, username)
    return {
        "user": _user_dict(profile.user),
        "stats": {
            "topics_created": profile.topics_created,
            "comments_made": profile.comments_made,
            "topic_votes_cast": profile.topic_votes_cast,
        },
        "achievements": profile.achievements,
    }


@router.get("/leaderboard")
def get_leaderboard(
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    session: Session = Depends(get_session),
):
    """Top members by karma."""
    users = user_service.karma_leaderboard(session, limit)
    return {
        "leaderboard": [
            {"rank": i + 1, **_user_dict(u)} for i, u in enumerate(users)
        ],
    }


@router.get("/achievements")
def list_achievements(session: Session = Depends(get_session)):
    """Active achievement catalog in display order."""
    rows = session.scalars(
        select(Achievement)
        .where(Achievement.active.is_(True))
        .order_by(Achievement.sort_order, Achievement.id)
    ).all()
    return {
        "achievements": [
            {
                "key": a.key,
                "name": a.name,
                "description": a.description,
                "icon": a.icon,
                "tier": a.tier,
                "tier_color": TIER_COLORS_HEX.get(a.tier, "#9e9e9e"),
                "metric": a.metric,
                "threshold": a.threshold,
            }
            for a in rows
        ],
    }

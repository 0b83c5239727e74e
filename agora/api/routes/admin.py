"""
agora.api.routes.admin — Moderation & giveaway administration (JWT-protected)
==============================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from agora.api.deps import get_engine, get_session, require_admin, require_moderator
from agora.api.routes.giveaways import giveaway_dict
from agora.api.routes.topics import iso_or_none, comment_dict
from agora.database.models import User
from agora.services import giveaway_service, moderation_service

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class StatusUpdate(BaseModel):
    status: str
    reason: str | None = None


class RoleUpdate(BaseModel):
    role: str
    reason: str | None = None


class GiveawayCreate(BaseModel):
    title: str
    prize: str
    starts_at: datetime
    ends_at: datetime
    description: str | None = None


# ---------------------------------------------------------------------------
# Review queues
# ---------------------------------------------------------------------------
@router.get("/topics")
def review_topics(
    reported: bool = False,
    limit: int = Query(100, ge=1, le=500),
    mod: User = Depends(require_moderator),
    session: Session = Depends(get_session),
):
    rows = moderation_service.list_topics_for_review(session, reported_only=reported, limit=limit)
    return {
        "topics": [
            {
                "id": r.Topic.id,
                "slug": r.Topic.slug,
                "title": r.Topic.title,
                "status": r.Topic.status,
                "created_by": r.username,
                "report_count": r.Topic.report_count,
                "comment_count": r.comment_count,
                "vote_count": r.vote_count,
                "created_at": iso_or_none(r.Topic.created_at),
            }
            for r in rows
        ],
    }


@router.get("/comments")
def review_comments(
    reported: bool = False,
    limit: int = Query(100, ge=1, le=500),
    mod: User = Depends(require_moderator),
    session: Session = Depends(get_session),
):
    rows = moderation_service.list_comments_for_review(session, reported_only=reported, limit=limit)
    return {
        "comments": [
            {
                **comment_dict(r.Comment),
                "username": r.username,
                "topic": {"slug": r.slug, "title": r.title},
                "report_count": r.Comment.report_count,
                "reply_count": r.reply_count,
                "vote_count": r.vote_count,
            }
            for r in rows
        ],
    }


@router.get("/users")
def review_users(
    limit: int = Query(100, ge=1, le=500),
    admin: User = Depends(require_admin),
    session: Session = Depends(get_session),
):
    rows = moderation_service.list_users_for_review(session, limit)
    return {
        "users": [
            {
                "id": str(r.User.id),
                "username": r.User.username,
                "display_name": r.User.display_name,
                "role": r.User.role,
                "is_owner": r.User.is_owner,
                "karma": r.User.karma,
                "created_at": iso_or_none(r.User.created_at),
                "topic_count": r.topic_count,
                "comment_count": r.comment_count,
                "comment_vote_count": r.comment_vote_count,
                "topic_vote_count": r.topic_vote_count,
            }
            for r in rows
        ],
    }


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------
@router.patch("/topics/{slug}")
def moderate_topic(
    slug: str,
    body: StatusUpdate,
    mod: User = Depends(require_moderator),
    engine: Engine = Depends(get_engine),
):
    topic = moderation_service.set_topic_status(engine, mod.id, slug, body.status, body.reason)
    return {"slug": topic.slug, "status": topic.status}


@router.patch("/comments/{comment_id}")
def moderate_comment(
    comment_id: int,
    body: StatusUpdate,
    mod: User = Depends(require_moderator),
    engine: Engine = Depends(get_engine),
):
    comment = moderation_service.set_comment_status(
        engine, mod.id, comment_id, body.status, body.reason,
    )
    return {"id": comment.id, "status": comment.status}


@router.patch("/users/{user_id}")
def change_role(
    user_id: int,
    body: RoleUpdate,
    admin: User = Depends(require_admin),
    engine: Engine = Depends(get_engine),
):
    user = moderation_service.set_user_role(engine, admin.id, user_id, body.role, body.reason)
    return {"id": str(user.id), "role": user.role}


@router.get("/log")
def moderation_log(
    limit: int = Query(50, ge=1, le=200),
    mod: User = Depends(require_moderator),
    session: Session = Depends(get_session),
):
    rows = moderation_service.list_moderation_log(session, limit)
    return {
        "entries": [
            {
                "id": r.id,
                "actor_id": str(r.actor_id),
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "before": r.before_snapshot,
                "after": r.after_snapshot,
                "reason": r.reason,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ],
    }


# ---------------------------------------------------------------------------
# Giveaways
# ---------------------------------------------------------------------------
@router.post("/giveaways", status_code=201)
def create_giveaway(
    body: GiveawayCreate,
    admin: User = Depends(require_admin),
    engine: Engine = Depends(get_engine),
):
    giveaway = giveaway_service.create_giveaway(
        engine, admin.id,
        title=body.title,
        prize=body.prize,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        description=body.description,
    )
    return giveaway_dict(giveaway)


@router.post("/giveaways/{giveaway_id}/winner")
def select_winner(
    giveaway_id: int,
    admin: User = Depends(require_admin),
    engine: Engine = Depends(get_engine),
):
    winner = giveaway_service.select_winner(engine, giveaway_id)
    return {"giveaway_id": giveaway_id, "winner_id": str(winner.user_id)}

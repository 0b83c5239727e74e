"""
agora.api.routes.topics — Topic listing, creation, votes & reports
===================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from agora.api.deps import decode_token, get_config, get_current_user, get_engine, get_session
from agora.config import AgoraConfig
from agora.constants import MAX_PAGE_SIZE
from agora.database.engine import run_db
from agora.database.models import Comment, Topic, TopicType, User
from agora.services import comment_service, topic_service, voting_service

router = APIRouter(prefix="/topics", tags=["topics"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class OptionIn(BaseModel):
    label: str
    description: str | None = None


class TopicCreate(BaseModel):
    title: str
    description: str
    tags: list[str] = Field(default_factory=list)
    type: str = TopicType.YES_NO
    options: list[OptionIn] = Field(default_factory=list)
    allow_multiple_votes: bool = False
    max_choices: int = 1
    voting_opens_at: datetime | None = None
    voting_closes_at: datetime | None = None


class TopicVoteIn(BaseModel):
    choice: str | None = None
    option_ids: list[int] | None = None


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------
def iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def topic_dict(t: Topic) -> dict:
    return {
        "id": t.id,
        "slug": t.slug,
        "title": t.title,
        "description": t.description,
        "tags": t.tags or [],
        "type": t.type,
        "status": t.status,
        "allow_multiple_votes": t.allow_multiple_votes,
        "max_choices": t.max_choices,
        "voting_opens_at": iso_or_none(t.voting_opens_at),
        "voting_closes_at": iso_or_none(t.voting_closes_at),
        "options": [
            {"id": o.id, "label": o.label, "description": o.description}
            for o in t.options
        ],
        "created_by_id": str(t.created_by_id),
        "created_at": iso_or_none(t.created_at),
    }


def comment_dict(c: Comment) -> dict:
    return {
        "id": c.id,
        "topic_id": c.topic_id,
        "parent_id": c.parent_id,
        "user_id": str(c.user_id),
        "content": c.content,
        "status": c.status,
        "score": c.score,
        "created_at": iso_or_none(c.created_at),
        "updated_at": iso_or_none(c.updated_at),
    }


# ---------------------------------------------------------------------------
# GET /topics
# ---------------------------------------------------------------------------
@router.get("")
def list_topics(
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1, le=MAX_PAGE_SIZE),
    tag: str | None = None,
    session: Session = Depends(get_session),
    cfg: AgoraConfig = Depends(get_config),
):
    page_size = page_size or cfg.default_page_size
    topics, total = topic_service.list_topics(session, page, page_size, tag)
    return {
        "total": total,
        "page": page,
        "page_size": page_size,
        "topics": [topic_dict(t) for t in topics],
    }


# ---------------------------------------------------------------------------
# POST /topics
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_topic(
    body: TopicCreate,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: AgoraConfig = Depends(get_config),
):
    topic = topic_service.create_topic(
        engine,
        user.id,
        title=body.title,
        description=body.description,
        tags=body.tags,
        type=body.type,
        options=[o.model_dump() for o in body.options],
        allow_multiple_votes=body.allow_multiple_votes,
        max_choices=body.max_choices,
        voting_opens_at=body.voting_opens_at,
        voting_closes_at=body.voting_closes_at,
        max_options=cfg.max_topic_options,
    )
    return topic_dict(topic)


# ---------------------------------------------------------------------------
# GET /topics/{slug}
# ---------------------------------------------------------------------------
@router.get("/{slug}")
def get_topic(
    slug: str,
    authorization: str | None = Header(None),
    session: Session = Depends(get_session),
):
    """Topic detail with vote counts; includes the caller's selection when
    a valid token is sent."""
    topic = topic_service.get_topic(session, slug)
    data = topic_dict(topic)
    data["stats"] = voting_service.topic_vote_stats(session, topic)
    data["user_vote"] = None
    if authorization:
        claims = decode_token(authorization)
        data["user_vote"] = voting_service.get_user_topic_selection(
            session, int(claims["sub"]), topic,
        )
    return data


# ---------------------------------------------------------------------------
# POST/DELETE /topics/{slug}/vote
# ---------------------------------------------------------------------------
@router.post("/{slug}/vote")
async def cast_topic_vote(
    slug: str,
    body: TopicVoteIn,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    result = await run_db(
        voting_service.cast_topic_vote,
        engine, user.id, slug,
        choice=body.choice, option_ids=body.option_ids,
    )
    return {"topic_id": result.topic_id, "user_vote": result.user_vote, "stats": result.stats}


@router.delete("/{slug}/vote")
async def retract_topic_vote(
    slug: str,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    result = await run_db(voting_service.retract_topic_vote, engine, user.id, slug)
    return {"topic_id": result.topic_id, "user_vote": None, "stats": result.stats}


# ---------------------------------------------------------------------------
# GET /topics/{slug}/next
# ---------------------------------------------------------------------------
@router.get("/{slug}/next")
def get_next_topic(slug: str, session: Session = Depends(get_session)):
    topic = topic_service.next_topic(session, slug)
    return {
        "next_topic": {"slug": topic.slug, "title": topic.title} if topic else None,
    }


# ---------------------------------------------------------------------------
# POST /topics/{slug}/report
# ---------------------------------------------------------------------------
@router.post("/{slug}/report")
def report_topic(
    slug: str,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    count = topic_service.report_topic(engine, slug)
    return {"slug": slug, "report_count": count}


# ---------------------------------------------------------------------------
# GET /topics/{slug}/comments
# ---------------------------------------------------------------------------
@router.get("/{slug}/comments")
def list_topic_comments(slug: str, session: Session = Depends(get_session)):
    topic = topic_service.get_topic(session, slug)
    comments = comment_service.list_comments(session, topic.id)
    return {
        "topic_id": topic.id,
        "comments": [
            {**comment_dict(c), "username": c.user.username} for c in comments
        ],
    }

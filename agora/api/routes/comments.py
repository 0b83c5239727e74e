"""
agora.api.routes.comments — Comment CRUD & comment votes
=========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from agora.api.deps import get_current_user, get_engine, get_session
from agora.api.routes.topics import comment_dict
from agora.database.engine import run_db
from agora.database.models import User
from agora.services import comment_service, voting_service

router = APIRouter(prefix="/comments", tags=["comments"])


class CommentCreate(BaseModel):
    topic_id: int
    content: str
    parent_id: int | None = None


class CommentUpdate(BaseModel):
    content: str


class CommentVoteIn(BaseModel):
    # Left as a plain int so out-of-range values reach the domain check (400)
    value: int


@router.post("", status_code=201)
def create_comment(
    body: CommentCreate,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    comment = comment_service.create_comment(
        engine, user.id,
        topic_id=body.topic_id, content=body.content, parent_id=body.parent_id,
    )
    return comment_dict(comment)


@router.patch("/{comment_id}")
def edit_comment(
    comment_id: int,
    body: CommentUpdate,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    comment = comment_service.edit_comment(engine, user.id, comment_id, body.content)
    return comment_dict(comment)


@router.delete("/{comment_id}")
def delete_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    comment_service.delete_comment(
        engine, user.id, comment_id, is_moderator=user.is_moderator,
    )
    return {"id": comment_id, "status": "DELETED"}


@router.post("/{comment_id}/report")
def report_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    count = comment_service.report_comment(engine, comment_id)
    return {"id": comment_id, "report_count": count}


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------
@router.post("/{comment_id}/vote")
async def vote_on_comment(
    comment_id: int,
    body: CommentVoteIn,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """Upvote (1) or downvote (-1).  Repeating the same value retracts."""
    result = await run_db(
        voting_service.cast_comment_vote, engine, user.id, comment_id, body.value,
    )
    return {
        "comment_id": result.comment_id,
        "score": result.score,
        "user_vote": result.user_vote,
        "action": result.action,
    }


@router.get("/{comment_id}/my-vote")
def get_my_vote(
    comment_id: int,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return {
        "comment_id": comment_id,
        "vote": voting_service.get_comment_vote(session, user.id, comment_id),
    }

"""
agora.api.routes.giveaways — Member-facing giveaway endpoints
==============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from agora.api.deps import get_current_user, get_engine
from agora.database.models import Giveaway, User
from agora.services import giveaway_service

router = APIRouter(prefix="/giveaways", tags=["giveaways"])


def giveaway_dict(g: Giveaway) -> dict:
    return {
        "id": g.id,
        "title": g.title,
        "description": g.description,
        "prize": g.prize,
        "status": g.status,
        "starts_at": g.starts_at.isoformat(),
        "ends_at": g.ends_at.isoformat(),
        "winner_id": str(g.winner_id) if g.winner_id else None,
    }


@router.get("/active")
def get_active_giveaway(engine: Engine = Depends(get_engine)):
    giveaway = giveaway_service.get_active_giveaway(engine)
    return {"giveaway": giveaway_dict(giveaway) if giveaway else None}


@router.post("/{giveaway_id}/enter", status_code=201)
def enter_giveaway(
    giveaway_id: int,
    user: User = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    entry = giveaway_service.enter_giveaway(engine, user.id, giveaway_id)
    return {
        "id": entry.id,
        "giveaway_id": giveaway_id,
        "has_voted": entry.has_voted,
        "has_commented": entry.has_commented,
    }

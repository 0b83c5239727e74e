"""
agora.services.giveaway_service — Prize Draws
==============================================

Admins open a giveaway with a window; members enter once each while it
runs.  An entry records whether the member had voted on a topic and
commented at entry time; only entrants who had voted are eligible for the
draw.
"""

from __future__ import annotations

import logging
import random
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from agora.database.engine import unit_of_work
from agora.database.models import Comment, Giveaway, GiveawayEntry, GiveawayStatus
from agora.engine.voting import as_utc
from agora.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from agora.services.karma_service import count_topic_votes_cast

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def create_giveaway(
    engine: Engine,
    actor_id: int,
    *,
    title: str,
    prize: str,
    starts_at: datetime,
    ends_at: datetime,
    description: str | None = None,
) -> Giveaway:
    """Create a giveaway that is ACTIVE immediately."""
    title = (title or "").strip()
    prize = (prize or "").strip()
    if not title:
        raise ValidationError("Title is required", field="title")
    if not prize:
        raise ValidationError("Prize is required", field="prize")
    if as_utc(starts_at) >= as_utc(ends_at):
        raise ValidationError("End date must be after start date", field="ends_at")

    with unit_of_work(engine) as session:
        giveaway = Giveaway(
            title=title,
            description=description,
            prize=prize,
            status=GiveawayStatus.ACTIVE.value,
            starts_at=as_utc(starts_at),
            ends_at=as_utc(ends_at),
            created_by_id=actor_id,
        )
        session.add(giveaway)
        session.flush()
        session.refresh(giveaway, ["created_at"])

    logger.info("Giveaway %d created by %d: %s", giveaway.id, actor_id, title)
    return giveaway


def get_active_giveaway(engine: Engine, now: datetime | None = None) -> Giveaway | None:
    """The most recently started ACTIVE giveaway whose window contains *now*."""
    now = as_utc(now or datetime.now(UTC))
    with unit_of_work(engine) as session:
        return session.scalar(
            select(Giveaway)
            .where(
                Giveaway.status == GiveawayStatus.ACTIVE.value,
                Giveaway.starts_at <= now,
                Giveaway.ends_at >= now,
            )
            .order_by(Giveaway.starts_at.desc(), Giveaway.id.desc())
            .limit(1)
        )


def enter_giveaway(
    engine: Engine,
    user_id: int,
    giveaway_id: int,
    now: datetime | None = None,
) -> GiveawayEntry:
    """Enter *user_id* into a running giveaway.

    Raises
    ------
    NotFoundError
        No such giveaway.
    ForbiddenError
        The giveaway is not ACTIVE or *now* is outside its window.
    ConflictError
        The user already entered.
    """
    now = as_utc(now or datetime.now(UTC))
    try:
        with unit_of_work(engine) as session:
            giveaway = session.get(Giveaway, giveaway_id)
            if giveaway is None:
                raise NotFoundError("Giveaway", giveaway_id)
            if giveaway.status != GiveawayStatus.ACTIVE:
                raise ForbiddenError("Giveaway is not active", {"giveaway_id": giveaway_id})
            if not as_utc(giveaway.starts_at) <= now <= as_utc(giveaway.ends_at):
                raise ForbiddenError(
                    "Giveaway is not currently running", {"giveaway_id": giveaway_id},
                )

            already = session.scalar(
                select(GiveawayEntry.id).where(
                    GiveawayEntry.giveaway_id == giveaway_id,
                    GiveawayEntry.user_id == user_id,
                )
            )
            if already is not None:
                raise ConflictError("Already entered", {"giveaway_id": giveaway_id})

            comments = session.scalar(
                select(func.count()).select_from(Comment).where(Comment.user_id == user_id)
            ) or 0
            entry = GiveawayEntry(
                giveaway_id=giveaway_id,
                user_id=user_id,
                has_voted=count_topic_votes_cast(session, user_id) > 0,
                has_commented=comments > 0,
            )
            session.add(entry)
            session.flush()
    except IntegrityError as exc:
        raise ConflictError("Already entered", {"giveaway_id": giveaway_id}) from exc

    logger.info(
        "Giveaway %d entry: user=%d voted=%s commented=%s",
        giveaway_id, user_id, entry.has_voted, entry.has_commented,
    )
    return entry


def select_winner(
    engine: Engine,
    giveaway_id: int,
    rng: random.Random | None = None,
) -> GiveawayEntry:
    """Draw a winner uniformly among entrants who had voted.

    The giveaway must be ACTIVE or ENDED and have no winner yet; its
    status becomes WINNER_SELECTED.
    """
    rng = rng or random.SystemRandom()
    with unit_of_work(engine) as session:
        giveaway = session.get(Giveaway, giveaway_id)
        if giveaway is None:
            raise NotFoundError("Giveaway", giveaway_id)
        if giveaway.winner_id is not None or giveaway.status == GiveawayStatus.WINNER_SELECTED:
            raise ConflictError("A winner was already selected", {"giveaway_id": giveaway_id})
        if giveaway.status not in (GiveawayStatus.ACTIVE, GiveawayStatus.ENDED):
            raise ForbiddenError("Giveaway has not started", {"giveaway_id": giveaway_id})

        eligible = session.scalars(
            select(GiveawayEntry)
            .where(GiveawayEntry.giveaway_id == giveaway_id, GiveawayEntry.has_voted.is_(True))
            .order_by(GiveawayEntry.id)
        ).all()
        if not eligible:
            raise ValidationError("No eligible entries for this giveaway")

        winner = rng.choice(eligible)
        giveaway.winner_id = winner.user_id
        giveaway.status = GiveawayStatus.WINNER_SELECTED.value
        session.flush()

    logger.info("Giveaway %d winner: user %d (%d eligible)", giveaway_id, winner.user_id, len(eligible))
    return winner

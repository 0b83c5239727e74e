"""
tests/test_giveaway_service.py — Giveaway Entry & Draw Tests
=============================================================
"""

from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from agora.database.models import Giveaway, GiveawayStatus
from agora.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from agora.services import giveaway_service, voting_service
from conftest import make_comment, make_topic, make_user

ADMIN, ALICE, BOB, CAROL = 1, 2, 3, 4

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def engine(seeded_engine):
    for uid in (ADMIN, ALICE, BOB, CAROL):
        make_user(seeded_engine, uid)
    return seeded_engine


@pytest.fixture
def giveaway(engine):
    return giveaway_service.create_giveaway(
        engine, ADMIN,
        title="Summer draw",
        prize="A mechanical keyboard",
        starts_at=NOW - timedelta(days=1),
        ends_at=NOW + timedelta(days=6),
    )


@pytest.fixture
def topic(engine):
    return make_topic(engine, ADMIN)


def _vote(engine, topic, user_id):
    voting_service.cast_topic_vote(engine, user_id, topic.slug, choice="YES")


class TestCreateGiveaway:
    def test_active_on_creation(self, giveaway):
        assert giveaway.status == GiveawayStatus.ACTIVE
        assert giveaway.winner_id is None

    def test_end_must_follow_start(self, engine):
        with pytest.raises(ValidationError):
            giveaway_service.create_giveaway(
                engine, ADMIN, title="Bad", prize="Nothing", starts_at=NOW, ends_at=NOW,
            )

    def test_prize_required(self, engine):
        with pytest.raises(ValidationError):
            giveaway_service.create_giveaway(
                engine, ADMIN, title="No prize", prize="  ",
                starts_at=NOW, ends_at=NOW + timedelta(days=1),
            )

    def test_active_lookup(self, engine, giveaway):
        assert giveaway_service.get_active_giveaway(engine, NOW).id == giveaway.id
        assert giveaway_service.get_active_giveaway(engine, NOW + timedelta(days=30)) is None

    def test_active_lookup_skips_closed_windows(self, engine, giveaway):
        flash = giveaway_service.create_giveaway(
            engine, ADMIN, title="Flash draw", prize="Stickers",
            starts_at=NOW - timedelta(hours=3), ends_at=NOW - timedelta(hours=1),
        )
        later = giveaway_service.create_giveaway(
            engine, ADMIN, title="Next week", prize="Mug",
            starts_at=NOW + timedelta(days=7), ends_at=NOW + timedelta(days=9),
        )
        assert giveaway_service.get_active_giveaway(engine, NOW).id == giveaway.id
        assert giveaway_service.get_active_giveaway(engine, NOW - timedelta(hours=2)).id == flash.id
        assert giveaway_service.get_active_giveaway(engine, NOW + timedelta(days=8)).id == later.id


class TestEnterGiveaway:
    def test_entry_records_participation(self, engine, giveaway, topic):
        _vote(engine, topic, ALICE)
        make_comment(engine, topic.id, ALICE)

        entry = giveaway_service.enter_giveaway(engine, ALICE, giveaway.id, now=NOW)
        assert entry.has_voted is True
        assert entry.has_commented is True

        bare = giveaway_service.enter_giveaway(engine, BOB, giveaway.id, now=NOW)
        assert bare.has_voted is False
        assert bare.has_commented is False

    def test_duplicate_entry(self, engine, giveaway):
        giveaway_service.enter_giveaway(engine, ALICE, giveaway.id, now=NOW)
        with pytest.raises(ConflictError):
            giveaway_service.enter_giveaway(engine, ALICE, giveaway.id, now=NOW)

    def test_outside_window(self, engine, giveaway):
        with pytest.raises(ForbiddenError):
            giveaway_service.enter_giveaway(
                engine, ALICE, giveaway.id, now=NOW + timedelta(days=10),
            )

    def test_missing(self, engine):
        with pytest.raises(NotFoundError):
            giveaway_service.enter_giveaway(engine, ALICE, 999, now=NOW)


class TestSelectWinner:
    def test_only_voters_eligible(self, engine, giveaway, topic):
        _vote(engine, topic, BOB)
        for uid in (ALICE, BOB, CAROL):
            giveaway_service.enter_giveaway(engine, uid, giveaway.id, now=NOW)

        winner = giveaway_service.select_winner(engine, giveaway.id, rng=random.Random(7))
        assert winner.user_id == BOB
        with Session(engine) as session:
            row = session.get(Giveaway, giveaway.id)
            assert row.winner_id == BOB
            assert row.status == GiveawayStatus.WINNER_SELECTED

    def test_deterministic_with_seeded_rng(self, engine, giveaway, topic):
        for uid in (ALICE, BOB, CAROL):
            _vote(engine, topic, uid)
            giveaway_service.enter_giveaway(engine, uid, giveaway.id, now=NOW)

        expected = random.Random(42).choice([ALICE, BOB, CAROL])
        winner = giveaway_service.select_winner(engine, giveaway.id, rng=random.Random(42))
        assert winner.user_id == expected

    def test_no_eligible_entries(self, engine, giveaway):
        giveaway_service.enter_giveaway(engine, ALICE, giveaway.id, now=NOW)
        with pytest.raises(ValidationError):
            giveaway_service.select_winner(engine, giveaway.id)

    def test_second_draw_conflicts(self, engine, giveaway, topic):
        _vote(engine, topic, ALICE)
        giveaway_service.enter_giveaway(engine, ALICE, giveaway.id, now=NOW)
        giveaway_service.select_winner(engine, giveaway.id)
        with pytest.raises(ConflictError):
            giveaway_service.select_winner(engine, giveaway.id)

    def test_draft_giveaway_forbidden(self, engine, giveaway):
        with Session(engine) as session:
            session.get(Giveaway, giveaway.id).status = GiveawayStatus.DRAFT.value
            session.commit()
        with pytest.raises(ForbiddenError):
            giveaway_service.select_winner(engine, giveaway.id)

    def test_entry_closed_after_draw(self, engine, giveaway, topic):
        _vote(engine, topic, ALICE)
        giveaway_service.enter_giveaway(engine, ALICE, giveaway.id, now=NOW)
        giveaway_service.select_winner(engine, giveaway.id)
        with pytest.raises(ForbiddenError):
            giveaway_service.enter_giveaway(engine, BOB, giveaway.id, now=NOW)

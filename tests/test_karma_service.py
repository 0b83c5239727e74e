"""
tests/test_karma_service.py — Karma & Achievement Service Integration Tests
============================================================================
Covers award validation, the karma journal, once-per-subject rewards,
idempotent achievement evaluation and duplicate-unlock races.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from agora.database.models import (
    Achievement,
    KarmaAction,
    KarmaLog,
    User,
    UserAchievement,
)
from agora.errors import NotFoundError, ValidationError
from agora.services import karma_service, topic_service
from conftest import make_comment, make_topic, make_user

USER = 42


@pytest.fixture
def engine(seeded_engine):
    make_user(seeded_engine, USER)
    return seeded_engine


def _karma(engine, user_id: int = USER) -> int:
    with Session(engine) as session:
        return session.get(User, user_id).karma


def _unlocked(engine, user_id: int = USER) -> set[str]:
    with Session(engine) as session:
        return karma_service.get_unlocked_keys(session, user_id)


def _create_topic(engine, n: int):
    return topic_service.create_topic(
        engine, USER,
        title=f"Topic number {n} for debate",
        description="A description long enough to pass validation.",
        tags=["testing"],
    )


# ---------------------------------------------------------------------------
# award
# ---------------------------------------------------------------------------
class TestAward:
    def test_award_adds_points_and_journals(self, engine):
        assert karma_service.award(engine, USER, 10, KarmaAction.CREATE_TOPIC) == 10
        assert karma_service.award(engine, USER, 5) == 15
        with Session(engine) as session:
            rows = session.scalars(select(KarmaLog).order_by(KarmaLog.id)).all()
        assert [(r.action, r.points) for r in rows] == [("CREATE_TOPIC", 10), (None, 5)]

    @pytest.mark.parametrize("points", [0, -1, -100, True, 1.5, "3"])
    def test_rejects_non_positive_or_non_integer(self, engine, points):
        with pytest.raises(ValidationError):
            karma_service.award(engine, USER, points)
        assert _karma(engine) == 0

    def test_missing_user(self, engine):
        with pytest.raises(NotFoundError):
            karma_service.award(engine, 9999, 5)
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(KarmaLog)) == 0

    def test_karma_never_decreases(self, engine):
        totals = [karma_service.award(engine, USER, p) for p in (1, 3, 2, 7)]
        assert totals == sorted(totals)


# ---------------------------------------------------------------------------
# reward_action
# ---------------------------------------------------------------------------
class TestRewardAction:
    def test_uses_point_table(self, engine):
        outcome = karma_service.reward_action(engine, USER, KarmaAction.CREATE_COMMENT)
        assert outcome.karma == 5

    def test_same_subject_paid_once(self, engine):
        first = karma_service.reward_action(
            engine, USER, KarmaAction.VOTE_ON_TOPIC, subject="topic:1",
        )
        again = karma_service.reward_action(
            engine, USER, KarmaAction.VOTE_ON_TOPIC, subject="topic:1",
        )
        assert first.karma == again.karma == 2
        assert again.unlocked == []

    def test_different_subjects_both_paid(self, engine):
        karma_service.reward_action(engine, USER, KarmaAction.VOTE_ON_TOPIC, subject="topic:1")
        karma_service.reward_action(engine, USER, KarmaAction.VOTE_ON_TOPIC, subject="topic:2")
        assert _karma(engine) == 4

    def test_unkeyed_awards_always_paid(self, engine):
        karma_service.reward_action(engine, USER, KarmaAction.RECEIVE_COMMENT_VOTE)
        karma_service.reward_action(engine, USER, KarmaAction.RECEIVE_COMMENT_VOTE)
        assert _karma(engine) == 2

    def test_karma_badge_unlocks_from_award(self, engine):
        karma_service.award(engine, USER, 99)
        outcome = karma_service.reward_action(engine, USER, KarmaAction.RECEIVE_COMMENT_VOTE)
        assert outcome.karma == 100
        assert "karma_100" in outcome.unlocked


# ---------------------------------------------------------------------------
# evaluate_achievements
# ---------------------------------------------------------------------------
class TestEvaluateAchievements:
    def test_topic_creator_unlocks_at_fifth_topic(self, engine):
        for n in range(4):
            _create_topic(engine, n)
        assert "debate_starter" in _unlocked(engine)
        assert "topic_creator" not in _unlocked(engine)

        _create_topic(engine, 4)
        assert {"debate_starter", "topic_creator"} <= _unlocked(engine)
        assert _karma(engine) == 50

    def test_idempotent(self, engine):
        topic = make_topic(engine, USER)
        make_comment(engine, topic.id, USER)

        first = karma_service.evaluate_achievements(engine, USER)
        second = karma_service.evaluate_achievements(engine, USER)

        assert set(first) == {"debate_starter", "first_comment"}
        assert second == []
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(UserAchievement)) == 2

    def test_missing_user_unlocks_nothing(self, engine):
        with pytest.raises(NotFoundError):
            karma_service.evaluate_achievements(engine, 9999)
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(UserAchievement)) == 0

    def test_duplicate_unlock_race_is_skipped(self, engine, monkeypatch):
        """Another evaluation already unlocked debate_starter but this one
        didn't see it: that insert is skipped, first_comment still lands."""
        topic = make_topic(engine, USER)
        make_comment(engine, topic.id, USER)
        with Session(engine) as session:
            starter = session.scalar(select(Achievement).where(Achievement.key == "debate_starter"))
            session.add(UserAchievement(user_id=USER, achievement_id=starter.id))
            session.commit()

        monkeypatch.setattr(karma_service, "get_unlocked_keys", lambda *a: set())
        unlocked = karma_service.evaluate_achievements(engine, USER)

        assert unlocked == ["first_comment"]
        monkeypatch.undo()
        assert _unlocked(engine) == {"debate_starter", "first_comment"}

    def test_inactive_catalog_entry_ignored(self, engine):
        with Session(engine) as session:
            row = session.scalar(select(Achievement).where(Achievement.key == "debate_starter"))
            row.active = False
            session.commit()
        make_topic(engine, USER)
        assert karma_service.evaluate_achievements(engine, USER) == []

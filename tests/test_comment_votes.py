"""
tests/test_comment_votes.py — Comment Vote Service Integration Tests
=====================================================================
Covers cast / switch / retract, the score-equals-sum-of-votes invariant,
self-votes, missing comments, conflicts and upvote karma.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from agora.database.models import Base, Comment, CommentStatus, KarmaLog, User, Vote
from agora.engine.voting import VoteAction
from agora.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from agora.services import voting_service
from conftest import make_comment, make_topic, make_user

AUTHOR, VOTER, OTHER = 1, 2, 3


@pytest.fixture
def engine(seeded_engine):
    for uid in (AUTHOR, VOTER, OTHER):
        make_user(seeded_engine, uid)
    return seeded_engine


@pytest.fixture
def comment_id(engine) -> int:
    topic = make_topic(engine, AUTHOR)
    return make_comment(engine, topic.id, AUTHOR)


def _score(engine, comment_id: int) -> int:
    with Session(engine) as session:
        return session.scalar(select(Comment.score).where(Comment.id == comment_id))


def _vote_sum(engine, comment_id: int) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.coalesce(func.sum(Vote.value), 0)).where(Vote.comment_id == comment_id)
        )


def _karma(engine, user_id: int) -> int:
    with Session(engine) as session:
        return session.get(User, user_id).karma


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
class TestCastCommentVote:
    def test_first_upvote(self, engine, comment_id):
        result = voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        assert result.action == VoteAction.CREATE
        assert result.score == 1
        assert result.user_vote == 1

    def test_toggle_switch_sequence(self, engine, comment_id):
        """up → up (retract) → down → up: scores 1, 0, -1, 1."""
        r1 = voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        r2 = voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        r3 = voting_service.cast_comment_vote(engine, VOTER, comment_id, -1)
        r4 = voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)

        assert [r1.score, r2.score, r3.score, r4.score] == [1, 0, -1, 1]
        assert [r.user_vote for r in (r1, r2, r3, r4)] == [1, 0, -1, 1]
        assert r2.action == VoteAction.DELETE
        assert r4.action == VoteAction.UPDATE
        assert r4.score - r3.score == 2

    def test_score_matches_sum_of_votes(self, engine, comment_id):
        voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        voting_service.cast_comment_vote(engine, OTHER, comment_id, -1)
        voting_service.cast_comment_vote(engine, VOTER, comment_id, -1)
        assert _score(engine, comment_id) == _vote_sum(engine, comment_id) == -2

        voting_service.cast_comment_vote(engine, OTHER, comment_id, -1)
        assert _score(engine, comment_id) == _vote_sum(engine, comment_id) == -1

    def test_retract_removes_row(self, engine, comment_id):
        voting_service.cast_comment_vote(engine, VOTER, comment_id, -1)
        voting_service.cast_comment_vote(engine, VOTER, comment_id, -1)
        with Session(engine) as session:
            assert voting_service.get_comment_vote(session, VOTER, comment_id) == 0
            assert session.scalar(select(func.count()).select_from(Vote)) == 0


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------
class TestCommentVoteErrors:
    def test_self_vote_forbidden(self, engine, comment_id):
        with pytest.raises(ForbiddenError):
            voting_service.cast_comment_vote(engine, AUTHOR, comment_id, 1)
        assert _score(engine, comment_id) == 0

    def test_missing_comment(self, engine):
        with pytest.raises(NotFoundError):
            voting_service.cast_comment_vote(engine, VOTER, 9999, 1)

    def test_deleted_comment(self, engine, comment_id):
        with Session(engine) as session:
            session.get(Comment, comment_id).status = CommentStatus.DELETED.value
            session.commit()
        with pytest.raises(NotFoundError):
            voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)

    @pytest.mark.parametrize("value", [0, 2, -3])
    def test_invalid_value(self, engine, comment_id, value):
        with pytest.raises(ValidationError):
            voting_service.cast_comment_vote(engine, VOTER, comment_id, value)
        assert _score(engine, comment_id) == 0

    def test_concurrent_insert_becomes_conflict(self, engine, comment_id, monkeypatch):
        """A racing request already inserted the row: the unique constraint
        fires, nothing is applied, and the caller sees a ConflictError."""
        voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        monkeypatch.setattr(voting_service, "_find_comment_vote", lambda *a: None)

        with pytest.raises(ConflictError):
            voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        assert _score(engine, comment_id) == 1
        assert _vote_sum(engine, comment_id) == 1


# ---------------------------------------------------------------------------
# Karma
# ---------------------------------------------------------------------------
class TestCommentVoteKarma:
    def test_new_upvote_rewards_author(self, engine, comment_id):
        voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        assert _karma(engine, AUTHOR) == 1
        assert _karma(engine, VOTER) == 0

    def test_downvote_does_not_reward(self, engine, comment_id):
        voting_service.cast_comment_vote(engine, VOTER, comment_id, -1)
        assert _karma(engine, AUTHOR) == 0

    def test_retract_and_revote_pays_once(self, engine, comment_id):
        for _ in range(3):
            voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
            voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)

        assert _karma(engine, AUTHOR) == 1
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(KarmaLog)) == 1

    def test_each_voter_pays_once(self, engine, comment_id):
        voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        voting_service.cast_comment_vote(engine, OTHER, comment_id, 1)
        assert _karma(engine, AUTHOR) == 2


# ---------------------------------------------------------------------------
# Double clicks
# ---------------------------------------------------------------------------
@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite so each thread gets its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'votes.db'}",
        connect_args={"check_same_thread": False, "timeout": 10},
    )
    Base.metadata.create_all(engine)
    for uid in (AUTHOR, VOTER):
        make_user(engine, uid)
    yield engine
    engine.dispose()


class TestSameUserRace:
    @pytest.mark.parametrize("value,expected_score", [(1, 0), (-1, -1)])
    def test_double_click_applies_once(self, file_engine, monkeypatch, value, expected_score):
        """Both requests read the existing +1 vote before either writes;
        the second one to write finds the row changed and rolls back."""
        topic = make_topic(file_engine, AUTHOR)
        comment_id = make_comment(file_engine, topic.id, AUTHOR)
        voting_service.cast_comment_vote(file_engine, VOTER, comment_id, 1)

        both_read = threading.Barrier(2, timeout=5)
        first_done = threading.Event()
        resolve = voting_service.resolve_comment_vote

        def resolve_after_both_read(*args):
            if both_read.wait() != 0:
                first_done.wait(timeout=5)
            return resolve(*args)

        def click():
            try:
                return voting_service.cast_comment_vote(file_engine, VOTER, comment_id, value)
            finally:
                first_done.set()

        monkeypatch.setattr(voting_service, "resolve_comment_vote", resolve_after_both_read)
        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [pool.submit(click) for _ in range(2)]
            errors = [f.exception() for f in futures]

        assert errors.count(None) == 1
        assert sum(isinstance(e, ConflictError) for e in errors) == 1
        assert _score(file_engine, comment_id) == _vote_sum(file_engine, comment_id) == expected_score

    def test_stale_read_rolls_back_score(self, engine, comment_id, monkeypatch):
        """The vote row no longer holds the value that was read."""
        voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        with Session(engine) as session:
            vote = session.scalar(select(Vote))
            vote_id = vote.id
            vote.value = -1
            session.execute(
                Comment.__table__.update().where(Comment.id == comment_id).values(score=-1)
            )
            session.commit()

        stale = Vote(id=vote_id, user_id=VOTER, comment_id=comment_id, value=1)
        monkeypatch.setattr(voting_service, "_find_comment_vote", lambda *a: stale)

        with pytest.raises(ConflictError):
            voting_service.cast_comment_vote(engine, VOTER, comment_id, 1)
        assert _score(engine, comment_id) == _vote_sum(engine, comment_id) == -1

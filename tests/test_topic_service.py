"""
tests/test_topic_service.py — Topic Service Integration Tests
==============================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from agora.constants import slugify
from agora.database.models import TopicStatus, TopicType, User
from agora.errors import NotFoundError, ValidationError
from agora.services import topic_service
from conftest import make_topic, make_user

USER = 7

DESCRIPTION = "Twenty-plus characters of description."


@pytest.fixture
def engine(seeded_engine):
    make_user(seeded_engine, USER)
    return seeded_engine


def _create(engine, **overrides):
    kwargs = dict(title="Should cities ban cars?", description=DESCRIPTION, tags=["Cities"])
    kwargs.update(overrides)
    return topic_service.create_topic(engine, USER, **kwargs)


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------
class TestSlugify:
    def test_basic(self):
        assert slugify("Should cities ban cars?") == "should-cities-ban-cars"

    def test_strips_diacritics(self):
        assert slugify("Ação é Política") == "acao-e-politica"

    def test_collapses_separators(self):
        assert slugify("  many   spaces -- here ") == "many-spaces-here"

    def test_non_latin_falls_back_to_hash(self):
        slug = slugify("日本")
        assert slug.startswith("topic-")
        assert slug == slugify("日本")


class TestUniqueSlug:
    def test_suffixes_on_collision(self, engine):
        first = _create(engine)
        second = _create(engine)
        third = _create(engine)
        assert [first.slug, second.slug, third.slug] == [
            "should-cities-ban-cars",
            "should-cities-ban-cars-1",
            "should-cities-ban-cars-2",
        ]


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
class TestCreateTopic:
    def test_yes_no_defaults(self, engine):
        topic = _create(engine, max_choices=4, allow_multiple_votes=True)
        assert topic.type == TopicType.YES_NO
        assert topic.status == TopicStatus.ACTIVE
        assert topic.max_choices == 1
        assert topic.allow_multiple_votes is False
        assert topic.tags == ["cities"]
        assert topic.options == []

    def test_multi_choice_with_options(self, engine):
        topic = _create(
            engine,
            type="MULTI_CHOICE",
            options=["Trams", {"label": "Bikes", "description": "Two wheels"}, "Buses"],
            allow_multiple_votes=True,
            max_choices=2,
        )
        assert [o.label for o in topic.options] == ["Trams", "Bikes", "Buses"]
        assert topic.options[1].description == "Two wheels"
        assert topic.max_choices == 2

    def test_multi_choice_single_vote_forces_one(self, engine):
        topic = _create(engine, type="MULTI_CHOICE", options=["A", "B"], max_choices=2)
        assert topic.max_choices == 1

    def test_awards_creator_karma(self, engine):
        _create(engine)
        with Session(engine) as session:
            assert session.get(User, USER).karma == 10

    @pytest.mark.parametrize("overrides", [
        {"title": "Hey"},
        {"title": "x" * 201},
        {"description": "too short"},
        {"tags": []},
        {"tags": ["a"]},
        {"tags": ["one", "two", "three", "four", "five", "six"]},
        {"type": "RANKED"},
        {"type": "MULTI_CHOICE", "options": ["Only one"]},
        {"type": "MULTI_CHOICE", "options": ["A", "B"], "allow_multiple_votes": True, "max_choices": 3},
        {"type": "MULTI_CHOICE", "options": ["A", ""]},
    ])
    def test_validation(self, engine, overrides):
        with pytest.raises(ValidationError):
            _create(engine, **overrides)

    def test_option_limit(self, engine):
        with pytest.raises(ValidationError):
            _create(engine, type="MULTI_CHOICE", options=["A", "B", "C"], max_options=2)

    def test_window_must_be_ordered(self, engine):
        now = datetime.now(UTC)
        with pytest.raises(ValidationError):
            _create(engine, voting_opens_at=now, voting_closes_at=now - timedelta(hours=1))


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------
class TestListAndGet:
    def test_list_active_only_newest_first(self, engine):
        make_topic(engine, USER, slug="old", tags=["alpha"])
        make_topic(engine, USER, slug="hidden", status=TopicStatus.HIDDEN.value)
        make_topic(engine, USER, slug="new", tags=["beta"])

        with Session(engine) as session:
            topics, total = topic_service.list_topics(session)
        assert total == 2
        assert [t.slug for t in topics] == ["new", "old"]

    def test_pagination(self, engine):
        for i in range(5):
            make_topic(engine, USER, slug=f"t-{i}")
        with Session(engine) as session:
            page, total = topic_service.list_topics(session, page=2, per_page=2)
        assert total == 5
        assert len(page) == 2

    def test_tag_filter(self, engine):
        make_topic(engine, USER, slug="a", tags=["alpha", "shared"])
        make_topic(engine, USER, slug="b", tags=["beta", "shared"])
        with Session(engine) as session:
            topics, total = topic_service.list_topics(session, tag="Alpha")
        assert total == 1
        assert topics[0].slug == "a"

    def test_get_hidden_topic_not_found(self, engine):
        make_topic(engine, USER, slug="secret", status=TopicStatus.HIDDEN.value)
        with Session(engine) as session:
            with pytest.raises(NotFoundError):
                topic_service.get_topic(session, "secret")
            assert topic_service.get_topic(session, "secret", include_hidden=True).slug == "secret"


class TestNextTopic:
    def _next(self, engine, slug):
        with Session(engine) as session:
            topic = topic_service.next_topic(session, slug)
            return topic.slug if topic else None

    def test_prefers_newest_sharing_a_tag(self, engine):
        make_topic(engine, USER, slug="current", tags=["cities", "transport"])
        make_topic(engine, USER, slug="older-related", tags=["transport"])
        make_topic(engine, USER, slug="related", tags=["cities"])
        make_topic(engine, USER, slug="hidden-related", tags=["cities"],
                   status=TopicStatus.HIDDEN.value)
        make_topic(engine, USER, slug="unrelated", tags=["food"])
        assert self._next(engine, "current") == "related"

    def test_falls_back_to_newest_active(self, engine):
        make_topic(engine, USER, slug="current", tags=["cities"])
        make_topic(engine, USER, slug="older", tags=["food"])
        make_topic(engine, USER, slug="newest", tags=["music"])
        make_topic(engine, USER, slug="locked", tags=["cities"], status=TopicStatus.LOCKED.value)
        assert self._next(engine, "current") == "newest"

    def test_tag_match_is_whole_tag(self, engine):
        make_topic(engine, USER, slug="current", tags=["art"])
        make_topic(engine, USER, slug="partial", tags=["artificial"])
        make_topic(engine, USER, slug="exact", tags=["art"])
        make_topic(engine, USER, slug="latest", tags=["music"])
        assert self._next(engine, "current") == "exact"

    def test_only_topic(self, engine):
        make_topic(engine, USER, slug="current")
        assert self._next(engine, "current") is None

    def test_missing(self, engine):
        with Session(engine) as session:
            with pytest.raises(NotFoundError):
                topic_service.next_topic(session, "ghost")


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------
class TestReportTopic:
    def test_increments(self, engine):
        make_topic(engine, USER, slug="spam")
        assert topic_service.report_topic(engine, "spam") == 1
        assert topic_service.report_topic(engine, "spam") == 2

    def test_missing(self, engine):
        with pytest.raises(NotFoundError):
            topic_service.report_topic(engine, "ghost")

"""
agora.services.topic_service — Topic Creation, Lookup & Reporting
==================================================================

Topics are created in one unit of work together with their options; the
creator's CREATE_TOPIC karma is paid after that commit.  Listing and
lookup take a caller-owned :class:`Session` (FastAPI ``get_session``).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import String, cast, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from agora.constants import (
    DESCRIPTION_MAX,
    DESCRIPTION_MIN,
    MAX_PAGE_SIZE,
    TAG_LEN_MAX,
    TAG_LEN_MIN,
    TAGS_MAX,
    TAGS_MIN,
    TITLE_MAX,
    TITLE_MIN,
    slugify,
)
from agora.database.engine import unit_of_work
from agora.database.models import KarmaAction, Topic, TopicOption, TopicStatus, TopicType
from agora.errors import ConflictError, NotFoundError, ValidationError
from agora.services import karma_service

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

DEFAULT_MAX_OPTIONS = 10
MIN_OPTIONS = 2


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def _check_length(value: str, low: int, high: int, field: str) -> str:
    value = (value or "").strip()
    if not low <= len(value) <= high:
        raise ValidationError(
            f"{field.capitalize()} must be between {low} and {high} characters",
            field=field,
        )
    return value


def normalize_tags(tags: list[str] | None) -> list[str]:
    """Lowercase, strip and de-duplicate *tags*; enforce count and length."""
    cleaned: list[str] = []
    for tag in tags or ():
        tag = str(tag).strip().lower()
        if tag and tag not in cleaned:
            cleaned.append(tag)

    if not TAGS_MIN <= len(cleaned) <= TAGS_MAX:
        raise ValidationError(f"Provide between {TAGS_MIN} and {TAGS_MAX} tags", field="tags")
    for tag in cleaned:
        if not TAG_LEN_MIN <= len(tag) <= TAG_LEN_MAX:
            raise ValidationError(
                f"Tag {tag!r} must be between {TAG_LEN_MIN} and {TAG_LEN_MAX} characters",
                field="tags",
            )
    return cleaned


def _normalize_options(options: list[Any] | None) -> list[dict]:
    """Accept labels or ``{"label": ..., "description": ...}`` dicts."""
    normalized = []
    for raw in options or ():
        if isinstance(raw, dict):
            label = str(raw.get("label") or "").strip()
            description = raw.get("description") or None
        else:
            label, description = str(raw).strip(), None
        if not label:
            raise ValidationError("Option labels cannot be empty", field="options")
        normalized.append({"label": label, "description": description})
    return normalized


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------
def unique_slug(session: Session, title: str) -> str:
    """:func:`slugify` *title*, then append ``-1``, ``-2`` … until unused."""
    base = slugify(title)
    taken = set(session.scalars(
        select(Topic.slug).where((Topic.slug == base) | Topic.slug.like(f"{base}-%"))
    ).all())
    if base not in taken:
        return base
    counter = 1
    while f"{base}-{counter}" in taken:
        counter += 1
    return f"{base}-{counter}"


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def create_topic(
    engine: Engine,
    user_id: int,
    *,
    title: str,
    description: str,
    tags: list[str],
    type: str = TopicType.YES_NO,
    options: list[Any] | None = None,
    allow_multiple_votes: bool = False,
    max_choices: int = 1,
    voting_opens_at: datetime | None = None,
    voting_closes_at: datetime | None = None,
    max_options: int = DEFAULT_MAX_OPTIONS,
) -> Topic:
    """Validate and insert a topic (plus options for MULTI_CHOICE).

    Raises :class:`ValidationError` for any malformed field and
    :class:`ConflictError` if a concurrent create took the same slug.
    """
    title = _check_length(title, TITLE_MIN, TITLE_MAX, "title")
    description = _check_length(description, DESCRIPTION_MIN, DESCRIPTION_MAX, "description")
    tags = normalize_tags(tags)

    try:
        topic_type = TopicType(str(type).upper())
    except ValueError:
        raise ValidationError("Type must be YES_NO or MULTI_CHOICE", field="type") from None

    option_rows = _normalize_options(options)
    if topic_type == TopicType.MULTI_CHOICE:
        if not MIN_OPTIONS <= len(option_rows) <= max_options:
            raise ValidationError(
                f"Multi-choice topics need between {MIN_OPTIONS} and {max_options} options",
                field="options",
            )
        if not allow_multiple_votes:
            max_choices = 1
        if not 1 <= max_choices <= len(option_rows):
            raise ValidationError(
                f"max_choices must be between 1 and {len(option_rows)}", field="max_choices",
            )
    else:
        # YES_NO topics have fixed choices and never more than one of them
        option_rows = []
        allow_multiple_votes = False
        max_choices = 1

    if voting_opens_at and voting_closes_at and voting_closes_at <= voting_opens_at:
        raise ValidationError(
            "Voting must close after it opens", field="voting_closes_at",
        )

    try:
        with unit_of_work(engine) as session:
            topic = Topic(
                slug=unique_slug(session, title),
                title=title,
                description=description,
                tags=tags,
                type=topic_type.value,
                status=TopicStatus.ACTIVE.value,
                allow_multiple_votes=allow_multiple_votes,
                max_choices=max_choices,
                voting_opens_at=voting_opens_at,
                voting_closes_at=voting_closes_at,
                created_by_id=user_id,
                options=[
                    TopicOption(label=row["label"], description=row["description"], sort_order=i)
                    for i, row in enumerate(option_rows)
                ],
            )
            session.add(topic)
            session.flush()
            session.refresh(topic, ["created_at"])
    except IntegrityError as exc:
        logger.warning("Topic slug collision for %r: %s", title, exc.orig)
        raise ConflictError("A topic with this title was just created — please retry") from exc

    logger.info("Topic created: %s (%s) by user %d", topic.slug, topic.type, user_id)
    karma_service.reward_action(
        engine, user_id, KarmaAction.CREATE_TOPIC, subject=f"topic:{topic.id}",
    )
    return topic


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------
def get_topic(session: Session, slug: str, *, include_hidden: bool = False) -> Topic:
    """Topic by *slug* with options loaded.  HIDDEN topics only on request."""
    topic = session.scalar(
        select(Topic).where(Topic.slug == slug).options(selectinload(Topic.options))
    )
    if topic is None or (topic.status == TopicStatus.HIDDEN and not include_hidden):
        raise NotFoundError("Topic", slug)
    return topic


def _has_tag(tag: str):
    # Tags are stored lowercased; match the quoted JSON string element
    return cast(Topic.tags, String).like(f'%"{tag}"%')


def list_topics(
    session: Session,
    page: int = 1,
    per_page: int = 20,
    tag: str | None = None,
) -> tuple[list[Topic], int]:
    """ACTIVE topics, newest first.  Returns ``(topics, total)``."""
    page = max(1, page)
    per_page = max(1, min(per_page, MAX_PAGE_SIZE))

    criteria = [Topic.status == TopicStatus.ACTIVE.value]
    if tag:
        criteria.append(_has_tag(tag.strip().lower()))

    total = session.scalar(select(func.count()).select_from(Topic).where(*criteria)) or 0
    topics = session.scalars(
        select(Topic)
        .where(*criteria)
        .options(selectinload(Topic.options))
        .order_by(Topic.created_at.desc(), Topic.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).all()
    return list(topics), total


def next_topic(session: Session, slug: str) -> Topic | None:
    """Where to send a reader after *slug*.

    The newest other ACTIVE topic sharing one of its tags, else the newest
    other ACTIVE topic, else ``None``.
    """
    current = get_topic(session, slug)
    base = (
        select(Topic)
        .where(Topic.status == TopicStatus.ACTIVE.value, Topic.id != current.id)
        .order_by(Topic.created_at.desc(), Topic.id.desc())
        .limit(1)
    )
    if current.tags:
        related = session.scalar(base.where(or_(*(_has_tag(t) for t in current.tags))))
        if related is not None:
            return related
    return session.scalar(base)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------
def report_topic(engine: Engine, slug: str) -> int:
    """Increment the topic's report counter.  Returns the new count."""
    with unit_of_work(engine) as session:
        result = session.execute(
            update(Topic)
            .where(Topic.slug == slug)
            .values(report_count=Topic.report_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("Topic", slug)
        count = session.scalar(select(Topic.report_count).where(Topic.slug == slug))

    logger.info("Topic %s reported (count=%d)", slug, count)
    return count

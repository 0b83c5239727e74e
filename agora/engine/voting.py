"""
agora.engine.voting — Vote Transitions & Selection Rules
=========================================================

Pure calculation — no database I/O.  The voting service reads the current
state, asks this module what to do, and writes the answer inside one unit
of work.

Comment votes toggle:

    ============  =========  ===========  ===============
    existing      incoming   action       score delta
    ============  =========  ===========  ===============
    none          v          CREATE v     +v
    v             v          DELETE       -v
    a             b (a≠b)    UPDATE → b   b - a
    ============  =========  ===========  ===============
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from agora.database.models import TopicChoice, TopicStatus, TopicType
from agora.errors import ValidationError

if TYPE_CHECKING:
    from agora.database.models import Topic

VALID_VOTE_VALUES: frozenset[int] = frozenset({1, -1})


class VoteAction(enum.StrEnum):
    CREATE = "CREATE"
    DELETE = "DELETE"
    UPDATE = "UPDATE"


@dataclass(frozen=True, slots=True)
class VoteTransition:
    """What to do with the (user, comment) vote row, and by how much the
    comment's score moves.

    ``stored_value`` is the value held after the transition (``None`` once
    the vote is retracted).
    """

    action: VoteAction
    stored_value: int | None
    score_delta: int


def validate_vote_value(value: object) -> int:
    """Return *value* if it is exactly +1 or -1, else raise."""
    if isinstance(value, bool) or not isinstance(value, int) or value not in VALID_VOTE_VALUES:
        raise ValidationError("Vote value must be 1 or -1", field="value")
    return value


def resolve_comment_vote(existing: int | None, value: int) -> VoteTransition:
    """Decide the transition for a vote of *value* given the *existing* one."""
    value = validate_vote_value(value)
    if existing is None:
        return VoteTransition(VoteAction.CREATE, value, value)
    if existing == value:
        return VoteTransition(VoteAction.DELETE, None, -existing)
    return VoteTransition(VoteAction.UPDATE, value, value - existing)


# ---------------------------------------------------------------------------
# Topic votes
# ---------------------------------------------------------------------------
def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_voting_open(topic: Topic, now: datetime | None = None) -> bool:
    """ACTIVE status and *now* inside the optional voting window."""
    if topic.status != TopicStatus.ACTIVE:
        return False
    now = as_utc(now or datetime.now(UTC))
    if topic.voting_opens_at is not None and now < as_utc(topic.voting_opens_at):
        return False
    if topic.voting_closes_at is not None and now > as_utc(topic.voting_closes_at):
        return False
    return True


def effective_max_choices(topic: Topic) -> int:
    """How many options one user may hold on *topic* at the same time."""
    if topic.type != TopicType.MULTI_CHOICE or not topic.allow_multiple_votes:
        return 1
    return max(1, topic.max_choices)


def normalize_choice(choice: object) -> TopicChoice:
    """Validate a YES_NO selection."""
    try:
        return TopicChoice(str(choice).upper())
    except ValueError:
        raise ValidationError(
            "Choice must be one of YES, NO, DEPENDS", field="choice"
        ) from None


def normalize_option_selection(
    topic: Topic,
    option_ids: Iterable[int] | None,
) -> list[int]:
    """Validate a MULTI_CHOICE selection and return it de-duplicated, in
    the order first given.

    Every id must belong to *topic*; the set must be non-empty and no
    larger than :func:`effective_max_choices`.
    """
    selection: list[int] = []
    for option_id in option_ids or ():
        if option_id not in selection:
            selection.append(option_id)

    if not selection:
        raise ValidationError("Select at least one option", field="option_ids")

    valid_ids = {option.id for option in topic.options}
    unknown = [oid for oid in selection if oid not in valid_ids]
    if unknown:
        raise ValidationError(
            f"Options {unknown} do not belong to this topic", field="option_ids"
        )

    limit = effective_max_choices(topic)
    if len(selection) > limit:
        raise ValidationError(
            f"At most {limit} option(s) may be selected", field="option_ids"
        )
    return selection

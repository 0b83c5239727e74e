"""
agora.engine.achievements — Achievement Rule Evaluation
========================================================

Handler-registry implementation of the unlock predicates.  Every catalog
entry names a ``metric`` and a ``threshold``; the entry unlocks when the
registered metric handler, applied to the user's :class:`ActivitySnapshot`,
returns a value ``>= threshold``.

New kinds of achievement need only a new catalog row, or a new metric
registered with :func:`register_metric`.  The evaluator itself never
changes.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Activity snapshot — the only input predicates may look at
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ActivitySnapshot:
    """Cumulative counts for one user at evaluation time.

    Parameters
    ----------
    topics_created : Topics the user authored.
    comments_made : Comments the user posted (any status).
    topic_votes_cast : Distinct topics the user currently has a vote on.
    karma : Current karma total.
    """

    topics_created: int = 0
    comments_made: int = 0
    topic_votes_cast: int = 0
    karma: int = 0


class CatalogEntry(Protocol):
    key: str
    metric: str
    threshold: int | None
    active: bool


# ---------------------------------------------------------------------------
# Metric handlers — pure functions snapshot → int
# ---------------------------------------------------------------------------
MetricHandler = Callable[[ActivitySnapshot], int]

METRIC_HANDLERS: dict[str, MetricHandler] = {
    "topics_created": lambda s: s.topics_created,
    "comments_made": lambda s: s.comments_made,
    "topic_votes_cast": lambda s: s.topic_votes_cast,
    "karma": lambda s: s.karma,
}


def register_metric(name: str, handler: MetricHandler) -> None:
    """Add (or replace) a metric usable by catalog entries."""
    METRIC_HANDLERS[name] = handler


def is_satisfied(entry: CatalogEntry, snapshot: ActivitySnapshot) -> bool:
    """Evaluate one catalog entry's predicate.

    Unknown metrics and missing thresholds never fire.
    """
    handler = METRIC_HANDLERS.get(entry.metric)
    if handler is None or entry.threshold is None:
        return False
    return handler(snapshot) >= entry.threshold


# ---------------------------------------------------------------------------
# Main check function
# ---------------------------------------------------------------------------
def check_achievements(
    catalog: Iterable[CatalogEntry],
    snapshot: ActivitySnapshot,
    already_unlocked: set[str],
) -> list[str]:
    """Return the keys of catalog entries the user has newly satisfied.

    Entries already in *already_unlocked* and inactive entries are
    skipped.  No ordering is implied between the returned keys.
    """
    newly_unlocked: list[str] = []

    for entry in catalog:
        if entry.key in already_unlocked or not entry.active:
            continue
        if entry.metric not in METRIC_HANDLERS:
            logger.debug("Achievement %s uses unknown metric %r", entry.key, entry.metric)
            continue
        if is_satisfied(entry, snapshot):
            newly_unlocked.append(entry.key)

    return newly_unlocked

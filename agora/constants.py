"""
agora.constants — Shared Constants & Helpers
=============================================

Single source of truth for the karma point table, achievement tier
presentation, and slug generation.  Import from here instead of
duplicating in services and routes.
"""

from __future__ import annotations

import re
import unicodedata
import zlib

from agora.database.models import AchievementTier, KarmaAction

# ---------------------------------------------------------------------------
# Karma point table
# ---------------------------------------------------------------------------
KARMA_POINTS: dict[KarmaAction, int] = {
    KarmaAction.CREATE_TOPIC: 10,
    KarmaAction.CREATE_COMMENT: 5,
    KarmaAction.VOTE_ON_TOPIC: 2,
    KarmaAction.RECEIVE_COMMENT_VOTE: 1,
    KarmaAction.RECEIVE_TOPIC_VOTE: 2,
}

# ---------------------------------------------------------------------------
# Tier presentation (profile + catalog endpoints)
# ---------------------------------------------------------------------------
TIER_RANK: dict[str, int] = {
    AchievementTier.BRONZE: 1,
    AchievementTier.SILVER: 2,
    AchievementTier.GOLD: 3,
    AchievementTier.PLATINUM: 4,
}

TIER_COLORS_HEX: dict[str, str] = {
    AchievementTier.BRONZE: "#cd7f32",
    AchievementTier.SILVER: "#c0c0c0",
    AchievementTier.GOLD: "#ffd700",
    AchievementTier.PLATINUM: "#e5e4e2",
}

# ---------------------------------------------------------------------------
# Content limits
# ---------------------------------------------------------------------------
TITLE_MIN, TITLE_MAX = 5, 200
DESCRIPTION_MIN, DESCRIPTION_MAX = 20, 5000
TAGS_MIN, TAGS_MAX = 1, 5
TAG_LEN_MIN, TAG_LEN_MAX = 2, 30
COMMENT_MIN, COMMENT_MAX = 1, 3000
MAX_PAGE_SIZE = 100


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------
_NON_WORD = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def slugify(text: str) -> str:
    """Lowercase ASCII slug: diacritics stripped, spaces → hyphens.

    Titles that yield fewer than three slug characters (e.g. non-Latin
    scripts) fall back to ``topic-<crc32 in base 36>``.  Uniqueness is the
    caller's job (see :func:`agora.services.topic_service.unique_slug`).
    """
    decomposed = unicodedata.normalize("NFD", text.lower())
    ascii_text = "".join(c for c in decomposed if not unicodedata.combining(c))
    ascii_text = ascii_text.encode("ascii", "ignore").decode("ascii")
    slug = _NON_WORD.sub("", ascii_text)
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHENS.sub("-", slug).strip("-_")

    if len(slug) < 3:
        slug = f"topic-{_base36(zlib.crc32(text.encode('utf-8')))}"
    return slug


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))

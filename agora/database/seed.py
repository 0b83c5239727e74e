"""
agora.database.seed — Achievement Catalog Seeder
=================================================

The achievement catalog is externally configured data: it lives in
``agora/seeds/achievements.yaml`` and is copied into the ``achievements``
table on startup.  The engines only ever read it.

Idempotent — only inserts keys that don't already exist.  Rows edited in
the database after seeding are never overwritten.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from agora.database.models import Achievement, AchievementTier

logger = logging.getLogger(__name__)

_SEEDS_DIR = Path(__file__).resolve().parent.parent / "seeds"


def load_catalog(path: str | Path | None = None) -> list[dict[str, Any]]:
    """Load achievement definitions from YAML.

    A missing file yields an empty catalog (logged) rather than an error.
    """
    catalog_path = Path(path) if path is not None else _SEEDS_DIR / "achievements.yaml"
    if not catalog_path.exists():
        logger.warning("Achievement catalog not found: %s", catalog_path)
        return []
    with open(catalog_path, encoding="utf-8") as fh:
        return yaml.safe_load(fh) or []


def seed_achievements(engine: Engine, path: str | Path | None = None) -> int:
    """Insert catalog entries whose ``key`` is not yet in the table.

    Returns the number of rows inserted.
    """
    items = load_catalog(path)
    session = Session(engine)
    inserted = 0
    try:
        existing = set(session.scalars(select(Achievement.key)).all())
        for order, item in enumerate(items):
            if item["key"] in existing:
                continue
            session.add(Achievement(
                key=item["key"],
                name=item["name"],
                description=item.get("description"),
                icon=item.get("icon"),
                tier=AchievementTier(item.get("tier", "BRONZE")).value,
                metric=item["metric"],
                threshold=item.get("threshold"),
                sort_order=item.get("sort_order", order),
                active=item.get("active", True),
            ))
            inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d achievements.", inserted)
    return inserted

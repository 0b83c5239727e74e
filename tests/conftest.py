"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of agora.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from agora.database.models import (  # noqa: E402
    Base,
    Comment,
    Topic,
    TopicOption,
    TopicType,
    User,
)

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Agora tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in :func:`run_db`).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def seeded_engine(db_engine: Engine) -> Engine:
    """``db_engine`` with the achievement catalog loaded."""
    from agora.database.seed import seed_achievements

    seed_achievements(db_engine)
    return db_engine


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def make_user(engine: Engine, user_id: int, username: str | None = None, **kwargs) -> int:
    with Session(engine) as session:
        session.add(User(id=user_id, username=username or f"user{user_id}", karma=0, **kwargs))
        session.commit()
    return user_id


def make_topic(
    engine: Engine,
    author_id: int,
    *,
    slug: str = "is-python-fun",
    type: str = TopicType.YES_NO,
    options: list[str] | None = None,
    **kwargs,
) -> Topic:
    """Insert a topic directly (no karma, no validation)."""
    with Session(engine, expire_on_commit=False) as session:
        topic = Topic(
            slug=slug,
            title=kwargs.pop("title", "Is Python fun?"),
            description=kwargs.pop("description", "A friendly debate about Python."),
            tags=kwargs.pop("tags", ["python"]),
            type=type,
            created_by_id=author_id,
            options=[TopicOption(label=label, sort_order=i) for i, label in enumerate(options or [])],
            **kwargs,
        )
        session.add(topic)
        session.commit()
        session.refresh(topic)
        _ = topic.options
    return topic


def make_comment(engine: Engine, topic_id: int, author_id: int, content: str = "Nice point") -> int:
    with Session(engine) as session:
        comment = Comment(topic_id=topic_id, user_id=author_id, content=content, score=0)
        session.add(comment)
        session.commit()
        return comment.id


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
def make_token(sub: str = "1001", username: str = "alice", role: str = "USER") -> str:
    """Create a member JWT.  Usable as both a fixture helper and a factory."""
    import jwt

    from agora.api import deps

    return jwt.encode(
        {"sub": sub, "username": username, "role": role},
        deps.JWT_SECRET,
        algorithm=deps.JWT_ALGORITHM,
    )


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(seeded_engine: Engine):
    """FastAPI TestClient wired to the in-memory database."""
    from fastapi.testclient import TestClient

    from agora.api.main import app
    from agora.api.routes import topics as topic_routes
    from agora.config import AgoraConfig

    # Routes hold the dependency callables imported at startup; key the
    # overrides on those so a reloaded deps module doesn't break them.
    app.dependency_overrides[topic_routes.get_engine] = lambda: seeded_engine
    app.dependency_overrides[topic_routes.get_config] = lambda: AgoraConfig(
        site_name="Agora Test", api_port=8000, max_topic_options=10, default_page_size=20,
    )
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()

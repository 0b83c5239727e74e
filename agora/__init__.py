"""
Agora — Discussion & Voting Platform Backend
=============================================
Topics, threaded comments, comment and topic voting, karma, achievements,
moderation and giveaways, served as a JSON API over a relational database.

Package layout::

    agora/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Karma table, tier presentation, slug helper
    ├── errors.py          # Typed domain errors (not-found, validation, ...)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + unit of work + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Achievement catalog seeder
    ├── engine/
    │   ├── voting.py      # Vote transitions, score deltas, selection checks
    │   └── achievements.py # Activity snapshot + metric handler registry
    ├── services/
    │   ├── voting_service.py     # Comment & topic votes
    │   ├── karma_service.py      # Karma awards + achievement unlocking
    │   ├── topic_service.py      # Topic creation, listing, reports
    │   ├── comment_service.py    # Comment creation, edits, soft deletes
    │   ├── moderation_service.py # Audit-logged moderator mutations
    │   ├── giveaway_service.py   # Giveaway entries + winner draw
    │   └── user_service.py       # Profiles + leaderboard
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT → current user, DB session
        └── routes/        # Public + admin REST endpoints
"""

__version__ = "0.1.0"

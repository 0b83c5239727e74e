"""
agora.__main__ — Entry point for ``python -m agora``
=====================================================

Wiring:
1. Load .env (secrets, DATABASE_URL).
2. Load config.yaml (site settings).
3. Create the SQLAlchemy engine, ensure tables exist, seed achievements.
4. Serve the API with uvicorn (blocking).

Run with::

    python -m agora
"""

from __future__ import annotations

import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

from agora.config import load_config
from agora.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("agora")


def main() -> None:
    """Bootstrap the database and run the Agora API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    if not os.getenv("JWT_SECRET"):
        logger.critical(
            "JWT_SECRET is not set.  "
            "Copy .env.example → .env and set a strong secret."
        )
        sys.exit(1)

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded — Site: %s", cfg.site_name)

    # 3. Database + achievement catalog (idempotent).
    engine = create_db_engine()
    init_db(engine)
    engine.dispose()

    # 4. API (blocks until Ctrl+C or SIGTERM).
    uvicorn.run("agora.api.main:app", host="0.0.0.0", port=cfg.api_port, log_config=None)


if __name__ == "__main__":
    main()

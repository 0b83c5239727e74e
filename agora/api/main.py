"""
agora.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn agora.api.main:app --reload --port 8000

or ``python -m agora``, which also creates tables and seeds the catalog.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from agora.api.deps import get_engine  # noqa: E402
from agora.api.routes.admin import router as admin_router  # noqa: E402
from agora.api.routes.comments import router as comments_router  # noqa: E402
from agora.api.routes.giveaways import router as giveaways_router  # noqa: E402
from agora.api.routes.topics import router as topics_router  # noqa: E402
from agora.api.routes.users import router as users_router  # noqa: E402
from agora.errors import AgoraError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("Agora API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Agora API shutting down")


app = FastAPI(
    title="Agora API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AgoraError)
async def handle_agora_error(request: Request, exc: AgoraError) -> JSONResponse:
    """Translate typed domain errors into ``{"error", "message"}`` bodies."""
    if exc.status_code >= 409:
        logger.warning("%s %s → %s: %s", request.method, request.url.path, exc.code, exc.message)
    body = {"error": exc.code, "message": exc.message}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


# Mount routers
app.include_router(topics_router, prefix="/api")
app.include_router(comments_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(giveaways_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}

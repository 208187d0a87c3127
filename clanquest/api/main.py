"""
clanquest.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn clanquest.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from clanquest.api.auth import router as auth_router  # noqa: E402
from clanquest.api.deps import get_engine  # noqa: E402
from clanquest.api.error_handlers import setup_error_handlers  # noqa: E402
from clanquest.api.routes.campaigns import router as campaigns_router  # noqa: E402
from clanquest.api.routes.clans import router as clans_router  # noqa: E402
from clanquest.api.routes.leaderboards import router as leaderboards_router  # noqa: E402
from clanquest.api.routes.referrals import router as referrals_router  # noqa: E402
from clanquest.api.routes.users import router as users_router  # noqa: E402
from clanquest.database.engine import init_db  # noqa: E402

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
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
    """Startup/shutdown lifecycle: build the engine and create missing tables."""
    engine = app.dependency_overrides.get(get_engine, get_engine)()
    init_db(engine)
    logger.info("ClanQuest API started, engine ready (%s)", engine.url.database)
    yield
    logger.info("ClanQuest API shutting down")


app = FastAPI(
    title="ClanQuest API",
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

setup_error_handlers(app)

# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(campaigns_router, prefix="/api")
app.include_router(clans_router, prefix="/api")
app.include_router(leaderboards_router, prefix="/api")
app.include_router(referrals_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}

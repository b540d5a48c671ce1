"""
codequest.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn codequest.api.main:app --reload --port 8000
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

from codequest.api.auth import router as auth_router  # noqa: E402
from codequest.api.deps import get_config, get_engine  # noqa: E402
from codequest.api.routes.admin import router as admin_router  # noqa: E402
from codequest.api.routes.code import router as code_router  # noqa: E402
from codequest.api.routes.player import router as player_router  # noqa: E402
from codequest.api.routes.public import router as public_router  # noqa: E402
from codequest.database.engine import init_db  # noqa: E402
from codequest.runner.base import GraderUnavailable  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
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
    """Startup/shutdown lifecycle — create tables, seed defaults."""
    engine = get_engine()
    init_db(engine)
    logger.info(
        "%s API started — engine ready (%s), grader: %s",
        get_config().app_name, engine.url.database, get_config().grader_backend,
    )
    yield
    logger.info("%s API shutting down", get_config().app_name)


app = FastAPI(
    title="CodeQuest API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
@app.exception_handler(GraderUnavailable)
async def grader_unavailable_handler(request: Request, exc: GraderUnavailable) -> JSONResponse:
    logger.error("Grader unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Code execution is unavailable, try again later"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — always return JSON."""
    logger.error(
        "Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(public_router, prefix="/api")
app.include_router(player_router, prefix="/api")
app.include_router(code_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}

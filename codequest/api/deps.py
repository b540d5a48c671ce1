"""
codequest.api.deps — FastAPI dependency injection
===================================================
"""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from codequest.config import CodeQuestConfig, load_config
from codequest.database.engine import create_db_engine
from codequest.database.models import User
from codequest.runner.base import Runner
from codequest.runner.judge0 import Judge0Runner
from codequest.runner.local import LocalRunner, SandboxLimits

logger = logging.getLogger(__name__)

_WEAK_SECRETS = frozenset({
    "codequest-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> CodeQuestConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_runner() -> Runner:
    """Build the grader selected by ``grader.backend`` in config.yaml."""
    cfg = get_config()
    if cfg.grader_backend == "judge0":
        logger.info("Grading with Judge0 at %s", cfg.judge0_url)
        return Judge0Runner(
            cfg.judge0_url,
            api_key=os.getenv("JUDGE0_API_KEY") or None,
            time_limit_seconds=cfg.time_limit_seconds,
            memory_limit_mb=cfg.memory_limit_mb,
        )
    logger.info("Grading with the local sandbox")
    return LocalRunner(
        SandboxLimits(
            time_limit_seconds=cfg.time_limit_seconds,
            memory_limit_mb=cfg.memory_limit_mb,
        ),
        network_isolation=cfg.network_isolation,
    )


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
def create_token(user: User, ttl_hours: int) -> str:
    payload = {
        "sub": str(user.id),
        "exp": datetime.now(UTC) + timedelta(hours=ttl_hours),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def _user_id_from_header(authorization: str | None) -> int:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------
def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> User:
    """Validate the bearer token and load the user row.  Raises 401."""
    user_id = _user_id_from_header(authorization)
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, "User no longer exists")
        session.expunge(user)
    return user


def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> User | None:
    """Like :func:`get_current_user` but anonymous requests yield ``None``.

    A token that is present but invalid is still rejected.
    """
    if authorization is None:
        return None
    return get_current_user(authorization, engine)


def get_current_admin(user: User = Depends(get_current_user)) -> User:
    """Require ``is_admin`` on the user row.  Raises 403."""
    if not user.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return user

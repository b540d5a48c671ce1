"""
codequest.services.auth_service — Accounts & Credentials
=========================================================

Signup, login, password changes and profile edits.  Passwords are hashed
with argon2id; the plaintext never reaches the database or the logs.

Functions return ``None`` (or an error message) for expected failures so
the route layer decides the HTTP status.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import argon2
from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from codequest.constants import ProgressStatus
from codequest.database.models import User, UserProgress
from codequest.services.leaderboard_service import rank_for_xp

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,  # 64 MB
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,
)


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------
def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Check *password* against an argon2 hash.  Never raises on mismatch."""
    try:
        return _hasher.verify(password_hash, password)
    except argon2.exceptions.VerifyMismatchError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
def signup(
    engine: Engine,
    *,
    username: str,
    email: str,
    password: str,
    mobile: str | None = None,
) -> tuple[User | None, str | None]:
    """Create a player account.

    Returns ``(user, None)`` on success or ``(None, message)`` when the
    email or username is taken.
    """
    email = email.strip().lower()
    username = username.strip()
    with Session(engine, expire_on_commit=False) as session:
        if session.scalar(select(User.id).where(User.email == email)) is not None:
            return None, "User with this email already exists"
        if session.scalar(select(User.id).where(User.username == username)) is not None:
            return None, "Username already taken"

        user = User(
            username=username,
            email=email,
            mobile=mobile,
            password_hash=hash_password(password),
            last_active=datetime.now(UTC),
        )
        session.add(user)
        try:
            session.commit()
        except IntegrityError:
            # Lost a race with a concurrent signup for the same name/email
            session.rollback()
            return None, "Username or email already registered"
        session.refresh(user)
        session.expunge(user)

    logger.info("New account: %s (id=%d)", user.username, user.id)
    return user, None


def authenticate(engine: Engine, *, email: str, password: str) -> User | None:
    """Return the user for valid credentials and refresh ``last_active``.

    Login does not touch the streak; only solving activity does.
    """
    with Session(engine, expire_on_commit=False) as session:
        user = session.scalar(select(User).where(User.email == email.strip().lower()))
        if user is None or not verify_password(password, user.password_hash):
            return None
        if _hasher.check_needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)
        user.last_active = datetime.now(UTC)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user


def get_user(engine: Engine, user_id: int) -> User | None:
    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is not None:
            session.expunge(user)
        return user


def change_password(
    engine: Engine,
    *,
    user_id: int,
    current_password: str,
    new_password: str,
) -> str | None:
    """Replace the user's password.  Returns an error message or ``None``."""
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return f"New password must be at least {MIN_PASSWORD_LENGTH} characters long"
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return "User not found"
        if not verify_password(current_password, user.password_hash):
            return "Current password is incorrect"
        user.password_hash = hash_password(new_password)
        session.commit()
    logger.info("Password changed for user id=%d", user_id)
    return None


def update_profile(engine: Engine, *, user_id: int, mobile: str | None) -> User | None:
    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        user.mobile = mobile
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user


def get_profile(engine: Engine, user_id: int) -> dict | None:
    """User row plus solved count and leaderboard rank."""
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        solved = session.scalar(
            select(func.count()).select_from(UserProgress).where(
                UserProgress.user_id == user_id,
                UserProgress.status == ProgressStatus.COMPLETED.value,
            )
        ) or 0
        return {
            "user": user,
            "solved_count": solved,
            "rank": rank_for_xp(session, user.total_xp),
        }

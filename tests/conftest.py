"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of codequest.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from collections.abc import Callable  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from codequest.database.models import Base, Category, Puzzle, User  # noqa: E402
from codequest.engine.grading import GradeReport, TestCase, judge  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all CodeQuest tables.

    Uses StaticPool so the TestClient's worker threads share the same
    in-memory database.  pysqlite's own transaction handling is switched
    off and ``BEGIN`` is emitted explicitly so SAVEPOINTs behave like they
    do on PostgreSQL.  Foreign keys are enforced so ON DELETE CASCADE
    applies as it does in production.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Fake grader
# ---------------------------------------------------------------------------
class FakeRunner:
    """Runner double: grades by comparing each case to a scripted output.

    ``outputs`` maps a test input to the output the "program" prints;
    unknown inputs echo the expected value (a correct solution).  Setting
    ``compile_error`` makes every call fail before any test runs, and
    ``before_execute`` is invoked at the start of each call.
    """

    def __init__(self) -> None:
        self.outputs: dict[str, str] = {}
        self.compile_error: str | None = None
        self.before_execute: Callable[[], None] | None = None
        self.calls: list[tuple[str, str, list[TestCase]]] = []

    def execute(self, code: str, language: str, test_cases: list[TestCase]) -> GradeReport:
        self.calls.append((code, language, list(test_cases)))
        if self.before_execute is not None:
            hook, self.before_execute = self.before_execute, None
            hook()
        if self.compile_error is not None:
            return GradeReport.compile_failure(self.compile_error)
        return GradeReport(results=[
            judge(case, self.outputs.get(case.input, case.expected), runtime_ms=1.0)
            for case in test_cases
        ])

    def fail_all(self) -> None:
        """Make every subsequent test case print a wrong answer."""
        self.outputs = _AlwaysWrong()


class _AlwaysWrong(dict):
    def get(self, key, default=None):
        return "__wrong__"


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
_password_hash: str | None = None


def _test_password_hash() -> str:
    """Hash "password123" once per session; argon2 is deliberately slow."""
    global _password_hash
    if _password_hash is None:
        from codequest.services.auth_service import hash_password

        _password_hash = hash_password("password123")
    return _password_hash


def make_user(
    engine: Engine,
    username: str = "alice",
    *,
    email: str | None = None,
    total_xp: int = 0,
    streak: int = 0,
    is_admin: bool = False,
    last_active=None,
) -> int:
    """Insert a user whose XP fields satisfy the level formula."""
    from codequest.constants import current_xp_for, level_for_xp

    with Session(engine) as session:
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=_test_password_hash(),
            total_xp=total_xp,
            current_xp=current_xp_for(total_xp),
            level=level_for_xp(total_xp),
            streak=streak,
            is_admin=is_admin,
            last_active=last_active,
        )
        session.add(user)
        session.commit()
        return user.id


def make_category(engine: Engine, name: str = "Arrays") -> int:
    with Session(engine) as session:
        category = Category(name=name)
        session.add(category)
        session.commit()
        return category.id


def make_puzzle(
    engine: Engine,
    *,
    category_id: int | None = None,
    title: str = "Two Sum",
    difficulty: str = "easy",
    points: int = 100,
    unlock_level: int = 1,
    hints: list[str] | None = None,
    test_cases: list[dict] | None = None,
) -> int:
    if category_id is None:
        category_id = make_category(engine, f"Category for {title}")
    with Session(engine) as session:
        puzzle = Puzzle(
            title=title,
            description=f"{title} description",
            difficulty=difficulty,
            category_id=category_id,
            points=points,
            problem_statement=f"Solve {title}.",
            hints=hints if hints is not None else ["Think about a hash map", "Store complements"],
            starter_code={"python": "def solve(nums, target):\n    pass\n"},
            solution={"python": "def solve(nums, target):\n    return [0, 1]\n"},
            test_cases=test_cases if test_cases is not None else [
                {"input": "nums = [2,7,11,15], target = 9", "expected": "[0,1]"},
                {"input": "nums = [3,2,4], target = 6", "expected": "[1,2]"},
                {"input": "nums = [3,3], target = 6", "expected": "[0,1]", "hidden": True},
            ],
            unlock_level=unlock_level,
        )
        session.add(puzzle)
        session.commit()
        return puzzle.id


def make_token(user_id: int) -> str:
    from codequest.api.deps import create_token

    class _Subject:
        id = user_id

    return create_token(_Subject(), ttl_hours=1)


def auth_header(user_id: int) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------
@pytest.fixture
def client(db_engine: Engine, fake_runner: FakeRunner):
    """TestClient wired to the in-memory database and the fake runner."""
    from fastapi.testclient import TestClient

    from codequest.api.deps import get_engine, get_runner
    from codequest.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_runner] = lambda: fake_runner
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()

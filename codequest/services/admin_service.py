"""
codequest.services.admin_service — Admin Mutation Service Layer
================================================================

Every admin write follows the same pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSON
  5. Commit

Read-only admin views (user list, stats, audit log) live here too so the
admin router has a single service to talk to.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, time, timedelta
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from codequest.constants import DIFFICULTY_STARS, ProgressStatus
from codequest.database.models import (
    Achievement,
    AdminLog,
    AdminMessage,
    Category,
    Puzzle,
    User,
    UserProgress,
)
from codequest.services import achievement_service

logger = logging.getLogger(__name__)

# Users active within this window count as live sessions on the stats card
ACTIVE_SESSION_WINDOW = timedelta(minutes=30)

# Never copied into audit snapshots
_REDACTED_COLUMNS = frozenset({"password_hash"})


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------
def _row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        if col.name in _REDACTED_COLUMNS:
            continue
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def _log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _audited_create(engine: Engine, row: Any, *, table_name: str, actor_id: int) -> Any:
    """Generic audited CREATE: add -> flush -> log -> commit -> return."""
    with Session(engine, expire_on_commit=False) as session:
        session.add(row)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="CREATE",
            target_table=table_name,
            target_id=str(row.id),
            before=None,
            after=_row_to_dict(row),
        )
        session.commit()
        session.refresh(row)
        session.expunge(row)
        return row


def _audited_update(
    engine: Engine,
    model_cls: type,
    pk: int,
    *,
    table_name: str,
    actor_id: int,
    frozen_keys: tuple[str, ...] = ("id",),
    **kwargs: Any,
) -> Any | None:
    """Generic audited UPDATE: get -> before -> apply kwargs -> log -> commit.

    Returns the updated (expunged) object, or ``None`` if not found.
    """
    with Session(engine, expire_on_commit=False) as session:
        obj = session.get(model_cls, pk)
        if obj is None:
            return None
        before = _row_to_dict(obj)
        for key, value in kwargs.items():
            if hasattr(obj, key) and key not in frozen_keys:
                setattr(obj, key, value)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="UPDATE",
            target_table=table_name,
            target_id=str(obj.id),
            before=before,
            after=_row_to_dict(obj),
        )
        session.commit()
        session.refresh(obj)
        session.expunge(obj)
        return obj


def _audited_delete(
    engine: Engine,
    model_cls: type,
    pk: int,
    *,
    table_name: str,
    actor_id: int,
) -> bool:
    """Generic audited DELETE.  Returns ``True`` if the row existed."""
    with Session(engine) as session:
        obj = session.get(model_cls, pk)
        if obj is None:
            return False
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="DELETE",
            target_table=table_name,
            target_id=str(obj.id),
            before=_row_to_dict(obj),
            after=None,
        )
        session.delete(obj)
        session.commit()
        return True


# ---------------------------------------------------------------------------
# Puzzles
# ---------------------------------------------------------------------------
def list_puzzles(engine: Engine) -> list[Puzzle]:
    """Full puzzle rows, solutions and hidden tests included."""
    with Session(engine) as session:
        return list(session.scalars(
            select(Puzzle).order_by(Puzzle.category_id, Puzzle.sort_order, Puzzle.id)
        ).all())


def create_puzzle(
    engine: Engine,
    *,
    title: str,
    description: str,
    difficulty: str,
    category_id: int,
    points: int,
    problem_statement: str,
    test_cases: list[dict],
    stars: int | None = None,
    examples: list[dict] | None = None,
    constraints: str | None = None,
    hints: list[str] | None = None,
    starter_code: dict | None = None,
    solution: dict | None = None,
    sort_order: int = 0,
    unlock_level: int = 1,
    actor_id: int,
) -> Puzzle | None:
    """Create a puzzle.  Returns ``None`` if the category does not exist."""
    with Session(engine) as session:
        if session.get(Category, category_id) is None:
            return None

    puzzle = _audited_create(
        engine,
        Puzzle(
            title=title,
            description=description,
            difficulty=difficulty,
            category_id=category_id,
            points=points,
            stars=stars if stars is not None else DIFFICULTY_STARS.get(difficulty, 1),
            problem_statement=problem_statement,
            examples=examples or [],
            constraints=constraints,
            hints=hints or [],
            starter_code=starter_code or {},
            solution=solution or {},
            test_cases=test_cases,
            sort_order=sort_order,
            unlock_level=unlock_level,
        ),
        table_name="puzzles",
        actor_id=actor_id,
    )
    logger.info("Puzzle created: %r (id=%d) by admin %d", puzzle.title, puzzle.id, actor_id)
    return puzzle


def update_puzzle(engine: Engine, *, puzzle_id: int, actor_id: int, **kwargs: Any) -> Puzzle | None:
    return _audited_update(
        engine, Puzzle, puzzle_id,
        table_name="puzzles",
        actor_id=actor_id,
        **kwargs,
    )


def delete_puzzle(engine: Engine, *, puzzle_id: int, actor_id: int) -> bool:
    """Delete a puzzle along with its progress rows and editor sessions."""
    deleted = _audited_delete(
        engine, Puzzle, puzzle_id, table_name="puzzles", actor_id=actor_id,
    )
    if deleted:
        logger.info("Puzzle %d deleted by admin %d", puzzle_id, actor_id)
    return deleted


# ---------------------------------------------------------------------------
# Categories & achievements
# ---------------------------------------------------------------------------
def create_category(
    engine: Engine,
    *,
    name: str,
    description: str | None = None,
    icon: str = "code",
    color: str = "#6366f1",
    sort_order: int = 0,
    actor_id: int,
) -> Category:
    return _audited_create(
        engine,
        Category(
            name=name, description=description, icon=icon, color=color, sort_order=sort_order,
        ),
        table_name="categories",
        actor_id=actor_id,
    )


def create_achievement(
    engine: Engine,
    *,
    name: str,
    description: str,
    type: str,
    condition: dict,
    icon: str = "trophy",
    xp_reward: int = 0,
    sort_order: int = 0,
    active: bool = True,
    actor_id: int,
) -> Achievement:
    return _audited_create(
        engine,
        Achievement(
            name=name,
            description=description,
            icon=icon,
            type=type,
            condition=condition,
            xp_reward=xp_reward,
            sort_order=sort_order,
            active=active,
        ),
        table_name="achievements",
        actor_id=actor_id,
    )


def grant_achievement(
    engine: Engine,
    *,
    user_id: int,
    achievement_id: int,
    actor_id: int,
    reason: str | None = None,
) -> tuple[bool, str]:
    """Grant an achievement by hand and record it in the audit log."""
    success, message = achievement_service.grant_achievement(
        engine, user_id=user_id, achievement_id=achievement_id, admin_id=actor_id,
    )
    if success:
        with Session(engine) as session:
            _log_admin_action(
                session,
                actor_id=actor_id,
                action_type="GRANT",
                target_table="user_achievements",
                target_id=f"{user_id}:{achievement_id}",
                before=None,
                after={"user_id": user_id, "achievement_id": achievement_id},
                reason=reason,
            )
            session.commit()
    return success, message


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
def list_users(engine: Engine) -> list[User]:
    """All users, newest first."""
    with Session(engine) as session:
        return list(session.scalars(
            select(User).order_by(User.created_at.desc(), User.id.desc())
        ).all())


def make_admin(engine: Engine, *, user_id: int, actor_id: int) -> User | None:
    user = _audited_update(
        engine, User, user_id,
        table_name="users",
        actor_id=actor_id,
        is_admin=True,
    )
    if user is not None:
        logger.info("User %d promoted to admin by %d", user_id, actor_id)
    return user


def get_stats(engine: Engine, *, now: datetime | None = None) -> dict:
    """Headline numbers for the admin dashboard.

    ``today_solutions`` counts completions since midnight UTC;
    ``active_sessions`` counts users seen in the last 30 minutes.
    """
    now = now or datetime.now(UTC)
    midnight = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    with Session(engine) as session:
        total_users = session.scalar(select(func.count()).select_from(User)) or 0
        total_puzzles = session.scalar(select(func.count()).select_from(Puzzle)) or 0
        today_solutions = session.scalar(
            select(func.count()).select_from(UserProgress).where(
                UserProgress.status == ProgressStatus.COMPLETED.value,
                UserProgress.completed_at >= midnight,
            )
        ) or 0
        active_sessions = session.scalar(
            select(func.count()).select_from(User).where(
                User.last_active >= now - ACTIVE_SESSION_WINDOW
            )
        ) or 0
    return {
        "total_users": total_users,
        "total_puzzles": total_puzzles,
        "today_solutions": today_solutions,
        "active_sessions": active_sessions,
    }


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
def send_message(
    engine: Engine,
    *,
    to_user_id: int,
    message: str,
    actor_id: int,
) -> AdminMessage | None:
    """Store a message for *to_user_id*.  Returns ``None`` for an unknown user."""
    with Session(engine) as session:
        if session.get(User, to_user_id) is None:
            return None
    return _audited_create(
        engine,
        AdminMessage(from_admin_id=actor_id, to_user_id=to_user_id, message=message),
        table_name="admin_messages",
        actor_id=actor_id,
    )


def list_messages(engine: Engine) -> list[AdminMessage]:
    with Session(engine) as session:
        return list(session.scalars(
            select(AdminMessage).order_by(AdminMessage.sent_at.desc(), AdminMessage.id.desc())
        ).all())


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------
def get_audit_log(engine: Engine, *, page: int = 1, page_size: int = 25) -> dict:
    offset = (page - 1) * page_size
    with Session(engine) as session:
        total = session.scalar(select(func.count()).select_from(AdminLog)) or 0
        rows = session.scalars(
            select(AdminLog)
            .order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
            .offset(offset)
            .limit(page_size)
        ).all()
        return {
            "total": total,
            "page": page,
            "page_size": page_size,
            "entries": [
                {
                    "id": r.id,
                    "actor_id": r.actor_id,
                    "action_type": r.action_type,
                    "target_table": r.target_table,
                    "target_id": r.target_id,
                    "before": r.before_snapshot,
                    "after": r.after_snapshot,
                    "reason": r.reason,
                    "timestamp": r.timestamp.isoformat() if r.timestamp else None,
                }
                for r in rows
            ],
        }

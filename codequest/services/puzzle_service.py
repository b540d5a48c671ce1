"""
codequest.services.puzzle_service — Catalogue, Hints & Editor Sessions
=======================================================================

Read side of the puzzle catalogue plus the small per-player writes that do
not touch XP: hint reveals and editor autosaves.

Anything shown to players goes through :func:`public_puzzle`, which strips
reference solutions and hidden test cases.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from codequest.constants import ProgressStatus
from codequest.database.models import Category, EditorSession, Puzzle, User, UserProgress

logger = logging.getLogger(__name__)


class PuzzleLocked(Exception):
    """The player's level is below the puzzle's ``unlock_level``."""

    def __init__(self, unlock_level: int) -> None:
        super().__init__(f"Reach level {unlock_level} to unlock this puzzle")
        self.unlock_level = unlock_level


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def is_unlocked(puzzle: Puzzle, user_level: int) -> bool:
    return user_level >= puzzle.unlock_level


def public_puzzle(puzzle: Puzzle, *, detail: bool = True) -> dict:
    """Player-facing view of *puzzle*.

    The list view (``detail=False``) omits the statement and editor data.
    Hidden test cases and the reference solution are never included.
    """
    data = {
        "id": puzzle.id,
        "title": puzzle.title,
        "description": puzzle.description,
        "difficulty": puzzle.difficulty,
        "category_id": puzzle.category_id,
        "points": puzzle.points,
        "stars": puzzle.stars,
        "sort_order": puzzle.sort_order,
        "unlock_level": puzzle.unlock_level,
        "hint_count": len(puzzle.hints or []),
    }
    if detail:
        data.update({
            "problem_statement": puzzle.problem_statement,
            "examples": puzzle.examples or [],
            "constraints": puzzle.constraints,
            "starter_code": puzzle.starter_code or {},
            "test_cases": [
                {"input": tc.get("input"), "expected": tc.get("expected", tc.get("output"))}
                for tc in (puzzle.test_cases or [])
                if not tc.get("hidden")
            ],
            "hidden_test_count": sum(1 for tc in (puzzle.test_cases or []) if tc.get("hidden")),
        })
    return data


def progress_dict(progress: UserProgress | None) -> dict:
    if progress is None:
        return {
            "status": ProgressStatus.NOT_STARTED.value,
            "attempts": 0,
            "hints_used": 0,
            "time_spent": 0,
            "completed_at": None,
        }
    return {
        "status": progress.status,
        "attempts": progress.attempts,
        "hints_used": progress.hints_used,
        "time_spent": progress.time_spent,
        "language": progress.language,
        "completed_at": progress.completed_at.isoformat() if progress.completed_at else None,
    }


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------
def list_categories(engine: Engine) -> list[Category]:
    with Session(engine) as session:
        return list(session.scalars(
            select(Category).order_by(Category.sort_order, Category.id)
        ).all())


def list_puzzles(
    engine: Engine,
    *,
    user_id: int | None = None,
    category_id: int | None = None,
    difficulty: str | None = None,
) -> list[dict]:
    """Puzzle list, joined with *user_id*'s progress when given.

    Anonymous callers are treated as a level 1 player.
    """
    query = select(Puzzle).order_by(Puzzle.category_id, Puzzle.sort_order, Puzzle.id)
    if category_id is not None:
        query = query.where(Puzzle.category_id == category_id)
    if difficulty:
        query = query.where(Puzzle.difficulty == difficulty)

    with Session(engine) as session:
        puzzles = session.scalars(query).all()
        level = 1
        progress: dict[int, UserProgress] = {}
        if user_id is not None:
            user = session.get(User, user_id)
            if user is not None:
                level = user.level
                progress = {
                    p.puzzle_id: p for p in session.scalars(
                        select(UserProgress).where(UserProgress.user_id == user_id)
                    ).all()
                }

        return [
            {
                **public_puzzle(p, detail=False),
                "is_unlocked": is_unlocked(p, level),
                "progress": progress_dict(progress.get(p.id)) if user_id is not None else None,
            }
            for p in puzzles
        ]


def get_puzzle(engine: Engine, puzzle_id: int) -> Puzzle | None:
    with Session(engine) as session:
        puzzle = session.get(Puzzle, puzzle_id)
        if puzzle is not None:
            session.expunge(puzzle)
        return puzzle


# ---------------------------------------------------------------------------
# Progress rows
# ---------------------------------------------------------------------------
def get_or_create_progress(session: Session, user_id: int, puzzle_id: int) -> UserProgress:
    """Fetch the (user, puzzle) progress row, inserting it on first touch.

    A concurrent insert for the same pair trips the unique constraint inside
    the SAVEPOINT; the winner's row is then re-read.
    """
    query = select(UserProgress).where(
        UserProgress.user_id == user_id, UserProgress.puzzle_id == puzzle_id
    )
    progress = session.scalar(query)
    if progress is not None:
        return progress

    progress = UserProgress(user_id=user_id, puzzle_id=puzzle_id)
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(progress)
            session.flush()
    except IntegrityError:
        progress = session.scalar(query)
        if progress is None:
            raise
    return progress


def get_user_progress(engine: Engine, user_id: int) -> dict | None:
    """All progress rows for a player plus solved/total counts."""
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            return None
        rows = session.execute(
            select(UserProgress, Puzzle)
            .join(Puzzle, UserProgress.puzzle_id == Puzzle.id)
            .where(UserProgress.user_id == user_id)
            .order_by(UserProgress.puzzle_id)
        ).all()
        total = session.scalar(select(func.count()).select_from(Puzzle)) or 0

    solved = sum(1 for progress, _ in rows if progress.status == ProgressStatus.COMPLETED)
    return {
        "user_id": user_id,
        "solved": solved,
        "total": total,
        "progress": [
            {
                "puzzle_id": puzzle.id,
                "title": puzzle.title,
                "difficulty": puzzle.difficulty,
                "points": puzzle.points,
                **progress_dict(progress),
            }
            for progress, puzzle in rows
        ],
    }


# ---------------------------------------------------------------------------
# Hints
# ---------------------------------------------------------------------------
def reveal_hint(engine: Engine, *, user_id: int, puzzle_id: int) -> dict | None:
    """Reveal the player's next hint and count it against the puzzle.

    Returns ``None`` for an unknown puzzle.  Once every hint is revealed,
    ``hint`` is ``None`` and the counter stays put.

    Raises
    ------
    PuzzleLocked
        If the player's level is below the puzzle's unlock level.
    """
    with Session(engine) as session:
        puzzle = session.get(Puzzle, puzzle_id)
        user = session.get(User, user_id)
        if puzzle is None or user is None:
            return None
        if not is_unlocked(puzzle, user.level):
            raise PuzzleLocked(puzzle.unlock_level)

        hints = puzzle.hints or []
        progress = get_or_create_progress(session, user_id, puzzle_id)
        revealed = session.execute(
            update(UserProgress)
            .where(UserProgress.id == progress.id, UserProgress.hints_used < len(hints))
            .values(hints_used=UserProgress.hints_used + 1)
            .execution_options(synchronize_session=False)
        ).rowcount
        if revealed:
            session.execute(
                update(UserProgress)
                .where(
                    UserProgress.id == progress.id,
                    UserProgress.status == ProgressStatus.NOT_STARTED.value,
                )
                .values(status=ProgressStatus.IN_PROGRESS.value)
                .execution_options(synchronize_session=False)
            )
        hints_used = session.scalar(
            select(UserProgress.hints_used).where(UserProgress.id == progress.id)
        )
        session.commit()

        if not revealed:
            return {"hint": None, "index": None, "hints_used": hints_used, "remaining": 0}
        index = hints_used - 1
        return {
            "hint": hints[index],
            "index": index,
            "hints_used": hints_used,
            "remaining": len(hints) - hints_used,
        }


# ---------------------------------------------------------------------------
# Editor sessions
# ---------------------------------------------------------------------------
def upsert_editor_session(
    session: Session,
    *,
    user_id: int,
    puzzle_id: int,
    code: str,
    language: str,
) -> EditorSession:
    query = select(EditorSession).where(
        EditorSession.user_id == user_id, EditorSession.puzzle_id == puzzle_id
    )
    editor = session.scalar(query)
    if editor is None:
        editor = EditorSession(user_id=user_id, puzzle_id=puzzle_id, code=code, language=language)
        try:
            with session.begin_nested():
                session.add(editor)
                session.flush()
            return editor
        except IntegrityError:
            editor = session.scalar(query)
            if editor is None:
                raise
    editor.code = code
    editor.language = language
    editor.last_saved = datetime.now(UTC)
    return editor


def save_editor_session(
    engine: Engine,
    *,
    user_id: int,
    puzzle_id: int,
    code: str,
    language: str,
) -> EditorSession | None:
    with Session(engine, expire_on_commit=False) as session:
        if session.get(Puzzle, puzzle_id) is None:
            return None
        editor = upsert_editor_session(
            session, user_id=user_id, puzzle_id=puzzle_id, code=code, language=language
        )
        session.commit()
        session.refresh(editor)
        session.expunge(editor)
        return editor


def get_editor_session(engine: Engine, *, user_id: int, puzzle_id: int) -> EditorSession | None:
    with Session(engine) as session:
        editor = session.scalar(
            select(EditorSession).where(
                EditorSession.user_id == user_id, EditorSession.puzzle_id == puzzle_id
            )
        )
        if editor is not None:
            session.expunge(editor)
        return editor

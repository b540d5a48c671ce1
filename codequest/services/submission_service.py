"""
codequest.services.submission_service — Run & Submit Pipeline
==============================================================

Shared by the ``/code/run`` and ``/code/submit`` routes.

Grading happens **before** any transaction is opened: a slow or failing
grader never holds row locks, and :class:`GraderUnavailable` propagates
with nothing written.  The database work for a submission is then one
transaction:

  1. Get or create the progress row (SAVEPOINT on the unique pair)
  2. ``attempts += 1`` and accumulate ``time_spent`` (atomic increments)
  3. All tests passed → compare-and-set ``status`` to ``completed``; only
     the request whose UPDATE changed the row pays the puzzle's points
  4. Update the daily streak
  5. Evaluate achievements in a SAVEPOINT (failures are logged, never fatal)
  6. Commit

A compile/syntax error is reported back without touching the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session

from codequest.constants import ProgressStatus
from codequest.database.models import Puzzle, User, UserProgress
from codequest.engine.grading import GradeReport, parse_test_cases
from codequest.engine.progression import next_streak, status_after_run
from codequest.runner.base import Runner
from codequest.services.achievement_service import achievement_dict, evaluate_achievements
from codequest.services.puzzle_service import (
    PuzzleLocked,
    get_or_create_progress,
    is_unlocked,
    upsert_editor_session,
)
from codequest.services.xp_service import add_xp, read_xp

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SubmissionResult:
    """Grade report plus the progression side effects it caused."""

    report: GradeReport
    status: str | None = None
    attempts: int = 0
    first_completion: bool = False
    xp_gained: int = 0
    achievements: list[dict] = field(default_factory=list)
    total_xp: int | None = None
    current_xp: int | None = None
    level: int | None = None
    streak: int | None = None

    def to_dict(self, *, mask_hidden: bool = True) -> dict:
        return {
            **self.report.to_dict(mask_hidden=mask_hidden),
            "status": self.status,
            "attempts": self.attempts,
            "first_completion": self.first_completion,
            "xp_gained": self.xp_gained,
            "achievements": self.achievements,
            "user": None if self.total_xp is None else {
                "total_xp": self.total_xp,
                "current_xp": self.current_xp,
                "level": self.level,
                "streak": self.streak,
            },
        }


def _load_for_grading(
    engine: Engine,
    puzzle_id: int,
    user_id: int | None,
) -> tuple[Puzzle | None, UserProgress | None]:
    """Fetch the puzzle and the caller's progress; enforce the unlock level."""
    with Session(engine) as session:
        puzzle = session.get(Puzzle, puzzle_id)
        if puzzle is None:
            return None, None
        progress = None
        if user_id is not None:
            user = session.get(User, user_id)
            if user is None:
                return None, None
            if not is_unlocked(puzzle, user.level):
                raise PuzzleLocked(puzzle.unlock_level)
            progress = session.scalar(
                select(UserProgress).where(
                    UserProgress.user_id == user_id, UserProgress.puzzle_id == puzzle_id
                )
            )
            if progress is not None:
                session.expunge(progress)
        session.expunge(puzzle)
        return puzzle, progress


# ---------------------------------------------------------------------------
# Trial run
# ---------------------------------------------------------------------------
def run_code(
    engine: Engine,
    runner: Runner,
    *,
    puzzle_id: int,
    code: str,
    language: str,
    user_id: int | None = None,
) -> SubmissionResult | None:
    """Grade *code* against the visible test cases only.

    For a signed-in player the puzzle moves to ``in_progress`` and the
    editor session is saved; no XP or attempt is ever recorded.
    Returns ``None`` for an unknown puzzle (or user).
    """
    puzzle, _ = _load_for_grading(engine, puzzle_id, user_id)
    if puzzle is None:
        return None

    visible = [case for case in parse_test_cases(puzzle.test_cases) if not case.hidden]
    report = runner.execute(code, language, visible)
    if user_id is None:
        return SubmissionResult(report=report)

    with Session(engine) as session:
        progress = get_or_create_progress(session, user_id, puzzle_id)
        progress.status = status_after_run(progress.status)
        upsert_editor_session(
            session, user_id=user_id, puzzle_id=puzzle_id, code=code, language=language
        )
        session.commit()
        return SubmissionResult(report=report, status=progress.status, attempts=progress.attempts)


# ---------------------------------------------------------------------------
# Graded submission
# ---------------------------------------------------------------------------
def submit_code(
    engine: Engine,
    runner: Runner,
    *,
    user_id: int,
    puzzle_id: int,
    code: str,
    language: str,
    time_spent: int = 0,
    now: datetime | None = None,
) -> SubmissionResult | None:
    """Grade *code* against every test case and apply progression.

    Returns ``None`` for an unknown puzzle or user.

    Raises
    ------
    PuzzleLocked
        If the player's level is below the puzzle's unlock level.
    GraderUnavailable
        If the execution backend is down; nothing is written.
    """
    puzzle, existing = _load_for_grading(engine, puzzle_id, user_id)
    if puzzle is None:
        return None

    report = runner.execute(code, language, parse_test_cases(puzzle.test_cases))
    if report.error is not None:
        return SubmissionResult(
            report=report,
            status=existing.status if existing else ProgressStatus.NOT_STARTED.value,
            attempts=existing.attempts if existing else 0,
        )

    now = now or datetime.now(UTC)
    with Session(engine) as session:
        progress = get_or_create_progress(session, user_id, puzzle_id)
        session.execute(
            update(UserProgress)
            .where(UserProgress.id == progress.id)
            .values(
                attempts=UserProgress.attempts + 1,
                time_spent=UserProgress.time_spent + max(time_spent, 0),
            )
            .execution_options(synchronize_session=False)
        )

        first_completion = False
        xp_gained = 0
        if report.all_passed:
            changed = session.execute(
                update(UserProgress)
                .where(
                    UserProgress.id == progress.id,
                    UserProgress.status != ProgressStatus.COMPLETED.value,
                )
                .values(status=ProgressStatus.COMPLETED.value, completed_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            first_completion = changed == 1
            session.execute(
                update(UserProgress)
                .where(UserProgress.id == progress.id)
                .values(best_solution=code, language=language)
                .execution_options(synchronize_session=False)
            )
            if first_completion:
                add_xp(session, user_id, puzzle.points)
                xp_gained = puzzle.points
                logger.info(
                    "Puzzle %d completed by user %d (+%d XP)", puzzle_id, user_id, puzzle.points
                )
        else:
            session.execute(
                update(UserProgress)
                .where(
                    UserProgress.id == progress.id,
                    UserProgress.status != ProgressStatus.COMPLETED.value,
                )
                .values(status=ProgressStatus.IN_PROGRESS.value)
                .execution_options(synchronize_session=False)
            )

        streak = _touch_streak(session, user_id, now)

        unlocked: list[dict] = []
        try:
            with session.begin_nested():
                for achievement in evaluate_achievements(session, user_id):
                    unlocked.append(achievement_dict(achievement))
                    xp_gained += achievement.xp_reward
        except Exception:
            logger.exception("Achievement evaluation failed for user %d", user_id)
            unlocked = []
            xp_gained = puzzle.points if first_completion else 0

        total_xp, current_xp, level = read_xp(session, user_id)
        session.refresh(progress)
        result = SubmissionResult(
            report=report,
            status=progress.status,
            attempts=progress.attempts,
            first_completion=first_completion,
            xp_gained=xp_gained,
            achievements=unlocked,
            total_xp=total_xp,
            current_xp=current_xp,
            level=level,
            streak=streak,
        )
        session.commit()

    logger.debug(
        "Submission user=%d puzzle=%d: %d/%d passed",
        user_id, puzzle_id, report.passed_count, report.total_count,
    )
    return result


def _touch_streak(session: Session, user_id: int, now: datetime) -> int:
    row = session.execute(
        select(User.streak, User.last_active).where(User.id == user_id)
    ).one()
    streak = next_streak(row.streak, row.last_active, now)
    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(streak=streak, last_active=now)
        .execution_options(synchronize_session=False)
    )
    return streak

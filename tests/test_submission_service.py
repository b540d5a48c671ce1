"""
tests/test_submission_service.py — Run & Submit Pipeline
=========================================================
Service-level tests for submission_service: first-completion XP, level
bands, streaks, achievement unlocks, compile failures and the double
submission race.

Uses an in-memory SQLite database via the shared conftest fixtures and the
FakeRunner grader double.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from codequest.database.models import (
    Achievement,
    EditorSession,
    User,
    UserAchievement,
    UserProgress,
)
from codequest.runner.base import GraderUnavailable
from codequest.services import submission_service
from codequest.services.puzzle_service import PuzzleLocked
from conftest import make_puzzle, make_user

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def engine(db_engine):
    """Re-use the shared conftest db_engine (SQLite, StaticPool)."""
    return db_engine


def _submit(engine, runner, user_id, puzzle_id, *, now=NOW, **kwargs):
    return submission_service.submit_code(
        engine,
        runner,
        user_id=user_id,
        puzzle_id=puzzle_id,
        code=kwargs.pop("code", "def twoSum(nums, target): ..."),
        language=kwargs.pop("language", "python"),
        now=now,
        **kwargs,
    )


def _user(engine, user_id) -> User:
    with Session(engine) as session:
        user = session.get(User, user_id)
        session.expunge(user)
        return user


def _progress(engine, user_id, puzzle_id) -> UserProgress | None:
    with Session(engine) as session:
        progress = session.scalar(
            select(UserProgress).where(
                UserProgress.user_id == user_id, UserProgress.puzzle_id == puzzle_id
            )
        )
        if progress is not None:
            session.expunge(progress)
        return progress


def _add_achievement(engine, name, metric, target, xp_reward=0, sort_order=0) -> int:
    with Session(engine) as session:
        achievement = Achievement(
            name=name,
            description=name,
            type="milestone",
            condition={"metric": metric, "target": target},
            xp_reward=xp_reward,
            sort_order=sort_order,
        )
        session.add(achievement)
        session.commit()
        return achievement.id


# ===========================================================================
# Trial runs
# ===========================================================================
class TestRunCode:
    def test_runs_visible_cases_only(self, engine, fake_runner):
        puzzle_id = make_puzzle(engine)
        result = submission_service.run_code(
            engine, fake_runner, puzzle_id=puzzle_id, code="x", language="python",
        )
        _, _, cases = fake_runner.calls[0]
        assert len(cases) == 2
        assert not any(case.hidden for case in cases)
        assert result.report.all_passed
        assert result.status is None

    def test_signed_in_run_starts_puzzle_without_xp(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)
        result = submission_service.run_code(
            engine, fake_runner, puzzle_id=puzzle_id, code="print(1)",
            language="python", user_id=user_id,
        )
        assert result.status == "in_progress"
        assert result.attempts == 0
        assert _user(engine, user_id).total_xp == 0

        with Session(engine) as session:
            editor = session.scalar(select(EditorSession))
            assert editor.code == "print(1)"
            assert editor.language == "python"

    def test_run_keeps_completed_status(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)
        _submit(engine, fake_runner, user_id, puzzle_id)
        result = submission_service.run_code(
            engine, fake_runner, puzzle_id=puzzle_id, code="x",
            language="python", user_id=user_id,
        )
        assert result.status == "completed"

    def test_unknown_puzzle(self, engine, fake_runner):
        assert submission_service.run_code(
            engine, fake_runner, puzzle_id=404, code="x", language="python",
        ) is None
        assert fake_runner.calls == []


# ===========================================================================
# Submissions
# ===========================================================================
class TestSubmitCode:
    def test_first_completion_awards_points(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine, points=100)

        result = _submit(engine, fake_runner, user_id, puzzle_id, time_spent=30)

        assert result.report.all_passed
        assert result.first_completion
        assert result.xp_gained == 100
        assert result.status == "completed"
        assert result.attempts == 1
        assert (result.total_xp, result.current_xp, result.level) == (100, 100, 1)

        progress = _progress(engine, user_id, puzzle_id)
        assert progress.status == "completed"
        assert progress.completed_at is not None
        assert progress.best_solution == "def twoSum(nums, target): ..."
        assert progress.language == "python"
        assert progress.time_spent == 30

    def test_submission_grades_hidden_cases(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)
        _submit(engine, fake_runner, user_id, puzzle_id)
        _, _, cases = fake_runner.calls[0]
        assert len(cases) == 3
        assert cases[-1].hidden

    def test_resubmitting_a_solved_puzzle_awards_nothing(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine, points=100)
        _submit(engine, fake_runner, user_id, puzzle_id)

        again = _submit(engine, fake_runner, user_id, puzzle_id)

        assert not again.first_completion
        assert again.xp_gained == 0
        assert again.attempts == 2
        assert again.total_xp == 100

    def test_failed_submission_after_completion_keeps_completed(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)
        _submit(engine, fake_runner, user_id, puzzle_id)
        fake_runner.fail_all()

        result = _submit(engine, fake_runner, user_id, puzzle_id)

        assert not result.report.all_passed
        assert result.status == "completed"
        assert result.attempts == 2

    def test_failing_submission_is_in_progress(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)
        fake_runner.fail_all()

        result = _submit(engine, fake_runner, user_id, puzzle_id)

        assert result.status == "in_progress"
        assert result.attempts == 1
        assert result.xp_gained == 0
        assert result.report.passed_count == 0
        assert _progress(engine, user_id, puzzle_id).completed_at is None

    def test_partial_pass_is_not_a_completion(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)
        fake_runner.outputs = {"nums = [3,3], target = 6": "[1,0]"}

        result = _submit(engine, fake_runner, user_id, puzzle_id)

        assert result.report.passed_count == 2
        assert result.status == "in_progress"
        assert result.total_xp == 0

    def test_level_boundary(self, engine, fake_runner):
        user_id = make_user(engine, total_xp=950)
        puzzle_id = make_puzzle(engine, points=100)

        result = _submit(engine, fake_runner, user_id, puzzle_id)

        assert (result.total_xp, result.current_xp, result.level) == (1050, 50, 2)
        user = _user(engine, user_id)
        assert user.level == user.total_xp // 1000 + 1
        assert user.current_xp == user.total_xp % 1000

    def test_attempts_count_every_graded_submission(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)
        fake_runner.fail_all()
        _submit(engine, fake_runner, user_id, puzzle_id)
        _submit(engine, fake_runner, user_id, puzzle_id)
        fake_runner.outputs = {}
        result = _submit(engine, fake_runner, user_id, puzzle_id)
        assert result.attempts == 3
        assert result.first_completion


class TestCompileFailure:
    def test_compile_error_changes_nothing(self, engine, fake_runner):
        user_id = make_user(engine, total_xp=200, streak=2)
        puzzle_id = make_puzzle(engine)
        fake_runner.compile_error = "SyntaxError: invalid syntax (line 1)"

        result = _submit(engine, fake_runner, user_id, puzzle_id)

        assert result.report.error == "SyntaxError: invalid syntax (line 1)"
        assert result.status == "not_started"
        assert result.attempts == 0
        assert result.xp_gained == 0
        assert _progress(engine, user_id, puzzle_id) is None
        user = _user(engine, user_id)
        assert (user.total_xp, user.streak) == (200, 2)

    def test_compile_error_reports_existing_progress(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)
        fake_runner.fail_all()
        _submit(engine, fake_runner, user_id, puzzle_id)
        fake_runner.compile_error = "error"

        result = _submit(engine, fake_runner, user_id, puzzle_id)

        assert result.status == "in_progress"
        assert result.attempts == 1


class TestGuards:
    def test_locked_puzzle_is_rejected_before_grading(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine, unlock_level=3)
        with pytest.raises(PuzzleLocked) as exc:
            _submit(engine, fake_runner, user_id, puzzle_id)
        assert exc.value.unlock_level == 3
        assert fake_runner.calls == []

    def test_unknown_puzzle_or_user(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)
        assert _submit(engine, fake_runner, user_id, 999) is None
        assert _submit(engine, fake_runner, 999, puzzle_id) is None

    def test_grader_outage_writes_nothing(self, engine):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)

        class _DownRunner:
            def execute(self, code, language, test_cases):
                raise GraderUnavailable("Judge0 is unreachable")

        with pytest.raises(GraderUnavailable):
            _submit(engine, _DownRunner(), user_id, puzzle_id)
        assert _progress(engine, user_id, puzzle_id) is None


# ===========================================================================
# Streaks
# ===========================================================================
class TestStreaks:
    def test_first_submission_starts_streak(self, engine, fake_runner):
        user_id = make_user(engine)
        result = _submit(engine, fake_runner, user_id, make_puzzle(engine))
        assert result.streak == 1

    def test_consecutive_days_extend(self, engine, fake_runner):
        user_id = make_user(engine, streak=4, last_active=NOW - timedelta(days=1))
        result = _submit(engine, fake_runner, user_id, make_puzzle(engine))
        assert result.streak == 5

    def test_gap_resets(self, engine, fake_runner):
        user_id = make_user(engine, streak=4, last_active=NOW - timedelta(days=3))
        result = _submit(engine, fake_runner, user_id, make_puzzle(engine))
        assert result.streak == 1

    def test_failed_submission_still_counts_as_activity(self, engine, fake_runner):
        user_id = make_user(engine, streak=1, last_active=NOW - timedelta(days=1))
        fake_runner.fail_all()
        result = _submit(engine, fake_runner, user_id, make_puzzle(engine))
        assert result.streak == 2


# ===========================================================================
# Achievements
# ===========================================================================
class TestAchievementUnlocks:
    def test_first_solve_unlocks_and_pays_reward(self, engine, fake_runner):
        _add_achievement(engine, "First Steps", "puzzles_solved", 1, xp_reward=50)
        user_id = make_user(engine)

        result = _submit(engine, fake_runner, user_id, make_puzzle(engine, points=100))

        assert [a["name"] for a in result.achievements] == ["First Steps"]
        assert result.xp_gained == 150
        assert result.total_xp == 150

    def test_unlocks_are_never_duplicated(self, engine, fake_runner):
        _add_achievement(engine, "First Steps", "puzzles_solved", 1, xp_reward=50)
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine, points=100)
        _submit(engine, fake_runner, user_id, puzzle_id)

        again = _submit(engine, fake_runner, user_id, puzzle_id)

        assert again.achievements == []
        assert again.total_xp == 150
        with Session(engine) as session:
            count = session.scalar(select(func.count()).select_from(UserAchievement))
        assert count == 1

    def test_reward_xp_can_unlock_level_achievement(self, engine, fake_runner):
        _add_achievement(engine, "First Steps", "puzzles_solved", 1, xp_reward=100, sort_order=1)
        _add_achievement(engine, "Level Up", "level", 2, sort_order=2)
        user_id = make_user(engine, total_xp=850)

        result = _submit(engine, fake_runner, user_id, make_puzzle(engine, points=100))

        assert [a["name"] for a in result.achievements] == ["First Steps", "Level Up"]
        assert result.level == 2

    def test_first_try_metric(self, engine, fake_runner):
        _add_achievement(engine, "Sharpshooter", "first_try_solves", 1)
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine)
        fake_runner.fail_all()
        _submit(engine, fake_runner, user_id, puzzle_id)
        fake_runner.outputs = {}

        result = _submit(engine, fake_runner, user_id, puzzle_id)

        assert result.first_completion
        assert result.achievements == []

    def test_evaluation_failure_does_not_fail_submission(self, engine, fake_runner, monkeypatch):
        user_id = make_user(engine)

        def _boom(session, uid):
            raise RuntimeError("bad condition")

        monkeypatch.setattr(submission_service, "evaluate_achievements", _boom)
        result = _submit(engine, fake_runner, user_id, make_puzzle(engine, points=100))

        assert result.first_completion
        assert result.achievements == []
        assert result.total_xp == 100


# ===========================================================================
# Concurrency — two submissions graded before either writes
# ===========================================================================
class TestDoubleSubmission:
    def test_points_awarded_exactly_once(self, engine, fake_runner):
        user_id = make_user(engine)
        puzzle_id = make_puzzle(engine, points=100)
        inner: list = []

        # While the outer submission is "being graded", a second request
        # for the same puzzle runs to completion.
        fake_runner.before_execute = lambda: inner.append(
            _submit(engine, fake_runner, user_id, puzzle_id)
        )

        outer = _submit(engine, fake_runner, user_id, puzzle_id)

        assert inner[0].first_completion
        assert not outer.first_completion
        assert outer.xp_gained == 0
        assert _user(engine, user_id).total_xp == 100
        progress = _progress(engine, user_id, puzzle_id)
        assert progress.attempts == 2
        assert progress.status == "completed"

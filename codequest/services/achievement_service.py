"""
codequest.services.achievement_service — Achievement Persistence
=================================================================

Builds a :class:`~codequest.engine.achievements.ProgressSnapshot` from the
database, runs the pure evaluator and persists unlocks.

Every unlock is an insert into ``user_achievements`` inside a SAVEPOINT.
The composite primary key makes a second insert for the same pair fail,
which is treated as "already unlocked", so evaluating twice (or from two
requests at once) never produces a duplicate row or a second XP reward.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from codequest.constants import ProgressStatus
from codequest.database.models import Achievement, Puzzle, User, UserAchievement, UserProgress
from codequest.engine.achievements import ProgressSnapshot, check_achievements
from codequest.services.xp_service import add_xp

logger = logging.getLogger(__name__)

# XP rewards can unlock level/total_xp achievements, which can pay out again
_MAX_EVALUATION_ROUNDS = 5


def get_earned_achievement_ids(session: Session, user_id: int) -> set[int]:
    rows = session.scalars(
        select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    ).all()
    return set(rows)


def build_snapshot(session: Session, user_id: int) -> ProgressSnapshot:
    """Aggregate the player's current state for condition checks."""
    user = session.execute(
        select(User.streak, User.total_xp, User.level).where(User.id == user_id)
    ).one()

    completed = (UserProgress.user_id == user_id) & (
        UserProgress.status == ProgressStatus.COMPLETED.value
    )
    by_difficulty = {
        row.difficulty: row.cnt
        for row in session.execute(
            select(Puzzle.difficulty, func.count().label("cnt"))
            .join(UserProgress, UserProgress.puzzle_id == Puzzle.id)
            .where(completed)
            .group_by(Puzzle.difficulty)
        ).all()
    }
    first_try = session.scalar(
        select(func.count()).select_from(UserProgress)
        .where(completed, UserProgress.attempts == 1)
    ) or 0
    no_hint = session.scalar(
        select(func.count()).select_from(UserProgress)
        .where(completed, UserProgress.hints_used == 0)
    ) or 0

    return ProgressSnapshot(
        puzzles_solved=sum(by_difficulty.values()),
        streak=user.streak,
        total_xp=user.total_xp,
        level=user.level,
        solved_by_difficulty=by_difficulty,
        first_try_solves=first_try,
        no_hint_solves=no_hint,
    )


def unlock(
    session: Session,
    user_id: int,
    achievement: Achievement,
    *,
    granted_by: int | None = None,
) -> bool:
    """Insert the unlock row and pay its XP reward.

    Returns ``False`` when the pair already exists.
    """
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(UserAchievement(
                user_id=user_id,
                achievement_id=achievement.id,
                granted_by=granted_by,
            ))
            session.flush()
    except IntegrityError:
        return False

    add_xp(session, user_id, achievement.xp_reward)
    logger.info(
        "Achievement unlocked: %s → user %d (+%d XP)",
        achievement.name, user_id, achievement.xp_reward,
    )
    return True


def evaluate_achievements(session: Session, user_id: int) -> list[Achievement]:
    """Unlock every active achievement the player now satisfies.

    Runs inside the caller's transaction and returns the newly unlocked
    achievements in evaluation order.
    """
    achievements = session.scalars(
        select(Achievement)
        .where(Achievement.active.is_(True))
        .order_by(Achievement.sort_order, Achievement.id)
    ).all()
    by_id = {a.id: a for a in achievements}
    earned = get_earned_achievement_ids(session, user_id)

    unlocked: list[Achievement] = []
    for _ in range(_MAX_EVALUATION_ROUNDS):
        candidates = check_achievements(achievements, build_snapshot(session, user_id), earned)
        if not candidates:
            break
        for achievement_id in candidates:
            earned.add(achievement_id)
            if unlock(session, user_id, by_id[achievement_id]):
                unlocked.append(by_id[achievement_id])
    return unlocked


def evaluate_for_user(engine: Engine, user_id: int) -> list[Achievement] | None:
    """Standalone evaluation pass; safe to call any number of times."""
    with Session(engine, expire_on_commit=False) as session:
        if session.get(User, user_id) is None:
            return None
        unlocked = evaluate_achievements(session, user_id)
        session.commit()
        for achievement in unlocked:
            session.expunge(achievement)
        return unlocked


def grant_achievement(
    engine: Engine,
    *,
    user_id: int,
    achievement_id: int,
    admin_id: int,
) -> tuple[bool, str]:
    """Grant a specific achievement by hand (including ``manual`` ones).

    Returns (success, message).
    """
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            return False, "User not found."
        achievement = session.get(Achievement, achievement_id)
        if achievement is None:
            return False, "Achievement not found."
        if not unlock(session, user_id, achievement, granted_by=admin_id):
            return False, "User has already earned this achievement."
        session.commit()
        return True, f"Achievement '{achievement.name}' granted."


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------
def list_achievements(engine: Engine) -> list[dict]:
    """Active achievements with how many players have unlocked each."""
    with Session(engine) as session:
        achievements = session.scalars(
            select(Achievement)
            .where(Achievement.active.is_(True))
            .order_by(Achievement.sort_order, Achievement.id)
        ).all()
        counts = {
            row.achievement_id: row.cnt
            for row in session.execute(
                select(UserAchievement.achievement_id, func.count().label("cnt"))
                .group_by(UserAchievement.achievement_id)
            ).all()
        }
        return [
            {**achievement_dict(a), "unlocked_count": counts.get(a.id, 0)}
            for a in achievements
        ]


def list_user_achievements(engine: Engine, user_id: int) -> list[dict] | None:
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            return None
        rows = session.execute(
            select(UserAchievement, Achievement)
            .join(Achievement, UserAchievement.achievement_id == Achievement.id)
            .where(UserAchievement.user_id == user_id)
            .order_by(UserAchievement.unlocked_at, Achievement.id)
        ).all()
        return [
            {
                **achievement_dict(a),
                "unlocked_at": ua.unlocked_at.isoformat() if ua.unlocked_at else None,
            }
            for ua, a in rows
        ]


def achievement_dict(a: Achievement) -> dict:
    return {
        "id": a.id,
        "name": a.name,
        "description": a.description,
        "icon": a.icon,
        "type": a.type,
        "condition": a.condition,
        "xp_reward": a.xp_reward,
    }

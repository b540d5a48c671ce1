"""
codequest.services.leaderboard_service — Ranked Player Listing
===============================================================

Standard competition ranking ("1224"): players are ordered by lifetime XP,
tied players share the lowest rank and the next rank skips accordingly.
Within a tie, players are listed by id.

The profile rank (:func:`rank_for_xp`) is ``1 + number of players with
strictly more XP``, which is exactly the value ``RANK()`` assigns, so a
player sees the same number on both screens.
"""

from __future__ import annotations

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from codequest.constants import ProgressStatus
from codequest.database.models import User, UserProgress


def _solved_counts():
    return (
        select(
            UserProgress.user_id.label("user_id"),
            func.count().label("solved_count"),
        )
        .where(UserProgress.status == ProgressStatus.COMPLETED.value)
        .group_by(UserProgress.user_id)
        .subquery()
    )


def get_leaderboard(engine: Engine, *, page: int = 1, page_size: int = 10) -> dict:
    """Return one page of the ranked leaderboard."""
    page = max(page, 1)
    offset = (page - 1) * page_size
    solved = _solved_counts()
    rank_col = func.rank().over(order_by=User.total_xp.desc()).label("rank")

    with Session(engine) as session:
        total = session.scalar(select(func.count()).select_from(User)) or 0
        rows = session.execute(
            select(
                User.id,
                User.username,
                User.level,
                User.total_xp,
                User.current_xp,
                User.streak,
                func.coalesce(solved.c.solved_count, 0).label("solved_count"),
                rank_col,
            )
            .outerjoin(solved, solved.c.user_id == User.id)
            .order_by(User.total_xp.desc(), User.id)
            .offset(offset)
            .limit(page_size)
        ).all()

    return {
        "total": total,
        "page": page,
        "page_size": page_size,
        "entries": [
            {
                "rank": row.rank,
                "id": row.id,
                "username": row.username,
                "level": row.level,
                "total_xp": row.total_xp,
                "current_xp": row.current_xp,
                "streak": row.streak,
                "solved_count": row.solved_count,
            }
            for row in rows
        ],
    }


def rank_for_xp(session: Session, total_xp: int) -> int:
    ahead = session.scalar(
        select(func.count()).select_from(User).where(User.total_xp > total_xp)
    ) or 0
    return ahead + 1


def get_user_rank(engine: Engine, user_id: int) -> int | None:
    with Session(engine) as session:
        total_xp = session.scalar(select(User.total_xp).where(User.id == user_id))
        if total_xp is None:
            return None
        return rank_for_xp(session, total_xp)

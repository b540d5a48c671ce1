"""
codequest.services.xp_service — Atomic XP Mutation
===================================================

The only code path that changes a player's XP.  XP, in-level XP and level
are rewritten in one ``UPDATE`` computed from the row's current value, so
two concurrent awards can never lose an update and the
``level == total_xp // 1000 + 1`` invariant holds after every statement.
"""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from codequest.constants import XP_PER_LEVEL
from codequest.database.models import User


def add_xp(session: Session, user_id: int, amount: int) -> None:
    """Add *amount* XP to *user_id* inside the caller's transaction.

    Issued as a Core statement; ORM copies of the user loaded earlier in the
    session are stale until refreshed.
    """
    if amount <= 0:
        return
    new_total = User.total_xp + amount
    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            total_xp=new_total,
            current_xp=new_total % XP_PER_LEVEL,
            level=new_total // XP_PER_LEVEL + 1,
        )
        .execution_options(synchronize_session=False)
    )


def read_xp(session: Session, user_id: int) -> tuple[int, int, int]:
    """Current ``(total_xp, current_xp, level)`` straight from the database."""
    row = session.execute(
        select(User.total_xp, User.current_xp, User.level).where(User.id == user_id)
    ).one()
    return row.total_xp, row.current_xp, row.level

"""
codequest.engine.progression — Progress State Machine & Streak Rules
=====================================================================

Pure calculation — no database I/O.

Per (user, puzzle)::

    not_started ──run/failed submit──▶ in_progress ──all tests pass──▶ completed
                 └───────────────── all tests pass ─────────────────▶ completed

``completed`` is terminal: later runs and submissions never move a puzzle
back, and only the first completion pays out XP.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from codequest.constants import ProgressStatus


def status_after_run(current: str) -> str:
    """A trial run marks the puzzle as started, nothing more."""
    if current == ProgressStatus.COMPLETED:
        return current
    return ProgressStatus.IN_PROGRESS.value


def next_streak(streak: int, last_active: datetime | None, now: datetime) -> int:
    """Streak after qualifying activity at *now*.

    Calendar days are compared in the timezone of *now* (UTC in practice):
    same day keeps the streak (at least 1), the following day extends it,
    anything older restarts at 1.
    """
    if last_active is None:
        return 1
    if last_active.tzinfo is None and now.tzinfo is not None:
        last_active = last_active.replace(tzinfo=now.tzinfo)
    elif now.tzinfo is not None:
        last_active = last_active.astimezone(now.tzinfo)

    last_day: date = last_active.date()
    today: date = now.date()
    if last_day == today:
        return max(streak, 1)
    if last_day == today - timedelta(days=1):
        return streak + 1
    return 1

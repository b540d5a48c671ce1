"""
codequest.engine.achievements — Achievement Condition Pipeline
===============================================================

Handler-registry implementation for achievement condition evaluation.
Each achievement carries ``condition = {"metric": <name>, "target": <int>}``;
every metric maps to a pure function reading one value out of a
:class:`ProgressSnapshot`.  An achievement is satisfied when that value is
at least ``target``.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

# Metric reserved for admin-granted achievements; never auto-triggered
MANUAL_METRIC = "manual"


# ---------------------------------------------------------------------------
# Progress snapshot — passed to every metric handler
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    """Aggregate state of one user after the triggering event.

    Parameters
    ----------
    puzzles_solved : Number of completed progress rows.
    streak : Consecutive active days.
    total_xp : Lifetime XP.
    level : Current level.
    solved_by_difficulty : ``{"easy": n, "medium": n, "hard": n}``.
    first_try_solves : Completed puzzles solved on the first attempt.
    no_hint_solves : Completed puzzles solved without revealing a hint.
    """

    puzzles_solved: int = 0
    streak: int = 0
    total_xp: int = 0
    level: int = 1
    solved_by_difficulty: dict[str, int] = field(default_factory=dict)
    first_try_solves: int = 0
    no_hint_solves: int = 0


class AchievementLike(Protocol):
    id: int
    name: str
    condition: dict | None
    active: bool


# ---------------------------------------------------------------------------
# Metric handlers — (snapshot) → int
# ---------------------------------------------------------------------------
METRIC_HANDLERS: dict[str, Callable[[ProgressSnapshot], int]] = {
    "puzzles_solved": lambda s: s.puzzles_solved,
    "streak": lambda s: s.streak,
    "total_xp": lambda s: s.total_xp,
    "level": lambda s: s.level,
    "easy_solved": lambda s: s.solved_by_difficulty.get("easy", 0),
    "medium_solved": lambda s: s.solved_by_difficulty.get("medium", 0),
    "hard_solved": lambda s: s.solved_by_difficulty.get("hard", 0),
    "first_try_solves": lambda s: s.first_try_solves,
    "no_hint_solves": lambda s: s.no_hint_solves,
}

VALID_METRICS: frozenset[str] = frozenset(METRIC_HANDLERS) | {MANUAL_METRIC}


def condition_met(condition: dict | None, snapshot: ProgressSnapshot) -> bool:
    """Evaluate one condition.  Unknown metrics and missing targets never fire."""
    if not condition:
        return False
    handler = METRIC_HANDLERS.get(condition.get("metric", ""))
    if handler is None:
        return False
    target = condition.get("target")
    if not isinstance(target, int) or isinstance(target, bool):
        return False
    return handler(snapshot) >= target


def validate_condition(condition: dict) -> str | None:
    """Return an error message for a malformed condition, else ``None``."""
    metric = condition.get("metric")
    if metric not in VALID_METRICS:
        return f"Unknown metric {metric!r}; expected one of {', '.join(sorted(VALID_METRICS))}"
    if metric == MANUAL_METRIC:
        return None
    target = condition.get("target")
    if not isinstance(target, int) or isinstance(target, bool) or target < 1:
        return "Condition target must be a positive integer"
    return None


# ---------------------------------------------------------------------------
# Main check function
# ---------------------------------------------------------------------------
def check_achievements(
    achievements: Iterable[AchievementLike],
    snapshot: ProgressSnapshot,
    already_unlocked: set[int],
) -> list[int]:
    """Return the ids of achievements newly satisfied by *snapshot*.

    Inactive and already-unlocked achievements are skipped, so calling this
    repeatedly with the same inputs is harmless.
    """
    newly_unlocked: list[int] = []
    for achievement in achievements:
        if not achievement.active or achievement.id in already_unlocked:
            continue
        if condition_met(achievement.condition, snapshot):
            newly_unlocked.append(achievement.id)
            logger.debug("Achievement condition met: %s (id=%d)", achievement.name, achievement.id)
    return newly_unlocked

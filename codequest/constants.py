"""
codequest.constants — Shared Constants & Helpers
=================================================

Single source of truth for the leveling formula and the small enumerations
shared by models, services and API schemas.
"""

from __future__ import annotations

import enum

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------
class Difficulty(enum.StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ProgressStatus(enum.StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AchievementType(enum.StrEnum):
    PUZZLE = "puzzle"
    STREAK = "streak"
    MILESTONE = "milestone"
    SPECIAL = "special"


class Language(enum.StrEnum):
    """Languages the grader can execute."""
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    JAVA = "java"
    C = "c"


class MessageStatus(enum.StrEnum):
    SENT = "sent"
    READ = "read"


# Default star rating per difficulty (1–3)
DIFFICULTY_STARS: dict[str, int] = {
    Difficulty.EASY: 1,
    Difficulty.MEDIUM: 2,
    Difficulty.HARD: 3,
}


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
XP_PER_LEVEL = 1000


def level_for_xp(total_xp: int) -> int:
    """Level reached with *total_xp* lifetime XP (level 1 starts at 0 XP)."""
    return max(total_xp, 0) // XP_PER_LEVEL + 1


def current_xp_for(total_xp: int) -> int:
    """Progress within the current level band."""
    return max(total_xp, 0) % XP_PER_LEVEL

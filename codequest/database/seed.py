"""
codequest.database.seed — Default Content Seeder
=================================================

Baseline categories and achievements seeded on first startup so a fresh
install has something to unlock.

Idempotent — rows are matched by name and never overwritten, so admin edits
survive restarts.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select

from codequest.constants import AchievementType
from codequest.database.engine import get_session
from codequest.database.models import Achievement, Category

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default catalogue
# ---------------------------------------------------------------------------
DEFAULT_CATEGORIES: list[dict] = [
    {"name": "Arrays", "icon": "list", "color": "#6366f1", "sort_order": 1,
     "description": "Indexing, scanning and two-pointer techniques"},
    {"name": "Strings", "icon": "type", "color": "#10b981", "sort_order": 2,
     "description": "Parsing, searching and transforming text"},
    {"name": "Math", "icon": "calculator", "color": "#f59e0b", "sort_order": 3,
     "description": "Number theory and arithmetic puzzles"},
    {"name": "Dynamic Programming", "icon": "layers", "color": "#ef4444",
     "sort_order": 4, "description": "Overlapping subproblems and memoization"},
]

DEFAULT_ACHIEVEMENTS: list[dict] = [
    {"name": "First Steps", "description": "Solve your first puzzle",
     "icon": "footprints", "type": AchievementType.PUZZLE.value,
     "condition": {"metric": "puzzles_solved", "target": 1},
     "xp_reward": 50, "sort_order": 1},
    {"name": "Problem Solver", "description": "Solve 10 puzzles",
     "icon": "puzzle", "type": AchievementType.PUZZLE.value,
     "condition": {"metric": "puzzles_solved", "target": 10},
     "xp_reward": 200, "sort_order": 2},
    {"name": "Hard Hitter", "description": "Solve a hard puzzle",
     "icon": "flame", "type": AchievementType.PUZZLE.value,
     "condition": {"metric": "hard_solved", "target": 1},
     "xp_reward": 150, "sort_order": 3},
    {"name": "On a Roll", "description": "Keep a 3-day streak",
     "icon": "calendar", "type": AchievementType.STREAK.value,
     "condition": {"metric": "streak", "target": 3},
     "xp_reward": 100, "sort_order": 4},
    {"name": "Dedicated", "description": "Keep a 7-day streak",
     "icon": "calendar-check", "type": AchievementType.STREAK.value,
     "condition": {"metric": "streak", "target": 7},
     "xp_reward": 300, "sort_order": 5},
    {"name": "Level Up", "description": "Reach level 2",
     "icon": "trending-up", "type": AchievementType.MILESTONE.value,
     "condition": {"metric": "level", "target": 2},
     "xp_reward": 0, "sort_order": 6},
    {"name": "Sharpshooter", "description": "Solve a puzzle on the first attempt",
     "icon": "target", "type": AchievementType.SPECIAL.value,
     "condition": {"metric": "first_try_solves", "target": 1},
     "xp_reward": 75, "sort_order": 7},
]


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_defaults(engine: Engine) -> None:
    """Insert default categories and achievements that don't yet exist."""
    inserted = 0
    with get_session(engine) as session:
        existing_categories = set(session.scalars(select(Category.name)).all())
        for row in DEFAULT_CATEGORIES:
            if row["name"] not in existing_categories:
                session.add(Category(**row))
                inserted += 1

        existing_achievements = set(session.scalars(select(Achievement.name)).all())
        for row in DEFAULT_ACHIEVEMENTS:
            if row["name"] not in existing_achievements:
                session.add(Achievement(**row))
                inserted += 1

    if inserted:
        logger.info("Seeded %d default rows.", inserted)

"""
codequest.api.routes.public — Read-only public endpoints
==========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from codequest.api.deps import get_config, get_engine, get_optional_user
from codequest.config import CodeQuestConfig
from codequest.database.models import Category, User
from codequest.services import (
    achievement_service,
    leaderboard_service,
    puzzle_service,
)

router = APIRouter(tags=["public"])


def _category_dict(c: Category) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "description": c.description,
        "icon": c.icon,
        "color": c.color,
        "sort_order": c.sort_order,
    }


# ---------------------------------------------------------------------------
# GET /categories
# ---------------------------------------------------------------------------
@router.get("/categories")
def get_categories(engine=Depends(get_engine)):
    return {"categories": [_category_dict(c) for c in puzzle_service.list_categories(engine)]}


# ---------------------------------------------------------------------------
# GET /puzzles
# ---------------------------------------------------------------------------
@router.get("/puzzles")
def get_puzzles(
    user_id: int | None = Query(None, alias="userId"),
    category_id: int | None = Query(None, alias="categoryId"),
    difficulty: str | None = Query(None),
    viewer: User | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    """Puzzle list, joined with the caller's progress when known.

    A bearer token takes precedence over the ``userId`` query parameter.
    """
    puzzles = puzzle_service.list_puzzles(
        engine,
        user_id=viewer.id if viewer else user_id,
        category_id=category_id,
        difficulty=difficulty,
    )
    return {"puzzles": puzzles}


@router.get("/puzzles/{puzzle_id}")
def get_puzzle(puzzle_id: int, engine=Depends(get_engine)):
    puzzle = puzzle_service.get_puzzle(engine, puzzle_id)
    if puzzle is None:
        raise HTTPException(404, "Puzzle not found")
    return puzzle_service.public_puzzle(puzzle)


# ---------------------------------------------------------------------------
# GET /leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1, le=100),
    cfg: CodeQuestConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    """Players ranked by lifetime XP; ties share a rank."""
    return leaderboard_service.get_leaderboard(
        engine, page=page, page_size=page_size or cfg.leaderboard_page_size,
    )


# ---------------------------------------------------------------------------
# GET /users/{id}/progress
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/progress")
def get_user_progress(user_id: int, engine=Depends(get_engine)):
    progress = puzzle_service.get_user_progress(engine, user_id)
    if progress is None:
        raise HTTPException(404, "User not found")
    return progress


# ---------------------------------------------------------------------------
# GET /achievements
# ---------------------------------------------------------------------------
@router.get("/achievements")
def get_achievements(engine=Depends(get_engine)):
    """All active achievements with unlock counts."""
    return {"achievements": achievement_service.list_achievements(engine)}


@router.get("/achievements/user/{user_id}")
def get_user_achievements(user_id: int, engine=Depends(get_engine)):
    unlocked = achievement_service.list_user_achievements(engine, user_id)
    if unlocked is None:
        raise HTTPException(404, "User not found")
    return {"achievements": unlocked}

"""
codequest.api.routes.admin — Admin CRUD endpoints (JWT‑protected)
==================================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError

from codequest.api.auth import user_dict
from codequest.api.deps import get_current_admin, get_engine
from codequest.constants import AchievementType, Difficulty, Language
from codequest.database.models import AdminMessage, Puzzle, User
from codequest.engine.achievements import validate_condition
from codequest.services import admin_service
from codequest.services.achievement_service import achievement_dict

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class PuzzleCaseIn(BaseModel):
    input: str
    expected: str
    hidden: bool = False


class ExampleIn(BaseModel):
    input: str
    output: str
    explanation: str | None = None


class PuzzleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    difficulty: Difficulty
    category_id: int
    points: int = Field(ge=0)
    stars: int | None = Field(default=None, ge=1, le=3)
    problem_statement: str = Field(min_length=1)
    examples: list[ExampleIn] = Field(default_factory=list)
    constraints: str | None = None
    hints: list[str] = Field(default_factory=list)
    starter_code: dict[Language, str] = Field(default_factory=dict)
    solution: dict[Language, str] = Field(default_factory=dict)
    test_cases: list[PuzzleCaseIn] = Field(min_length=1)
    sort_order: int = 0
    unlock_level: int = Field(default=1, ge=1)


class PuzzleUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    difficulty: Difficulty | None = None
    category_id: int | None = None
    points: int | None = Field(default=None, ge=0)
    stars: int | None = Field(default=None, ge=1, le=3)
    problem_statement: str | None = None
    examples: list[ExampleIn] | None = None
    constraints: str | None = None
    hints: list[str] | None = None
    starter_code: dict[Language, str] | None = None
    solution: dict[Language, str] | None = None
    test_cases: list[PuzzleCaseIn] | None = Field(default=None, min_length=1)
    sort_order: int | None = None
    unlock_level: int | None = Field(default=None, ge=1)


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    icon: str = "code"
    color: str = "#6366f1"
    sort_order: int = 0


class AchievementCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str
    type: AchievementType
    condition: dict[str, Any]
    icon: str = "trophy"
    xp_reward: int = Field(default=0, ge=0)
    sort_order: int = 0
    active: bool = True

    @field_validator("condition")
    @classmethod
    def _check_condition(cls, value: dict[str, Any]) -> dict[str, Any]:
        error = validate_condition(value)
        if error:
            raise ValueError(error)
        return value


class GrantAchievement(BaseModel):
    user_id: int
    achievement_id: int
    reason: str | None = None


class SendMessage(BaseModel):
    user_id: int = Field(alias="userId")
    message: str = Field(min_length=1, max_length=5000)

    model_config = {"populate_by_name": True}


class MakeAdmin(BaseModel):
    user_id: int = Field(alias="userId")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _puzzle_dict(p: Puzzle) -> dict:
    """Full admin view, solutions and hidden test cases included."""
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description,
        "difficulty": p.difficulty,
        "category_id": p.category_id,
        "points": p.points,
        "stars": p.stars,
        "problem_statement": p.problem_statement,
        "examples": p.examples,
        "constraints": p.constraints,
        "hints": p.hints,
        "starter_code": p.starter_code,
        "solution": p.solution,
        "test_cases": p.test_cases,
        "sort_order": p.sort_order,
        "unlock_level": p.unlock_level,
    }


def _message_dict(m: AdminMessage) -> dict:
    return {
        "id": m.id,
        "from_admin_id": m.from_admin_id,
        "to_user_id": m.to_user_id,
        "message": m.message,
        "status": m.status,
        "sent_at": m.sent_at.isoformat() if m.sent_at else None,
    }


def _json_fields(body: BaseModel, **dump_kwargs: Any) -> dict[str, Any]:
    """Dump a schema to plain JSON types for the JSONB columns."""
    return body.model_dump(mode="json", **dump_kwargs)


# ---------------------------------------------------------------------------
# Puzzles
# ---------------------------------------------------------------------------
@router.get("/puzzles")
def list_puzzles(admin: User = Depends(get_current_admin), engine=Depends(get_engine)):
    return {"puzzles": [_puzzle_dict(p) for p in admin_service.list_puzzles(engine)]}


@router.post("/puzzles", status_code=201)
def create_puzzle(
    body: PuzzleCreate,
    admin: User = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    puzzle = admin_service.create_puzzle(engine, **_json_fields(body), actor_id=admin.id)
    if puzzle is None:
        raise HTTPException(400, "Category not found")
    return _puzzle_dict(puzzle)


@router.patch("/puzzles/{puzzle_id}")
def update_puzzle(
    puzzle_id: int,
    body: PuzzleUpdate,
    admin: User = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    updates = {
        key: value
        for key, value in _json_fields(body, exclude_unset=True).items()
        if value is not None or key == "constraints"
    }
    if not updates:
        raise HTTPException(400, "No fields to update")
    try:
        puzzle = admin_service.update_puzzle(
            engine, puzzle_id=puzzle_id, actor_id=admin.id, **updates,
        )
    except IntegrityError:
        raise HTTPException(400, "Category not found")
    if puzzle is None:
        raise HTTPException(404, "Puzzle not found")
    return _puzzle_dict(puzzle)


@router.delete("/puzzles/{puzzle_id}")
def delete_puzzle(
    puzzle_id: int,
    admin: User = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    if not admin_service.delete_puzzle(engine, puzzle_id=puzzle_id, actor_id=admin.id):
        raise HTTPException(404, "Puzzle not found")
    return {"message": "Puzzle deleted"}


# ---------------------------------------------------------------------------
# Categories & achievements
# ---------------------------------------------------------------------------
@router.post("/categories", status_code=201)
def create_category(
    body: CategoryCreate,
    admin: User = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        category = admin_service.create_category(engine, **body.model_dump(), actor_id=admin.id)
    except IntegrityError:
        raise HTTPException(400, "A category with that name already exists")
    return {"id": category.id, "name": category.name}


@router.post("/achievements", status_code=201)
def create_achievement(
    body: AchievementCreate,
    admin: User = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        achievement = admin_service.create_achievement(
            engine, **_json_fields(body), actor_id=admin.id,
        )
    except IntegrityError:
        raise HTTPException(400, "An achievement with that name already exists")
    return achievement_dict(achievement)


@router.post("/grant-achievement")
def grant_achievement(
    body: GrantAchievement,
    admin: User = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    success, msg = admin_service.grant_achievement(
        engine,
        user_id=body.user_id,
        achievement_id=body.achievement_id,
        actor_id=admin.id,
        reason=body.reason,
    )
    if not success:
        raise HTTPException(400, msg)
    return {"message": msg}


# ---------------------------------------------------------------------------
# Users & stats
# ---------------------------------------------------------------------------
@router.get("/users")
def list_users(admin: User = Depends(get_current_admin), engine=Depends(get_engine)):
    return {"users": [user_dict(u) for u in admin_service.list_users(engine)]}


@router.get("/stats")
def get_stats(admin: User = Depends(get_current_admin), engine=Depends(get_engine)):
    return admin_service.get_stats(engine)


@router.post("/make-admin")
def make_admin(
    body: MakeAdmin,
    admin: User = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    user = admin_service.make_admin(engine, user_id=body.user_id, actor_id=admin.id)
    if user is None:
        raise HTTPException(404, "User not found")
    return {"message": f"{user.username} is now an admin", "user": user_dict(user)}


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
@router.post("/send-message", status_code=201)
def send_message(
    body: SendMessage,
    admin: User = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    msg = admin_service.send_message(
        engine, to_user_id=body.user_id, message=body.message, actor_id=admin.id,
    )
    if msg is None:
        raise HTTPException(404, "User not found")
    return _message_dict(msg)


@router.get("/messages")
def list_messages(admin: User = Depends(get_current_admin), engine=Depends(get_engine)):
    return {"messages": [_message_dict(m) for m in admin_service.list_messages(engine)]}


# ---------------------------------------------------------------------------
# Audit Log
# ---------------------------------------------------------------------------
@router.get("/audit")
def get_audit_log(
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100),
    admin: User = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """Paginated admin audit log."""
    return admin_service.get_audit_log(engine, page=page, page_size=page_size)

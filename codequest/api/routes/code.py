"""
codequest.api.routes.code — Run & submit endpoints
====================================================

Grading outcomes (compile errors, wrong answers, timeouts) are ordinary 200
responses.  A grader outage surfaces as 503 through the app-level
:class:`~codequest.runner.base.GraderUnavailable` handler.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from codequest.api.deps import get_current_user, get_engine, get_optional_user, get_runner
from codequest.constants import Language
from codequest.database.models import User
from codequest.runner.base import Runner
from codequest.services import submission_service
from codequest.services.puzzle_service import PuzzleLocked

router = APIRouter(prefix="/code", tags=["code"])

# Source size cap; keeps sandbox inputs and stored solutions bounded
MAX_CODE_LENGTH = 64 * 1024


class RunBody(BaseModel):
    code: str = Field(min_length=1, max_length=MAX_CODE_LENGTH)
    language: Language
    puzzle_id: int = Field(alias="puzzleId")

    model_config = {"populate_by_name": True}


class SubmitBody(RunBody):
    time_spent: int = Field(default=0, ge=0, alias="timeSpent")


@router.post("/run")
def run_code(
    body: RunBody,
    user: User | None = Depends(get_optional_user),
    runner: Runner = Depends(get_runner),
    engine=Depends(get_engine),
):
    """Trial run against the visible test cases; never awards XP."""
    try:
        result = submission_service.run_code(
            engine,
            runner,
            puzzle_id=body.puzzle_id,
            code=body.code,
            language=body.language.value,
            user_id=user.id if user else None,
        )
    except PuzzleLocked as exc:
        raise HTTPException(403, str(exc))
    if result is None:
        raise HTTPException(404, "Puzzle not found")
    return result.to_dict()


@router.post("/submit")
def submit_code(
    body: SubmitBody,
    user_id: int | None = Query(None, alias="userId"),
    user: User = Depends(get_current_user),
    runner: Runner = Depends(get_runner),
    engine=Depends(get_engine),
):
    """Graded submission against every test case."""
    if user_id is not None and user_id != user.id:
        raise HTTPException(403, "Cannot submit on behalf of another user")
    try:
        result = submission_service.submit_code(
            engine,
            runner,
            user_id=user.id,
            puzzle_id=body.puzzle_id,
            code=body.code,
            language=body.language.value,
            time_spent=body.time_spent,
        )
    except PuzzleLocked as exc:
        raise HTTPException(403, str(exc))
    if result is None:
        raise HTTPException(404, "Puzzle not found")
    return result.to_dict()

"""
codequest.api.routes.player — Signed-in player endpoints
==========================================================

Profile, hints, editor autosave and the admin-message inbox.  Every route
acts on the token's own user.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from codequest.api.auth import user_dict
from codequest.api.deps import get_current_user, get_engine
from codequest.constants import Language
from codequest.database.models import AdminMessage, EditorSession, User
from codequest.services import auth_service, message_service, puzzle_service
from codequest.services.puzzle_service import PuzzleLocked

router = APIRouter(tags=["player"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ProfileUpdate(BaseModel):
    mobile: str | None = Field(default=None, max_length=30)


class EditorSave(BaseModel):
    code: str = Field(max_length=64 * 1024)
    language: Language


def _editor_dict(e: EditorSession) -> dict:
    return {
        "puzzle_id": e.puzzle_id,
        "code": e.code,
        "language": e.language,
        "started_at": e.started_at.isoformat() if e.started_at else None,
        "last_saved": e.last_saved.isoformat() if e.last_saved else None,
    }


def _message_dict(m: AdminMessage) -> dict:
    return {
        "id": m.id,
        "from_admin_id": m.from_admin_id,
        "message": m.message,
        "status": m.status,
        "sent_at": m.sent_at.isoformat() if m.sent_at else None,
    }


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------
@router.get("/profile")
def get_profile(user: User = Depends(get_current_user), engine=Depends(get_engine)):
    """Account details plus solved count and leaderboard rank."""
    profile = auth_service.get_profile(engine, user.id)
    if profile is None:
        raise HTTPException(404, "User not found")
    return {
        **user_dict(profile["user"]),
        "solved_count": profile["solved_count"],
        "rank": profile["rank"],
    }


@router.patch("/profile")
def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    engine=Depends(get_engine),
):
    updated = auth_service.update_profile(engine, user_id=user.id, mobile=body.mobile)
    if updated is None:
        raise HTTPException(404, "User not found")
    return {"message": "Profile updated successfully", "user": user_dict(updated)}


# ---------------------------------------------------------------------------
# Hints
# ---------------------------------------------------------------------------
@router.post("/puzzles/{puzzle_id}/hint")
def reveal_hint(
    puzzle_id: int,
    user: User = Depends(get_current_user),
    engine=Depends(get_engine),
):
    try:
        hint = puzzle_service.reveal_hint(engine, user_id=user.id, puzzle_id=puzzle_id)
    except PuzzleLocked as exc:
        raise HTTPException(403, str(exc))
    if hint is None:
        raise HTTPException(404, "Puzzle not found")
    if hint["hint"] is None:
        raise HTTPException(400, "No more hints for this puzzle")
    return hint


# ---------------------------------------------------------------------------
# Editor sessions
# ---------------------------------------------------------------------------
@router.get("/sessions/{puzzle_id}")
def get_editor_session(
    puzzle_id: int,
    user: User = Depends(get_current_user),
    engine=Depends(get_engine),
):
    editor = puzzle_service.get_editor_session(engine, user_id=user.id, puzzle_id=puzzle_id)
    if editor is None:
        raise HTTPException(404, "No saved session")
    return _editor_dict(editor)


@router.put("/sessions/{puzzle_id}")
def save_editor_session(
    puzzle_id: int,
    body: EditorSave,
    user: User = Depends(get_current_user),
    engine=Depends(get_engine),
):
    editor = puzzle_service.save_editor_session(
        engine,
        user_id=user.id,
        puzzle_id=puzzle_id,
        code=body.code,
        language=body.language.value,
    )
    if editor is None:
        raise HTTPException(404, "Puzzle not found")
    return _editor_dict(editor)


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------
@router.get("/messages")
def get_messages(user: User = Depends(get_current_user), engine=Depends(get_engine)):
    return {"messages": [_message_dict(m) for m in message_service.list_inbox(engine, user.id)]}


@router.post("/messages/{message_id}/read")
def mark_message_read(
    message_id: int,
    user: User = Depends(get_current_user),
    engine=Depends(get_engine),
):
    msg = message_service.mark_read(engine, user_id=user.id, message_id=message_id)
    if msg is None:
        raise HTTPException(404, "Message not found")
    return _message_dict(msg)

"""
codequest.api.auth — Email/password accounts + JWT issuance
=============================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from codequest.api.deps import create_token, get_config, get_current_user, get_engine
from codequest.config import CodeQuestConfig
from codequest.constants import XP_PER_LEVEL
from codequest.database.models import User
from codequest.services import auth_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SignupBody(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(max_length=255, pattern=_EMAIL_PATTERN)
    password: str = Field(min_length=auth_service.MIN_PASSWORD_LENGTH, max_length=128)
    mobile: str | None = Field(default=None, max_length=30)


class LoginBody(BaseModel):
    email: str
    password: str


class ChangePasswordBody(BaseModel):
    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword")

    model_config = {"populate_by_name": True}


def user_dict(u: User) -> dict:
    """Public view of a user row; the password hash never leaves the API."""
    return {
        "id": u.id,
        "username": u.username,
        "email": u.email,
        "mobile": u.mobile,
        "level": u.level,
        "current_xp": u.current_xp,
        "total_xp": u.total_xp,
        "xp_for_next_level": XP_PER_LEVEL,
        "streak": u.streak,
        "is_admin": u.is_admin,
        "last_active": u.last_active.isoformat() if u.last_active else None,
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("/signup", status_code=201)
def signup(
    body: SignupBody,
    cfg: CodeQuestConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    user, error = auth_service.signup(
        engine,
        username=body.username,
        email=body.email,
        password=body.password,
        mobile=body.mobile,
    )
    if user is None:
        raise HTTPException(400, error)
    return {"token": create_token(user, cfg.token_ttl_hours), "user": user_dict(user)}


@router.post("/login")
def login(
    body: LoginBody,
    cfg: CodeQuestConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    user = auth_service.authenticate(engine, email=body.email, password=body.password)
    if user is None:
        raise HTTPException(401, "Invalid email or password")
    return {"token": create_token(user, cfg.token_ttl_hours), "user": user_dict(user)}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    """Return the authenticated user's account."""
    return user_dict(user)


@router.post("/change-password")
def change_password(
    body: ChangePasswordBody,
    user: User = Depends(get_current_user),
    engine=Depends(get_engine),
):
    error = auth_service.change_password(
        engine,
        user_id=user.id,
        current_password=body.current_password,
        new_password=body.new_password,
    )
    if error is not None:
        raise HTTPException(400, error)
    return {"message": "Password changed successfully"}

"""
codequest.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- users              — Player accounts (credentials, XP, level, streak)
- categories         — Puzzle groupings for the browser
- puzzles            — Admin-authored coding challenges with test cases
- user_progress      — One row per (user, puzzle) with status + attempts
- achievements       — Static milestone definitions with unlock conditions
- user_achievements  — Unlocked achievements (at most one per pair)
- editor_sessions    — Per (user, puzzle) autosaved editor contents
- admin_messages     — Admin → user one-way messages
- admin_log          — Append-only audit trail of admin mutations
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from codequest.constants import MessageStatus, ProgressStatus


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all CodeQuest ORM models."""


# ---------------------------------------------------------------------------
# Users — one row per player account
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    mobile: Mapped[str | None] = mapped_column(String(30), default=None)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_active: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    progress: Mapped[list[UserProgress]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    achievements: Mapped[list[UserAchievement]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_total_xp_desc", "total_xp"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r} lvl={self.level}>"


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------
class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="code")
    color: Mapped[str] = mapped_column(String(20), nullable=False, default="#6366f1")
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    puzzles: Mapped[list[Puzzle]] = relationship(back_populates="category")

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Puzzles — admin-authored challenges
# ---------------------------------------------------------------------------
class Puzzle(Base):
    """A single coding challenge.

    ``test_cases`` is an ordered list of ``{"input", "expected", "hidden"}``
    objects; ``starter_code`` and ``solution`` map a language tag to source.
    """
    __tablename__ = "puzzles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(10), nullable=False)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    stars: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    problem_statement: Mapped[str] = mapped_column(Text, nullable=False)
    examples: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    constraints: Mapped[str | None] = mapped_column(Text, default=None)
    hints: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    starter_code: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    solution: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    test_cases: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    unlock_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    category: Mapped[Category] = relationship(back_populates="puzzles")

    __table_args__ = (
        Index("ix_puzzles_category_order", "category_id", "sort_order"),
    )

    def __repr__(self) -> str:
        return f"<Puzzle id={self.id} title={self.title!r} {self.difficulty}>"


# ---------------------------------------------------------------------------
# UserProgress — per (user, puzzle) state machine row
# ---------------------------------------------------------------------------
class UserProgress(Base):
    __tablename__ = "user_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    puzzle_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("puzzles.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProgressStatus.NOT_STARTED.value
    )
    best_solution: Mapped[str | None] = mapped_column(Text, default=None)
    language: Mapped[str | None] = mapped_column(String(20), default=None)
    hints_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # seconds
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="progress")
    puzzle: Mapped[Puzzle] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "puzzle_id", name="uq_user_progress_user_puzzle"),
        Index("ix_user_progress_status_completed", "status", "completed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserProgress user={self.user_id} puzzle={self.puzzle_id} "
            f"status={self.status}>"
        )


# ---------------------------------------------------------------------------
# Achievement — static milestone definitions
# ---------------------------------------------------------------------------
class Achievement(Base):
    """Achievement definition.

    ``condition`` is ``{"metric": <name>, "target": <int>}``; see
    :mod:`codequest.engine.achievements` for the supported metrics.
    """
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="trophy")
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    condition: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    unlocked_by: Mapped[list[UserAchievement]] = relationship(
        back_populates="achievement", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Achievement id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# UserAchievement — unlocked achievements
# ---------------------------------------------------------------------------
class UserAchievement(Base):
    __tablename__ = "user_achievements"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    granted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    user: Mapped[User] = relationship(back_populates="achievements")
    achievement: Mapped[Achievement] = relationship(back_populates="unlocked_by")

    def __repr__(self) -> str:
        return f"<UserAchievement user={self.user_id} achievement={self.achievement_id}>"


# ---------------------------------------------------------------------------
# EditorSession — autosaved editor contents (not authoritative progress)
# ---------------------------------------------------------------------------
class EditorSession(Base):
    __tablename__ = "editor_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    puzzle_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("puzzles.id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    last_saved: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "puzzle_id", name="uq_editor_sessions_user_puzzle"),
    )

    def __repr__(self) -> str:
        return f"<EditorSession user={self.user_id} puzzle={self.puzzle_id}>"


# ---------------------------------------------------------------------------
# AdminMessage — admin → user messages
# ---------------------------------------------------------------------------
class AdminMessage(Base):
    __tablename__ = "admin_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_admin_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    to_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=MessageStatus.SENT.value
    )
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_messages_recipient", "to_user_id", "sent_at"),
    )

    def __repr__(self) -> str:
        return f"<AdminMessage id={self.id} to={self.to_user_id} status={self.status}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"

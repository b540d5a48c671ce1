"""
CodeQuest — Gamified Coding Practice Backend
=============================================
Users solve programming puzzles, submit solutions that are graded in a
sandbox, earn XP, unlock achievements and climb the leaderboard.
Administrators manage puzzle content and users.

Package layout::

    codequest/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Leveling formula, enumerations
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default categories + achievements
    ├── engine/
    │   ├── grading.py     # Test case verdicts + output normalization
    │   ├── progression.py # Progress state machine + streak rules
    │   └── achievements.py # Achievement condition handlers
    ├── runner/
    │   ├── base.py        # Runner protocol + GraderUnavailable
    │   ├── harness.py     # Per-language function/program harnesses
    │   ├── local.py       # Resource-capped subprocess sandbox
    │   └── judge0.py      # Remote Judge0 execution
    ├── services/
    │   ├── auth_service.py        # Signup/login/password hashing
    │   ├── puzzle_service.py      # Catalogue, hints, editor sessions
    │   ├── submission_service.py  # Run/submit → XP/level/progress
    │   ├── xp_service.py          # Atomic XP/level updates
    │   ├── achievement_service.py # Evaluate + grant achievements
    │   ├── leaderboard_service.py # Ranked users
    │   ├── message_service.py     # Player inbox
    │   └── admin_service.py       # Audit-logged admin mutations
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # Signup/login → JWT
        ├── deps.py        # Engine, runner, JWT dependencies
        └── routes/        # public, player, code and admin endpoints
"""

__version__ = "0.1.0"

"""
codequest.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for **infrastructure-only** settings (branding, token
lifetime, grader backend and sandbox limits).  Secrets such as
``DATABASE_URL``, ``JWT_SECRET`` and ``JUDGE0_API_KEY`` come from the
environment (``.env`` via python-dotenv), never from this file.

Usage::

    from codequest.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.app_name)          # "CodeQuest"
    print(cfg.grader_backend)    # "local"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

GRADER_BACKENDS = ("local", "judge0")


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CodeQuestConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default so a fresh checkout (and the test suite) runs
    without a config file.
    """

    # Identity
    app_name: str = "CodeQuest"

    # Auth
    token_ttl_hours: int = 24 * 7

    # Grader
    grader_backend: str = "local"
    time_limit_seconds: float = 5.0
    memory_limit_mb: int = 256
    judge0_url: str = "https://judge0-ce.p.rapidapi.com"
    network_isolation: bool = False

    # Dashboard
    leaderboard_page_size: int = 10


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> CodeQuestConfig:
    """Read *path* and return a :class:`CodeQuestConfig` instance.

    A missing file yields the defaults.  Unknown keys are ignored.

    Raises
    ------
    ValueError
        If ``grader.backend`` names an unsupported backend.
    """
    config_path = Path(path)
    if not config_path.exists():
        return CodeQuestConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = CodeQuestConfig()
    grader: dict = raw.get("grader") or {}

    backend = str(grader.get("backend", defaults.grader_backend)).lower()
    if backend not in GRADER_BACKENDS:
        raise ValueError(
            f"Unsupported grader backend {backend!r}; "
            f"expected one of {', '.join(GRADER_BACKENDS)}"
        )

    return CodeQuestConfig(
        app_name=raw.get("app_name", defaults.app_name),
        token_ttl_hours=int(raw.get("token_ttl_hours", defaults.token_ttl_hours)),
        grader_backend=backend,
        time_limit_seconds=float(
            grader.get("time_limit_seconds", defaults.time_limit_seconds)
        ),
        memory_limit_mb=int(grader.get("memory_limit_mb", defaults.memory_limit_mb)),
        judge0_url=str(grader.get("judge0_url", defaults.judge0_url)).rstrip("/"),
        network_isolation=bool(
            grader.get("network_isolation", defaults.network_isolation)
        ),
        leaderboard_page_size=int(
            raw.get("leaderboard_page_size", defaults.leaderboard_page_size)
        ),
    )

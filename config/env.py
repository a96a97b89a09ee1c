"""Environment variable loading helpers.

Local configuration can live in dotenv-style files next to manage.py.

Load order (existing process env vars are never overridden):
- .env
- .env.dev (only when DJANGO_ENV is dev/development/local)

In production, prefer real environment variables instead of dotenv files.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

DEV_ENVIRONMENTS = {"dev", "development", "local"}


def is_dev_environment() -> bool:
    return os.environ.get("DJANGO_ENV", "").lower() in DEV_ENVIRONMENTS


def load_env(base_dir: Path | None = None) -> None:
    """Load .env files into process environment.

    Safe to call multiple times.

    Args:
        base_dir: Project root directory (default: the parent of config/).
    """
    if base_dir is None:
        base_dir = Path(__file__).resolve().parent.parent

    load_dotenv(base_dir / ".env", override=False)

    if is_dev_environment():
        load_dotenv(base_dir / ".env.dev", override=False)


def env_bool(key: str, default: bool = False) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_int(key: str, default: int) -> int:
    value = os.environ.get(key)
    return int(value) if value not in (None, "") else default


def env_list(key: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.environ.get(key, default).split(",") if item.strip()]

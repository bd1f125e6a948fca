"""Project-level configuration and path helpers."""

import os
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
UPLOADS_DIR = DATA_DIR / "uploads"
DEFAULT_DB_PATH = DATA_DIR / "workit.db"
DEFAULT_SNAPSHOT_PATH = DATA_DIR / "workit_local.db"
DEFAULT_API_URL = "http://localhost:5001"

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)


PathLike = Union[str, Path]


def _resolve_path(env_value: PathLike | None, default: Path) -> PathLike:
    if not env_value:
        return default

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL (server repository) to an absolute path."""
    return _resolve_path(env_value, DEFAULT_DB_PATH)


def resolve_snapshot_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve WORKIT_SNAPSHOT_PATH (client-side local store) to an absolute path."""
    return _resolve_path(env_value, DEFAULT_SNAPSHOT_PATH)


def resolve_api_url(env_value: str | None = None) -> str:
    """Resolve the base URL of the messaging API, without trailing slash."""
    url = env_value or os.getenv("WORKIT_API_URL") or DEFAULT_API_URL
    return url.rstrip("/")

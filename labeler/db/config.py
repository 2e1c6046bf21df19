from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.engine import make_url


DEFAULT_SQLITE_PATH = Path("data") / "labeler.db"
DEFAULT_DATABASE_URL = f"sqlite:///{DEFAULT_SQLITE_PATH.as_posix()}"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class DBSettings:
    database_url: str
    echo: bool


def get_db_settings() -> DBSettings:
    database_url = os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL).strip() or DEFAULT_DATABASE_URL
    echo = os.environ.get("DB_ECHO", "false").strip().lower() in _TRUTHY
    return DBSettings(database_url=database_url, echo=echo)


def sqlite_path_from_url(url: str) -> Path | None:
    try:
        parsed = make_url(url)
    except Exception:
        return None
    if not parsed.drivername.startswith("sqlite"):
        return None
    db_name = parsed.database or ""
    if not db_name or db_name == ":memory:":
        return None
    return Path(db_name)


def redact_database_url(url: str) -> str:
    raw = (url or "").strip()
    if not raw:
        return ""
    try:
        return make_url(raw).render_as_string(hide_password=True)
    except Exception:
        return raw

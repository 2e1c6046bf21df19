from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_STORE_BACKEND = "db"
ALLOWED_STORE_BACKENDS = {"memory", "file", "db"}
DEFAULT_DATA_DIR = Path("data")

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AppSettings:
    store_backend: str
    data_dir: Path
    seed_defaults: bool
    api_host: str
    api_port: int
    log_level: str


def _normalize_backend(v: str) -> str:
    vv = (v or DEFAULT_STORE_BACKEND).strip().lower()
    return vv if vv in ALLOWED_STORE_BACKENDS else DEFAULT_STORE_BACKEND


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def get_settings() -> AppSettings:
    data_dir = os.environ.get("STORE_DATA_DIR", "").strip()
    return AppSettings(
        store_backend=_normalize_backend(os.environ.get("STORE_BACKEND", DEFAULT_STORE_BACKEND)),
        data_dir=Path(data_dir) if data_dir else DEFAULT_DATA_DIR,
        seed_defaults=os.environ.get("STORE_SEED_DEFAULTS", "true").strip().lower() in _TRUTHY,
        api_host=os.environ.get("API_HOST", "127.0.0.1").strip() or "127.0.0.1",
        api_port=_int_env("API_PORT", 8790),
        log_level=(os.environ.get("LOG_LEVEL", "INFO").strip() or "INFO").upper(),
    )

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from labeler.db.base import Base


def _engine_options_for_url(url: str, *, echo: bool = False) -> dict[str, Any]:
    u = (url or "").strip().lower()
    if u.startswith("postgresql"):
        return {
            "pool_pre_ping": True,
            "pool_size": 5,
            "max_overflow": 10,
            "echo": echo,
        }
    if u.startswith("sqlite"):
        # One store instance is shared by the API worker threads.
        return {"echo": echo, "connect_args": {"check_same_thread": False}}
    return {"echo": echo}


def make_engine(url: str, *, echo: bool = False, extra_options: Mapping[str, Any] | None = None) -> Engine:
    options = _engine_options_for_url(url, echo=echo)
    if extra_options:
        options.update(dict(extra_options))
    return create_engine(url, **options)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def create_schema(engine: Engine) -> None:
    # Registers the mapped tables on Base.metadata.
    from labeler.db import models  # noqa: F401

    Base.metadata.create_all(engine)

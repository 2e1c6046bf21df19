from labeler.db.base import Base
from labeler.db.config import DBSettings, get_db_settings
from labeler.db.engine import create_schema, make_engine, make_session_factory

__all__ = [
    "Base",
    "DBSettings",
    "get_db_settings",
    "make_engine",
    "make_session_factory",
    "create_schema",
]

"""Database layer for the audio cache."""

from .database import create_db_engine, init_db, make_session_factory, session_scope

__all__ = [
    "create_db_engine",
    "init_db",
    "make_session_factory",
    "session_scope",
]

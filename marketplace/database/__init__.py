"""Database engine and session helpers."""

from marketplace.database.session import get_db_session, get_db_session_sync, get_engine

__all__ = ["get_db_session", "get_db_session_sync", "get_engine"]

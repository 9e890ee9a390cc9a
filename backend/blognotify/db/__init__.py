from blognotify.db.base import Base
from blognotify.db.session import get_db, engine, SessionLocal
from blognotify.db.tables import ALL_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES"]

"""Database package"""

from app.db.base import Base
from app.db.session import SessionLocal, engine, get_db, get_session_factory

__all__ = ["Base", "SessionLocal", "engine", "get_db", "get_session_factory"]

"""SQLAlchemy ORM model for user_profiles table"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserProfile(Base):
    """
    SQLAlchemy ORM model for the user_profiles table.
    """
    __tablename__ = "user_profiles"

    # Primary key (UUID as string)
    id = Column(String(36), primary_key=True, index=True)

    # User information
    name = Column(Text, nullable=True)

    # Settings
    # IANA zone name used for day boundaries of recurring tasks
    timezone = Column(String(64), nullable=True)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserProfile(id={self.id}, timezone='{self.timezone}')>"

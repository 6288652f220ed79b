"""SQLAlchemy ORM models"""

from app.db.models.task import Task
from app.db.models.user_profile import UserProfile

__all__ = ["Task", "UserProfile"]

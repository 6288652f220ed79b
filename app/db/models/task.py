"""SQLAlchemy ORM model for tasks table"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(Base):
    """
    SQLAlchemy ORM model for the tasks table.

    A row is a standalone task, a recurrence template (recurrence_type set,
    no recurring_parent_id) or an instance (recurring_parent_id set).
    Subtask composition (parent_task_id) is independent of both.
    """
    __tablename__ = "tasks"
    __table_args__ = (
        # One instance per occurrence of a template
        UniqueConstraint("recurring_parent_id", "due_date", name="uq_tasks_recurring_parent_due_date"),
        Index("ix_tasks_user_id_status", "user_id", "status"),
        # Deleted ids are never handed out again
        {"sqlite_autoincrement": True},
    )
    
    # Primary key
    id = Column(Integer, primary_key=True, index=True)
    
    # Task information
    name = Column(String, nullable=False)
    note = Column(Text, nullable=True)
    priority = Column(Integer, nullable=True)
    status = Column(String(32), nullable=False, default="not_started")
    due_date = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    
    # Relationships
    user_id = Column(String(36), nullable=False, index=True)
    parent_task_id = Column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True
    )
    recurring_parent_id = Column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True
    )
    
    # Recurrence fields
    recurrence_type = Column(String(32), nullable=False, default="none")
    recurrence_interval = Column(Integer, nullable=True)
    recurrence_weekday = Column(Integer, nullable=True)
    recurrence_month_day = Column(Integer, nullable=True)
    recurrence_week_of_month = Column(Integer, nullable=True)
    recurrence_end_date = Column(Date, nullable=True)
    completion_based = Column(Boolean, nullable=False, default=False)
    # 生成済みの最新期日（テンプレートのみ）
    last_generated_date = Column(DateTime(timezone=True), nullable=True)
    
    # Timestamps
    created_at = Column(
        DateTime(timezone=True), 
        default=_utcnow,
        server_default=func.now(), 
        nullable=False
    )
    updated_at = Column(DateTime(timezone=True), nullable=True)
    
    def __repr__(self) -> str:
        return f"<Task(id={self.id}, name='{self.name}', status='{self.status}')>"

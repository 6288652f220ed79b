"""Declarative base for SQLAlchemy ORM models"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

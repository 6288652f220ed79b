"""User Profile domain model"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class UserProfileBase(BaseModel):
    """Base user profile fields"""
    name: Optional[str] = None
    timezone: Optional[str] = None  # IANA zone name, e.g. "Europe/Berlin"


class UserProfile(UserProfileBase):
    """Complete user profile model from database"""
    id: str  # UUID as string
    created_at: datetime
    
    class Config:
        from_attributes = True

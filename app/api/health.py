"""Health check endpoint"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Service status plus one round trip to the task database"""
    await db.execute(text("SELECT 1"))
    return {
        "status": "healthy",
        "service": "recurring-tasks-backend",
        "database": "ok",
    }

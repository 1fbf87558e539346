"""Health check endpoints"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import text
from care_scheduling.database import get_db

router = APIRouter()


@router.get("/healthz")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "care-scheduling-api"}


@router.get("/readyz")
async def readiness_check(db: Session = Depends(get_db)):
    """Readiness check with dependencies"""
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Service not ready: {str(e)}"
        )
    return {
        "status": "ready",
        "service": "care-scheduling-api",
        "dependencies": {
            "database": "healthy"
        }
    }

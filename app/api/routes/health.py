"""
Health check endpoint for deployment monitoring.
"""
from fastapi import APIRouter
from sqlalchemy import text
from app.core import config
from app.core.timeutil import utcnow
from app.db.session import SessionLocal

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_check():
    """
    Health check endpoint for deployment monitoring.

    Returns 200 with status "healthy" when the database is reachable,
    "degraded" otherwise.
    """
    status = "healthy"

    # Check database connectivity
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"
        status = "degraded"
    finally:
        db.close()

    return {
        "status": status,
        "timestamp": utcnow().isoformat(),
        "database": db_status,
        "gst_registry": "configured" if config.GST_REGISTRY_URL else "not_configured",
        "version": "1.0.0",
    }

"""
Health check endpoints
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.logging_config import LoggingConfig
from app.models.prompt import Prompt, PromptStatus

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(tags=["health"])

SERVICE_VERSION = "0.1.0"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint

    Returns:
        dict: Health status
    """
    return {
        "status": "healthy",
        "timestamp": _now(),
        "service": get_settings().app_name,
    }


@router.get("/health/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """
    Detailed health check with component status

    Returns:
        dict: Database status and a summary of the prompt library
    """
    settings = get_settings()
    health_status = {
        "status": "healthy",
        "timestamp": _now(),
        "service": settings.app_name,
        "version": SERVICE_VERSION,
        "environment": settings.app_env,
        "components": {},
    }

    try:
        db.execute(text("SELECT 1"))
        health_status["components"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful",
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        health_status["status"] = "unhealthy"
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}",
            "error": type(e).__name__,
        }
        return health_status

    try:
        live = db.query(Prompt).filter(Prompt.deleted_at.is_(None))
        health_status["components"]["prompt_library"] = {
            "status": "healthy",
            "approved": live.filter(Prompt.status == PromptStatus.APPROVED.value).count(),
            "pending": live.filter(Prompt.status == PromptStatus.PENDING.value).count(),
            "compound": live.filter(Prompt.is_compound.is_(True)).count(),
            "default_max_depth": settings.compound_default_max_depth,
            "max_nesting_depth": settings.compound_max_nesting_depth,
        }
    except Exception as e:
        logger.error(f"Prompt library health check failed: {e}", exc_info=True)
        health_status["status"] = "degraded"
        health_status["components"]["prompt_library"] = {
            "status": "error",
            "message": f"Failed to read prompt library: {str(e)}",
            "error": type(e).__name__,
        }

    return health_status


@router.get("/health/liveness")
async def liveness_check():
    """Liveness check - is the service alive?"""
    return {"status": "alive", "timestamp": _now()}

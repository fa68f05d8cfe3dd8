"""
Health check endpoints
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.orm import Session

from arcana.core.config import get_settings
from arcana.core.database import get_db
from arcana.core.logging_config import LoggingConfig
from arcana.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint

    Returns:
        dict: Health status
    """
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": get_settings().app_name,
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request, db: Session = Depends(get_db)):
    """
    Detailed health check with component status

    Returns:
        dict: Health status of the database, the LLM backend and the job runner
    """
    settings = get_settings()
    health_status = {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": settings.app_name,
        "version": "0.1.0",
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
        health_status["status"] = "unhealthy"
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}",
            "error": type(e).__name__,
        }

    runtime = getattr(request.app.state, "runtime", None)
    if runtime is not None:
        if runtime.llm is not None:
            llm_ok = await runtime.llm.health_check()
            health_status["components"]["llm"] = {
                "status": "healthy" if llm_ok else "degraded",
                "model": runtime.llm.model,
            }
            if not llm_ok and health_status["status"] == "healthy":
                health_status["status"] = "degraded"
        health_status["components"]["jobs"] = {
            "status": "healthy",
            "active": runtime.runner.active_count,
        }

    return health_status

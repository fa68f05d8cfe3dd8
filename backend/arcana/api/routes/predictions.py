"""
API routes for a user's prediction history
"""
import asyncio

from fastapi import APIRouter, Depends, Query

from arcana.api.dependencies import get_runtime
from arcana.core.errors import ApiError, ErrorCode, PersistenceError
from arcana.core.logging_config import LoggingConfig
from arcana.services.runtime import WorkflowRuntime
from arcana.utils.datetime_utils import to_iso

logger = LoggingConfig.get_logger(__name__)

router = APIRouter(prefix="/api/predictions", tags=["predictions"])


@router.get("/user/{user_id}")
async def list_user_predictions(
    user_id: str,
    limit: int = Query(50, ge=1, le=100),
    runtime: WorkflowRuntime = Depends(get_runtime),
):
    """Most recent predictions of a user, newest first"""
    user_id = user_id.strip()
    if not user_id:
        raise ApiError(ErrorCode.INVALID_REQUEST, "User ID is required")

    try:
        predictions = await asyncio.to_thread(runtime.store.list_for_user, user_id, limit)
    except PersistenceError as e:
        logger.error("Failed to fetch predictions", extra={"user_id": user_id, "error": str(e)})
        raise ApiError(ErrorCode.DATABASE_ERROR, "Failed to fetch predictions") from e

    items = [
        {
            "jobId": p.job_id,
            "question": p.question,
            "status": p.status.value,
            "createdAt": to_iso(p.created_at),
            "completedAt": to_iso(p.completed_at) if p.completed_at else None,
            "finalReading": p.final_reading,
        }
        for p in predictions
    ]
    return {"predictions": items, "total": len(items)}

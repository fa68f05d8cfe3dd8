"""
API routes for submitting predictions and polling their status
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from arcana.api.dependencies import get_runtime
from arcana.core.logging_config import LoggingConfig
from arcana.services.runtime import WorkflowRuntime

logger = LoggingConfig.get_logger(__name__)

router = APIRouter(prefix="/api/predict", tags=["predict"])


class SubmitResponse(BaseModel):
    """Accepted prediction"""
    jobId: str
    status: str
    message: str


class PredictionResult(BaseModel):
    selectedCards: Optional[List[int]] = None
    analysis: Optional[Dict[str, Any]] = None
    reading: Optional[Dict[str, Any]] = None


class PredictionError(BaseModel):
    code: str
    message: str


class StatusResponse(BaseModel):
    """Current state of a prediction"""
    jobId: str
    status: str
    question: str
    createdAt: Optional[str] = None
    completedAt: Optional[str] = None
    result: Optional[PredictionResult] = None
    error: Optional[PredictionError] = None


@router.post("", response_model=SubmitResponse)
async def submit_prediction(
    body: Any = Body(None),
    runtime: WorkflowRuntime = Depends(get_runtime),
):
    """
    Accept a question and start the reading in the background

    The body is validated by the submit handler so that every problem is
    reported in the same {field, message} format.
    """
    result = await runtime.submit_handler.submit(body)
    return result.to_dict()


@router.get("/{job_id}", responses={200: {"model": StatusResponse}})
async def get_prediction_status(
    job_id: str,
    runtime: WorkflowRuntime = Depends(get_runtime),
):
    """Latest durable state of the job"""
    return await runtime.status_handler.get_status(job_id)

"""
API routes for credit balances, history and top-ups
"""
import asyncio
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from arcana.api.dependencies import get_runtime
from arcana.core.errors import ApiError, ErrorCode, PersistenceError
from arcana.core.logging_config import LoggingConfig
from arcana.services.runtime import WorkflowRuntime

logger = LoggingConfig.get_logger(__name__)

router = APIRouter(prefix="/api/credits", tags=["credits"])


class TopUpRequest(BaseModel):
    """Credits to add to an account"""
    amount: int = Field(..., gt=0, description="Number of credits to add")
    metadata: Optional[Dict[str, Any]] = None
    idempotency_key: Optional[str] = Field(None, max_length=128)


class BalanceResponse(BaseModel):
    userId: str
    balance: int


@router.get("/{user_id}/balance", response_model=BalanceResponse)
async def get_balance(
    user_id: str,
    runtime: WorkflowRuntime = Depends(get_runtime),
):
    """Current balance of a user"""
    try:
        balance = await asyncio.to_thread(runtime.ledger.get_balance, user_id)
    except PersistenceError as e:
        raise ApiError(ErrorCode.DATABASE_ERROR, "Failed to fetch balance") from e
    return BalanceResponse(userId=user_id, balance=balance)


@router.get("/{user_id}/history")
async def get_history(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    runtime: WorkflowRuntime = Depends(get_runtime),
):
    """Transactions of a user, newest first"""
    try:
        history = await asyncio.to_thread(runtime.ledger.get_history, user_id, page, limit)
    except PersistenceError as e:
        raise ApiError(ErrorCode.DATABASE_ERROR, "Failed to fetch credit history") from e
    return {
        "transactions": [tx.to_dict() for tx in history.transactions],
        "total": history.total,
        "page": history.page,
        "limit": history.limit,
        "hasMore": history.has_more,
    }


@router.post("/{user_id}/topup")
async def top_up(
    user_id: str,
    request: TopUpRequest,
    runtime: WorkflowRuntime = Depends(get_runtime),
):
    """Add credits to a user's account"""
    try:
        transaction = await asyncio.to_thread(
            runtime.ledger.top_up,
            user_id,
            request.amount,
            request.metadata,
            request.idempotency_key,
        )
    except ValueError as e:
        raise ApiError(ErrorCode.VALIDATION_ERROR, str(e)) from e
    except PersistenceError as e:
        logger.error("Top-up failed", extra={"user_id": user_id, "error": str(e)})
        raise ApiError(ErrorCode.DATABASE_ERROR, "Failed to top up credits") from e

    logger.info("Credits topped up", extra={"user_id": user_id, "amount": request.amount})
    return {
        "userId": user_id,
        "balance": transaction.balance_after,
        "transaction": transaction.to_dict(),
    }

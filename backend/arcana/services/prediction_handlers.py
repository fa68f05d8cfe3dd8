"""
Submit and status handlers behind the /api/predict routes
"""
import asyncio
import weakref
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from arcana.core.config import Settings
from arcana.core.errors import (ApiError, ErrorCode, PersistenceError,
                                PredictionValidationError)
from arcana.core.job_id import generate_job_id, is_valid_job_id
from arcana.core.logging_config import LoggingConfig
from arcana.core.metrics import api_errors_total, predictions_submitted_total
from arcana.core.task_runner import BackgroundTaskRunner
from arcana.models.prediction import Prediction, PredictionStatus
from arcana.services.credit_ledger import CreditLedger
from arcana.services.prediction_store import PredictionStore
from arcana.services.prediction_workflow import PredictionWorkflow
from arcana.services.rate_limiter import RateLimiter
from arcana.utils.datetime_utils import to_iso

logger = LoggingConfig.get_logger(__name__)

SCHEDULING_FAILED = "SCHEDULING_FAILED"

READING_STRING_FIELDS = ("header", "reading", "final_summary", "disclaimer")
READING_LIST_FIELDS = ("cards_reading", "suggestions", "next_questions")


def validate_submission(
    body: Any,
    min_length: int = 8,
    max_length: int = 180,
) -> Tuple[str, Optional[str]]:
    """
    Check a submit body and return (question, user_id)

    Raises:
        PredictionValidationError: carrying the list of {field, message} problems
    """
    errors: List[Dict[str, str]] = []

    if not isinstance(body, dict):
        errors.append({"field": "body", "message": "Request body must be a valid object"})
        raise PredictionValidationError("Validation failed", errors)

    question = body.get("question")
    if not question:
        errors.append({"field": "question", "message": "Question is required"})
    elif not isinstance(question, str):
        errors.append({"field": "question", "message": "Question must be a string"})
    else:
        stripped = question.strip()
        if len(stripped) < min_length:
            errors.append({
                "field": "question",
                "message": f"Question must be at least {min_length} characters long",
            })
        if len(stripped) > max_length:
            errors.append({
                "field": "question",
                "message": f"Question must not exceed {max_length} characters",
            })
        if stripped != question:
            errors.append({
                "field": "question",
                "message": "Question cannot be empty or whitespace only",
            })

    user_id = None
    if "userIdentifier" in body:
        user_id = body["userIdentifier"]
        if not isinstance(user_id, str):
            errors.append({"field": "userIdentifier", "message": "User identifier must be a string"})
        elif not user_id.strip():
            errors.append({"field": "userIdentifier", "message": "User identifier cannot be empty"})

    if errors:
        raise PredictionValidationError("Validation failed", errors)
    return question, user_id


def sanitize_reading(data: Any) -> Optional[Dict[str, Any]]:
    """Keep only well-typed reading fields; None when nothing usable is left"""
    if not isinstance(data, dict) or not data:
        return None

    result: Dict[str, Any] = {}
    for key in READING_STRING_FIELDS:
        if isinstance(data.get(key), str):
            result[key] = data[key]
    for key in READING_LIST_FIELDS:
        if isinstance(data.get(key), list):
            result[key] = data[key]

    has_content = any(
        (isinstance(result.get(key), str) and result[key]) for key in READING_STRING_FIELDS
    ) or any(result.get(key) for key in READING_LIST_FIELDS)
    if not has_content:
        return None
    if isinstance(data.get("is_fallback"), bool):
        result["is_fallback"] = data["is_fallback"]
    return result


@dataclass
class SubmitResult:
    job_id: str
    status: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"jobId": self.job_id, "status": self.status, "message": self.message}


class SubmitHandler:
    """Validates a submission, creates the PENDING job and schedules the workflow"""

    def __init__(
        self,
        store: PredictionStore,
        ledger: CreditLedger,
        rate_limiter: RateLimiter,
        runner: BackgroundTaskRunner,
        workflow: PredictionWorkflow,
        settings: Settings,
    ):
        self.store = store
        self.ledger = ledger
        self.rate_limiter = rate_limiter
        self.runner = runner
        self.workflow = workflow
        self.settings = settings
        # one in-flight check-and-create per user
        self._user_locks = weakref.WeakValueDictionary()

    async def submit(self, body: Any) -> SubmitResult:
        """
        Accept a prediction request

        Args:
            body: Decoded JSON body ({question, userIdentifier?})

        Returns:
            SubmitResult with the new job id in PENDING

        Raises:
            ApiError: VALIDATION_ERROR, TOO_MANY_REQUESTS, INSUFFICIENT_CREDITS,
                DATABASE_ERROR, WORKFLOW_ERROR or INTERNAL_ERROR
        """
        try:
            return await self._submit(body)
        except ApiError as e:
            api_errors_total.labels(code=e.code.value).inc()
            raise
        except Exception as e:
            logger.error("Unexpected error while submitting prediction", exc_info=True,
                         extra={"error": str(e), "error_type": type(e).__name__})
            api_errors_total.labels(code=ErrorCode.INTERNAL_ERROR.value).inc()
            raise ApiError(ErrorCode.INTERNAL_ERROR, "Failed to process prediction request") from e

    async def _submit(self, body: Any) -> SubmitResult:
        try:
            question, user_id = validate_submission(
                body,
                min_length=self.settings.question_min_length,
                max_length=self.settings.question_max_length,
            )
        except PredictionValidationError as e:
            raise ApiError(ErrorCode.VALIDATION_ERROR, str(e), details=e.errors) from e

        job_id = generate_job_id()
        if user_id:
            async with self._lock_for(user_id):
                await self._check_user(user_id)
                await self._create(job_id, question, user_id)
        else:
            await self._create(job_id, question, None)

        try:
            self.runner.submit(job_id, lambda: self.workflow.run(job_id, question, user_id))
        except Exception as e:
            logger.error("Workflow trigger failed", exc_info=True, extra={"job_id": job_id})
            try:
                await asyncio.to_thread(self.store.mark_failed, job_id, SCHEDULING_FAILED)
            except Exception as mark_error:
                logger.error(
                    f"Could not mark unscheduled job FAILED: {mark_error}",
                    extra={"job_id": job_id},
                )
            raise ApiError(ErrorCode.WORKFLOW_ERROR, "Failed to start AI workflow") from e

        predictions_submitted_total.inc()
        logger.info("Prediction accepted", extra={"job_id": job_id, "user_id": user_id})
        return SubmitResult(
            job_id=job_id,
            status=PredictionStatus.PENDING.value,
            message=f"Prediction request received. Job ID: {job_id}",
        )

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    async def _create(self, job_id: str, question: str, user_id: Optional[str]) -> None:
        try:
            await asyncio.to_thread(self.store.create, job_id, question, user_id)
        except PersistenceError as e:
            logger.error("Failed to save prediction request", extra={"job_id": job_id, "error": str(e)})
            raise ApiError(ErrorCode.DATABASE_ERROR, "Failed to save prediction request") from e

    async def _check_user(self, user_id: str) -> None:
        """Cooldown and balance pre-check; the real debit happens after the reading"""
        try:
            decision = await asyncio.to_thread(self.rate_limiter.check, user_id)
            if not decision.allowed:
                raise ApiError(
                    ErrorCode.TOO_MANY_REQUESTS,
                    f"Please wait {decision.retry_after} seconds before asking again",
                    headers={"Retry-After": str(decision.retry_after)},
                    extra={"retryAfter": decision.retry_after},
                )

            balance = await asyncio.to_thread(self.ledger.get_balance, user_id)
        except PersistenceError as e:
            raise ApiError(ErrorCode.DATABASE_ERROR, "Failed to check account state") from e

        if balance < self.settings.reading_cost:
            raise ApiError(
                ErrorCode.INSUFFICIENT_CREDITS,
                "Not enough credits for a reading",
                details={"balance": balance, "required": self.settings.reading_cost},
            )


class StatusHandler:
    """Reports the latest durable state of a job"""

    def __init__(self, store: PredictionStore):
        self.store = store

    async def get_status(self, job_id: str) -> Dict[str, Any]:
        """
        Build the status response for job_id

        Raises:
            ApiError: INVALID_JOB_ID, PREDICTION_NOT_FOUND, DATABASE_ERROR or
                DATA_INTEGRITY_ERROR
        """
        try:
            return await self._get_status(job_id)
        except ApiError as e:
            api_errors_total.labels(code=e.code.value).inc()
            raise

    async def _get_status(self, job_id: str) -> Dict[str, Any]:
        if not is_valid_job_id(job_id):
            raise ApiError(ErrorCode.INVALID_JOB_ID, "Invalid job ID format")

        try:
            prediction = await asyncio.to_thread(self.store.get, job_id)
        except PersistenceError as e:
            logger.error("Failed to load prediction", extra={"job_id": job_id, "error": str(e)})
            raise ApiError(ErrorCode.DATABASE_ERROR, "Failed to retrieve prediction") from e

        if prediction is None:
            raise ApiError(ErrorCode.PREDICTION_NOT_FOUND, "Prediction not found")

        if prediction.job_id != job_id:
            logger.error(
                "Stored job id does not match requested id",
                extra={"job_id": job_id, "stored_job_id": prediction.job_id},
            )
            raise ApiError(ErrorCode.DATA_INTEGRITY_ERROR, "Data integrity error")

        return build_status_response(prediction)


def build_status_response(prediction: Prediction) -> Dict[str, Any]:
    """Status document: result only once work started, reading only when COMPLETED"""
    status = prediction.status
    response: Dict[str, Any] = {
        "jobId": prediction.job_id,
        "status": status.value,
        "question": prediction.question,
        "createdAt": to_iso(prediction.created_at),
    }
    if prediction.completed_at is not None:
        response["completedAt"] = to_iso(prediction.completed_at)

    if status == PredictionStatus.FAILED:
        response["error"] = {
            "code": ErrorCode.PREDICTION_FAILED.value,
            "message": "Prediction processing failed",
        }
    elif status != PredictionStatus.PENDING:
        result: Dict[str, Any] = {
            "selectedCards": prediction.selected_cards,
            "analysis": prediction.analysis_result,
        }
        if status == PredictionStatus.COMPLETED:
            result["reading"] = sanitize_reading(prediction.final_reading)
        response["result"] = result

    return response

"""
Exception taxonomy and API error codes
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ArcanaError(Exception):
    """Base class for all domain errors"""
    pass


# ---------------------------------------------------------------------------
# Input / state machine
# ---------------------------------------------------------------------------

class PredictionValidationError(ArcanaError):
    """Submitted question or user identifier is malformed"""

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidTransitionError(ArcanaError):
    """Requested status change is not allowed from the current status"""

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Invalid transition for {job_id}: {current} -> {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class TerminalStateError(InvalidTransitionError):
    """Write attempted on a prediction that is already COMPLETED or FAILED"""
    pass


class PredictionNotFoundError(ArcanaError):
    """No prediction exists for the job id"""

    def __init__(self, job_id: str):
        super().__init__(f"Prediction {job_id} not found")
        self.job_id = job_id


class DuplicateJobError(ArcanaError):
    """A job with the same key is already scheduled"""
    pass


# ---------------------------------------------------------------------------
# External stages
# ---------------------------------------------------------------------------

class TransientStageError(ArcanaError):
    """Stage failure that may succeed on retry"""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class StageTimeoutError(TransientStageError):
    """Stage call exceeded its per-attempt timeout"""
    pass


class StageTransportError(TransientStageError):
    """Stage could not reach or get a usable HTTP answer from its backend"""
    pass


class StageOutputError(TransientStageError):
    """Stage answered but its output failed the schema"""
    pass


class LLMError(ArcanaError):
    """Custom exception for LLM client errors"""
    pass


# ---------------------------------------------------------------------------
# Persistence / credits
# ---------------------------------------------------------------------------

class PersistenceError(ArcanaError):
    """Durable store could not complete a read or write"""
    pass


class LedgerError(PersistenceError):
    """Credit ledger write failed"""
    pass


class InsufficientCreditError(ArcanaError):
    """Balance is lower than the requested debit"""

    def __init__(self, user_id: str, balance: int, required: int):
        super().__init__(f"User {user_id} has {balance} credits, {required} required")
        self.user_id = user_id
        self.balance = balance
        self.required = required


class CompensationError(ArcanaError):
    """Refund after a failed completion could not be applied"""

    def __init__(self, job_id: str, user_id: str, cause: BaseException):
        super().__init__(f"Refund for {job_id} (user {user_id}) failed: {cause}")
        self.job_id = job_id
        self.user_id = user_id
        self.cause = cause


# ---------------------------------------------------------------------------
# HTTP mapping
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Error codes returned in API error bodies"""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    DATABASE_ERROR = "DATABASE_ERROR"
    WORKFLOW_ERROR = "WORKFLOW_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_JOB_ID = "INVALID_JOB_ID"
    PREDICTION_NOT_FOUND = "PREDICTION_NOT_FOUND"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"
    PREDICTION_FAILED = "PREDICTION_FAILED"


ERROR_STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.INVALID_JOB_ID: 400,
    ErrorCode.INSUFFICIENT_CREDITS: 402,
    ErrorCode.PREDICTION_NOT_FOUND: 404,
    ErrorCode.TOO_MANY_REQUESTS: 429,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.WORKFLOW_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.DATA_INTEGRITY_ERROR: 500,
}


class ApiError(ArcanaError):
    """Error that maps directly to an HTTP response"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details
        self.headers = headers
        self.extra = extra or {}

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES.get(self.code, 500)

"""
Retry executor with linear backoff

Attempt N failing waits N * base_delay before attempt N + 1. Errors are not
classified here: callers decide which failures reach the executor.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from arcana.core.errors import StageTimeoutError
from arcana.core.logging_config import LoggingConfig
from arcana.core.metrics import stage_attempts_total

logger = LoggingConfig.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try an operation and how long to wait in between"""
    max_attempts: int = 3
    base_delay: float = 1.0
    timeout: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt"""
        return attempt * self.base_delay


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "operation",
    sleep: Sleep = asyncio.sleep,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """
    Run operation until it succeeds or policy.max_attempts is reached

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Attempt count, backoff unit and optional per-attempt timeout
        label: Name used in logs and metrics
        sleep: Awaitable delay function (injected in tests)
        retry_on: Exception types worth another attempt; anything else is raised at once

    Returns:
        Result of the first successful attempt

    Raises:
        The exception of the last failed attempt
    """
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            if policy.timeout is not None:
                try:
                    result = await asyncio.wait_for(operation(), timeout=policy.timeout)
                except asyncio.TimeoutError as exc:
                    raise StageTimeoutError(label, f"timed out after {policy.timeout}s") from exc
            else:
                result = await operation()
        except Exception as e:
            last_error = e
            stage_attempts_total.labels(operation=label, outcome="error").inc()
            if not isinstance(e, retry_on):
                raise
            if attempt >= policy.max_attempts:
                logger.error(
                    f"{label} failed after {attempt} attempts",
                    extra={
                        "operation": label,
                        "attempt": attempt,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )
                break

            delay = policy.delay_for(attempt)
            logger.warning(
                f"{label} attempt {attempt}/{policy.max_attempts} failed, retrying in {delay}s",
                extra={
                    "operation": label,
                    "attempt": attempt,
                    "delay_seconds": delay,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            await sleep(delay)
            continue

        stage_attempts_total.labels(operation=label, outcome="success").inc()
        if attempt > 1:
            logger.info(
                f"{label} succeeded on attempt {attempt}",
                extra={"operation": label, "attempt": attempt}
            )
        return result

    assert last_error is not None
    raise last_error

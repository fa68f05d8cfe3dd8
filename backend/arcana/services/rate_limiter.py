"""
Per-user submission cooldown derived from stored predictions
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from arcana.core.logging_config import LoggingConfig
from arcana.core.metrics import rate_limit_rejections_total
from arcana.services.prediction_store import PredictionStore
from arcana.utils.datetime_utils import ensure_utc, utc_now

logger = LoggingConfig.get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int = 0  # whole seconds, 0 when allowed


class RateLimiter:
    """Allows one submission per user per cooldown window"""

    def __init__(self, store: PredictionStore, cooldown_seconds: int = 120):
        self.store = store
        self.cooldown_seconds = cooldown_seconds

    def check(self, user_id: str, now: Optional[datetime] = None) -> RateLimitDecision:
        """
        Decide whether user_id may submit now

        Args:
            user_id: Submitting user
            now: Reference time (defaults to current UTC time)

        Returns:
            RateLimitDecision with retry_after rounded up to whole seconds
        """
        if self.cooldown_seconds <= 0:
            return RateLimitDecision(allowed=True)

        latest = self.store.latest_for_user(user_id)
        if latest is None or latest.created_at is None:
            return RateLimitDecision(allowed=True)

        now = ensure_utc(now) if now is not None else utc_now()
        elapsed = (now - ensure_utc(latest.created_at)).total_seconds()
        remaining = self.cooldown_seconds - elapsed
        if remaining <= 0:
            return RateLimitDecision(allowed=True)

        retry_after = max(1, math.ceil(remaining))
        rate_limit_rejections_total.inc()
        logger.info(
            "Submission rate limited",
            extra={"user_id": user_id, "retry_after": retry_after, "last_job_id": latest.job_id}
        )
        return RateLimitDecision(allowed=False, retry_after=retry_after)

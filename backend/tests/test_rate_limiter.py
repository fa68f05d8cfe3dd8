"""
Tests for the per-user submission cooldown
"""
from datetime import timedelta

from arcana.core.job_id import generate_job_id
from arcana.services.rate_limiter import RateLimiter
from arcana.utils.datetime_utils import ensure_utc


def _submit(store, user_id="user-1"):
    job_id = generate_job_id()
    store.create(job_id, "Will my new job go well?", user_id)
    return ensure_utc(store.get(job_id).created_at)


def test_first_submission_allowed(store):
    decision = RateLimiter(store).check("user-1")
    assert decision.allowed
    assert decision.retry_after == 0


def test_inside_cooldown_reports_remaining_seconds(store):
    created = _submit(store)
    decision = RateLimiter(store, cooldown_seconds=120).check("user-1", now=created + timedelta(seconds=30))

    assert not decision.allowed
    assert decision.retry_after == 90


def test_remaining_seconds_round_up(store):
    created = _submit(store)
    decision = RateLimiter(store, cooldown_seconds=120).check(
        "user-1", now=created + timedelta(seconds=119, milliseconds=500)
    )
    assert not decision.allowed
    assert decision.retry_after == 1


def test_after_cooldown_allowed(store):
    created = _submit(store)
    decision = RateLimiter(store, cooldown_seconds=120).check("user-1", now=created + timedelta(seconds=120))
    assert decision.allowed


def test_other_users_unaffected(store):
    created = _submit(store, "user-1")
    decision = RateLimiter(store).check("user-2", now=created + timedelta(seconds=1))
    assert decision.allowed


def test_zero_cooldown_disables_limit(store):
    _submit(store)
    assert RateLimiter(store, cooldown_seconds=0).check("user-1").allowed

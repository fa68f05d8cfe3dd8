"""
Tests for prediction storage and lifecycle transitions
"""
import pytest

from arcana.core.errors import (DuplicateJobError, InvalidTransitionError,
                                PredictionNotFoundError, TerminalStateError)
from arcana.core.job_id import generate_job_id
from arcana.models.prediction import PredictionStatus
from arcana.services.prediction_lifecycle import PredictionLifecycleManager


def test_create_starts_pending(store):
    job_id = generate_job_id()
    created = store.create(job_id, "Will my new job go well?", "user-1")

    assert created.status == PredictionStatus.PENDING
    loaded = store.get(job_id)
    assert loaded.job_id == job_id
    assert loaded.user_id == "user-1"
    assert loaded.status == PredictionStatus.PENDING
    assert loaded.analysis_result is None
    assert loaded.completed_at is None


def test_duplicate_job_id_rejected(store):
    job_id = generate_job_id()
    store.create(job_id, "Will my new job go well?")
    with pytest.raises(DuplicateJobError):
        store.create(job_id, "Another question entirely")


def test_get_unknown_returns_none(store):
    assert store.get("job-1-abcdefghi") is None


def test_checkpoints_accumulate(store):
    job_id = generate_job_id()
    store.create(job_id, "Will my new job go well?")
    store.mark_processing(job_id)
    store.checkpoint_analysis(job_id, {"mood": "calm", "recommended_count": 3})
    store.checkpoint_selection(job_id, [1, 2, 3])

    loaded = store.get(job_id)
    assert loaded.status == PredictionStatus.PROCESSING
    assert loaded.analysis_result == {"mood": "calm", "recommended_count": 3}
    assert loaded.selected_cards == [1, 2, 3]


def test_selection_with_duplicates_rejected(store):
    job_id = generate_job_id()
    store.create(job_id, "Will my new job go well?")
    store.mark_processing(job_id)
    with pytest.raises(ValueError):
        store.checkpoint_selection(job_id, [4, 4, 5])
    assert store.get(job_id).selected_cards is None


def test_completed_is_immutable(store):
    job_id = generate_job_id()
    store.create(job_id, "Will my new job go well?")
    store.mark_processing(job_id)
    store.mark_completed(job_id, {"header": "done"})

    completed = store.get(job_id)
    assert completed.status == PredictionStatus.COMPLETED
    assert completed.completed_at is not None

    with pytest.raises(TerminalStateError):
        store.mark_failed(job_id, "WORKFLOW_FAILED")
    with pytest.raises(TerminalStateError):
        store.checkpoint_analysis(job_id, {"mood": "late"})

    after = store.get(job_id)
    assert after.status == PredictionStatus.COMPLETED
    assert after.final_reading == {"header": "done"}
    assert after.failure_code is None


def test_failed_is_immutable(store):
    job_id = generate_job_id()
    store.create(job_id, "Will my new job go well?")
    store.mark_failed(job_id, "SCHEDULING_FAILED")

    with pytest.raises(TerminalStateError):
        store.mark_processing(job_id)
    failed = store.get(job_id)
    assert failed.status == PredictionStatus.FAILED
    assert failed.failure_code == "SCHEDULING_FAILED"


def test_pending_cannot_complete_directly(store):
    job_id = generate_job_id()
    store.create(job_id, "Will my new job go well?")
    with pytest.raises(InvalidTransitionError) as exc_info:
        store.mark_completed(job_id, {"header": "too early"})
    assert not isinstance(exc_info.value, TerminalStateError)
    assert store.get(job_id).status == PredictionStatus.PENDING


def test_transition_of_unknown_job(store):
    with pytest.raises(PredictionNotFoundError):
        store.mark_processing("job-1-abcdefghi")


def test_latest_and_list_for_user(store):
    ids = [generate_job_id(now_ms=1000 + i) for i in range(3)]
    for job_id in ids:
        store.create(job_id, "Will my new job go well?", "user-1")
    store.create(generate_job_id(), "Someone else asking", "user-2")

    assert store.latest_for_user("user-1").job_id == ids[-1]
    listed = store.list_for_user("user-1", limit=2)
    assert [p.job_id for p in listed] == [ids[2], ids[1]]
    assert store.latest_for_user("nobody") is None


def test_allowed_transitions_table():
    manager = PredictionLifecycleManager
    assert manager.can_transition(PredictionStatus.PENDING, PredictionStatus.PROCESSING)
    assert manager.can_transition(PredictionStatus.PROCESSING, PredictionStatus.COMPLETED)
    assert not manager.can_transition(PredictionStatus.PROCESSING, PredictionStatus.PENDING)
    assert not manager.can_transition(PredictionStatus.COMPLETED, PredictionStatus.FAILED)
    assert manager.sources_for(PredictionStatus.COMPLETED) == frozenset({PredictionStatus.PROCESSING})

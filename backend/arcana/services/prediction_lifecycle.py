"""
Prediction lifecycle state machine

PENDING -> PROCESSING -> COMPLETED | FAILED, one direction only.
"""
from typing import Dict, FrozenSet, List

from arcana.core.errors import InvalidTransitionError, TerminalStateError
from arcana.models.prediction import PredictionStatus


class PredictionLifecycleManager:
    """
    Allowed status transitions

    PROCESSING -> PROCESSING is the field checkpoint after a stage.
    PENDING -> FAILED covers a job that could not be scheduled at all.
    """

    ALLOWED_TRANSITIONS: Dict[PredictionStatus, List[PredictionStatus]] = {
        PredictionStatus.PENDING: [PredictionStatus.PROCESSING, PredictionStatus.FAILED],
        PredictionStatus.PROCESSING: [
            PredictionStatus.PROCESSING,
            PredictionStatus.COMPLETED,
            PredictionStatus.FAILED,
        ],
        PredictionStatus.COMPLETED: [],  # Final state
        PredictionStatus.FAILED: [],  # Final state
    }

    @classmethod
    def can_transition(cls, current: PredictionStatus, target: PredictionStatus) -> bool:
        return target in cls.ALLOWED_TRANSITIONS.get(current, [])

    @classmethod
    def sources_for(cls, target: PredictionStatus) -> FrozenSet[PredictionStatus]:
        """Statuses from which target may be entered"""
        return frozenset(
            status for status, targets in cls.ALLOWED_TRANSITIONS.items()
            if target in targets
        )

    @classmethod
    def validate(cls, job_id: str, current: PredictionStatus, target: PredictionStatus) -> None:
        """
        Raise if current -> target is not allowed

        Raises:
            TerminalStateError: current is COMPLETED or FAILED
            InvalidTransitionError: transition not in ALLOWED_TRANSITIONS
        """
        if current.is_terminal:
            raise TerminalStateError(job_id, current.value, target.value)
        if not cls.can_transition(current, target):
            raise InvalidTransitionError(job_id, current.value, target.value)

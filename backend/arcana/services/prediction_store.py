"""
Durable storage of prediction records and their checkpoints
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from arcana.core.database import SessionFactory, session_scope
from arcana.core.errors import (DuplicateJobError, InvalidTransitionError,
                                PersistenceError, PredictionNotFoundError)
from arcana.core.logging_config import LoggingConfig
from arcana.models.prediction import Prediction, PredictionStatus
from arcana.services.prediction_lifecycle import PredictionLifecycleManager
from arcana.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)


def _detached(db, prediction: Optional[Prediction]) -> Optional[Prediction]:
    """Detach a loaded row so it stays readable after the session closes"""
    if prediction is not None:
        db.expunge(prediction)
    return prediction


class PredictionStore:
    """
    Reads and targeted writes of Prediction rows

    Every status change is a conditional UPDATE keyed by job_id and
    restricted to the statuses the target may be entered from, so a
    terminal record is never overwritten.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def create(self, job_id: str, question: str, user_id: Optional[str] = None) -> Prediction:
        """
        Insert a PENDING prediction

        Raises:
            DuplicateJobError: job_id already exists
            PersistenceError: database failure
        """
        prediction = Prediction(
            job_id=job_id,
            user_id=user_id,
            question=question,
            status=PredictionStatus.PENDING,
        )
        try:
            with session_scope(self.session_factory) as db:
                db.add(prediction)
                db.flush()
                db.expunge(prediction)
        except IntegrityError as e:
            raise DuplicateJobError(f"Prediction {job_id} already exists") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create prediction {job_id}: {e}") from e

        logger.info(
            "Prediction created",
            extra={"job_id": job_id, "user_id": user_id, "status": PredictionStatus.PENDING.value}
        )
        return prediction

    def get(self, job_id: str) -> Optional[Prediction]:
        """Get a prediction by job id"""
        try:
            with session_scope(self.session_factory) as db:
                return _detached(db, db.execute(
                    select(Prediction).where(Prediction.job_id == job_id)
                ).scalar_one_or_none())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load prediction {job_id}: {e}") from e

    def latest_for_user(self, user_id: str) -> Optional[Prediction]:
        """Most recently created prediction of a user"""
        try:
            with session_scope(self.session_factory) as db:
                return _detached(db, db.execute(
                    select(Prediction)
                    .where(Prediction.user_id == user_id)
                    .order_by(desc(Prediction.created_at), desc(Prediction.id))
                    .limit(1)
                ).scalar_one_or_none())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load predictions of {user_id}: {e}") from e

    def list_for_user(self, user_id: str, limit: int = 20, offset: int = 0) -> List[Prediction]:
        """
        List predictions of a user, newest first

        Args:
            user_id: Owner of the predictions
            limit: Maximum number of rows
            offset: Rows to skip

        Returns:
            List of Predictions
        """
        try:
            with session_scope(self.session_factory) as db:
                rows = list(db.execute(
                    select(Prediction)
                    .where(Prediction.user_id == user_id)
                    .order_by(desc(Prediction.created_at), desc(Prediction.id))
                    .offset(offset)
                    .limit(limit)
                ).scalars().all())
                db.expunge_all()
                return rows
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list predictions of {user_id}: {e}") from e

    # ------------------------------------------------------------------
    # Transitions / checkpoints
    # ------------------------------------------------------------------

    def mark_processing(self, job_id: str) -> None:
        self._transition(job_id, PredictionStatus.PROCESSING, {})

    def checkpoint_analysis(self, job_id: str, analysis: Dict[str, Any]) -> None:
        """Persist the analysis result while PROCESSING"""
        self._transition(job_id, PredictionStatus.PROCESSING, {"analysis_result": analysis})

    def checkpoint_selection(self, job_id: str, selected_cards: List[int]) -> None:
        """Persist the selected cards while PROCESSING"""
        if len(set(selected_cards)) != len(selected_cards):
            raise ValueError(f"Duplicate cards in selection for {job_id}: {selected_cards}")
        self._transition(job_id, PredictionStatus.PROCESSING, {"selected_cards": list(selected_cards)})

    def mark_completed(self, job_id: str, final_reading: Dict[str, Any]) -> None:
        self._transition(
            job_id,
            PredictionStatus.COMPLETED,
            {"final_reading": final_reading, "completed_at": utc_now()},
        )

    def mark_failed(self, job_id: str, failure_code: str) -> None:
        self._transition(
            job_id,
            PredictionStatus.FAILED,
            {"failure_code": failure_code, "completed_at": utc_now()},
        )

    def _transition(self, job_id: str, target: PredictionStatus, values: Dict[str, Any]) -> None:
        """
        Conditionally move job_id to target and write values

        Raises:
            PredictionNotFoundError: no such job
            TerminalStateError: job already COMPLETED or FAILED
            InvalidTransitionError: job is in a status target can't be entered from
            PersistenceError: database failure
        """
        sources = PredictionLifecycleManager.sources_for(target)
        try:
            with session_scope(self.session_factory) as db:
                result = db.execute(
                    update(Prediction)
                    .where(Prediction.job_id == job_id, Prediction.status.in_(sorted(sources, key=lambda s: s.value)))
                    .values(status=target, updated_at=utc_now(), **values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    logger.debug(
                        f"Prediction {job_id} -> {target.value}",
                        extra={"job_id": job_id, "status": target.value, "fields": sorted(values)}
                    )
                    return

                current = db.execute(
                    select(Prediction.status).where(Prediction.job_id == job_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update prediction {job_id}: {e}") from e

        if current is None:
            raise PredictionNotFoundError(job_id)

        logger.warning(
            f"Rejected transition {current.value} -> {target.value}",
            extra={"job_id": job_id, "current_status": current.value, "target_status": target.value}
        )
        PredictionLifecycleManager.validate(job_id, current, target)
        # Status changed between UPDATE and SELECT
        raise InvalidTransitionError(job_id, current.value, target.value)

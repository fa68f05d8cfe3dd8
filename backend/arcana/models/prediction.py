"""
Prediction model
"""
from enum import Enum
from typing import Any, Dict

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Index
from sqlalchemy.dialects.postgresql import JSONB

from arcana.core.database import Base
from arcana.utils.datetime_utils import ensure_utc, utc_now

JSONType = JSON().with_variant(JSONB(), "postgresql")


class PredictionStatus(str, Enum):
    """Prediction lifecycle status"""
    PENDING = "PENDING"  # Accepted, not yet picked up
    PROCESSING = "PROCESSING"  # Stages running
    COMPLETED = "COMPLETED"  # Reading stored
    FAILED = "FAILED"  # Rejected or errored

    @property
    def is_terminal(self) -> bool:
        return self in (PredictionStatus.COMPLETED, PredictionStatus.FAILED)


class Prediction(Base):
    """One reading request and its durable progress"""
    __tablename__ = "predictions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(String(255), nullable=True, index=True)
    question = Column(Text, nullable=False)
    status = Column(
        SQLEnum(PredictionStatus, name="prediction_status"),
        nullable=False,
        default=PredictionStatus.PENDING,
    )

    # Filled stage by stage; null until the stage checkpoints
    analysis_result = Column(JSONType, nullable=True)
    selected_cards = Column(JSONType, nullable=True)
    final_reading = Column(JSONType, nullable=True)

    failure_code = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_predictions_user_created", "user_id", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "job_id": self.job_id,
            "user_id": self.user_id,
            "question": self.question,
            "status": self.status.value if self.status else None,
            "analysis_result": self.analysis_result,
            "selected_cards": self.selected_cards,
            "final_reading": self.final_reading,
            "failure_code": self.failure_code,
            "created_at": ensure_utc(self.created_at).isoformat() if self.created_at else None,
            "completed_at": ensure_utc(self.completed_at).isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<Prediction(job_id={self.job_id}, status={self.status})>"

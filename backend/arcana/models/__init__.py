"""
SQLAlchemy models
"""
from arcana.core.database import Base
from arcana.models.card import Card  # noqa: F401
from arcana.models.credit import (CreditAccount,  # noqa: F401
                                  CreditTransaction, CreditTransactionType)
from arcana.models.prediction import Prediction, PredictionStatus  # noqa: F401

__all__ = [
    "Base",
    "Card",
    "CreditAccount",
    "CreditTransaction",
    "CreditTransactionType",
    "Prediction",
    "PredictionStatus",
]

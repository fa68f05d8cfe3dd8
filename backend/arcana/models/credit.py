"""
Credit account and append-only transaction log
"""
from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Index, Integer, String

from arcana.core.database import Base
from arcana.models.prediction import JSONType
from arcana.utils.datetime_utils import to_iso, utc_now


class CreditTransactionType(str, Enum):
    """Kind of balance change"""
    DEBIT = "DEBIT"
    TOPUP = "TOPUP"
    REFUND = "REFUND"


class CreditAccount(Base):
    """Live balance of one user"""
    __tablename__ = "credit_accounts"

    user_id = Column(String(255), primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_credit_accounts_balance_non_negative"),
    )

    def __repr__(self):
        return f"<CreditAccount(user_id={self.user_id}, balance={self.balance})>"


class CreditTransaction(Base):
    """One balance change; rows are never updated or deleted"""
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # signed
    balance_after = Column(Integer, nullable=False)
    type = Column(SQLEnum(CreditTransactionType, name="credit_transaction_type"), nullable=False)
    # 'metadata' is reserved by declarative Base
    transaction_metadata = Column("metadata", JSONType, nullable=True)
    idempotency_key = Column(String(128), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_credit_transactions_user_created", "user_id", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "balance_after": self.balance_after,
            "type": self.type.value if self.type else None,
            "metadata": self.transaction_metadata or {},
            "created_at": to_iso(self.created_at),
        }

    def __repr__(self):
        return f"<CreditTransaction(user_id={self.user_id}, type={self.type}, amount={self.amount})>"

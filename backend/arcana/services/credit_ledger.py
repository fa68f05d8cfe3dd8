"""
Credit ledger: live balances plus an append-only transaction log
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from arcana.core.database import SessionFactory, session_scope
from arcana.core.errors import InsufficientCreditError, LedgerError
from arcana.core.logging_config import LoggingConfig
from arcana.core.metrics import (credit_debit_rejections_total,
                                 credit_transactions_total)
from arcana.models.credit import (CreditAccount, CreditTransaction,
                                  CreditTransactionType)
from arcana.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)


@dataclass
class CreditHistoryPage:
    """One page of a user's transactions, newest first"""
    transactions: List[CreditTransaction]
    total: int
    page: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


@dataclass
class LedgerReconciliation:
    """Balance cross-check for one user"""
    user_id: str
    balance: int
    transaction_sum: int
    last_balance_after: Optional[int]

    @property
    def consistent(self) -> bool:
        if self.balance != self.transaction_sum:
            return False
        if self.last_balance_after is None:
            return self.balance == 0
        return self.last_balance_after == self.balance


class CreditLedger:
    """
    Balance mutations for users

    Each mutation updates the live balance and appends its transaction row
    in one database transaction. Debits are conditional updates, so two
    concurrent debits can never take the balance below zero.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, user_id: str) -> int:
        """Current balance; users without an account have 0"""
        try:
            with session_scope(self.session_factory) as db:
                balance = db.execute(
                    select(CreditAccount.balance).where(CreditAccount.user_id == user_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to read balance of {user_id}: {e}") from e
        return balance or 0

    def has_sufficient_balance(self, user_id: str, cost: int = 1) -> bool:
        return self.get_balance(user_id) >= cost

    def get_history(self, user_id: str, page: int = 1, limit: int = 20) -> CreditHistoryPage:
        """
        Paginated transaction history

        Args:
            user_id: Account owner
            page: 1-based page number
            limit: Page size

        Returns:
            CreditHistoryPage
        """
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be >= 1")
        try:
            with session_scope(self.session_factory) as db:
                total = db.execute(
                    select(func.count(CreditTransaction.id)).where(CreditTransaction.user_id == user_id)
                ).scalar_one()
                rows = list(db.execute(
                    select(CreditTransaction)
                    .where(CreditTransaction.user_id == user_id)
                    .order_by(desc(CreditTransaction.created_at), desc(CreditTransaction.id))
                    .offset((page - 1) * limit)
                    .limit(limit)
                ).scalars().all())
                db.expunge_all()
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to read history of {user_id}: {e}") from e
        return CreditHistoryPage(transactions=rows, total=total, page=page, limit=limit)

    def reconcile(self, user_id: str) -> LedgerReconciliation:
        """Compare live balance, sum of amounts and the latest balance_after"""
        try:
            with session_scope(self.session_factory) as db:
                balance = db.execute(
                    select(CreditAccount.balance).where(CreditAccount.user_id == user_id)
                ).scalar_one_or_none() or 0
                transaction_sum = db.execute(
                    select(func.coalesce(func.sum(CreditTransaction.amount), 0))
                    .where(CreditTransaction.user_id == user_id)
                ).scalar_one()
                last_balance_after = db.execute(
                    select(CreditTransaction.balance_after)
                    .where(CreditTransaction.user_id == user_id)
                    .order_by(desc(CreditTransaction.id))
                    .limit(1)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to reconcile {user_id}: {e}") from e

        result = LedgerReconciliation(
            user_id=user_id,
            balance=balance,
            transaction_sum=int(transaction_sum),
            last_balance_after=last_balance_after,
        )
        if not result.consistent:
            logger.error(
                "Ledger inconsistency detected",
                extra={
                    "user_id": user_id,
                    "balance": balance,
                    "transaction_sum": int(transaction_sum),
                    "last_balance_after": last_balance_after,
                }
            )
        return result

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def debit(
        self,
        user_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        amount: int = 1,
        idempotency_key: Optional[str] = None,
    ) -> CreditTransaction:
        """
        Take amount credits from user_id

        Args:
            user_id: Account owner
            metadata: Stored with the transaction (e.g. {"prediction_id": job_id})
            amount: Positive number of credits
            idempotency_key: Replaying a key returns the original transaction

        Returns:
            The DEBIT transaction

        Raises:
            InsufficientCreditError: balance < amount
            LedgerError: database failure
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        def apply(db: Session) -> CreditTransaction:
            result = db.execute(
                update(CreditAccount)
                .where(CreditAccount.user_id == user_id, CreditAccount.balance >= amount)
                .values(balance=CreditAccount.balance - amount, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                balance = db.execute(
                    select(CreditAccount.balance).where(CreditAccount.user_id == user_id)
                ).scalar_one_or_none() or 0
                credit_debit_rejections_total.inc()
                raise InsufficientCreditError(user_id, balance, amount)
            return self._append(db, user_id, -amount, CreditTransactionType.DEBIT, metadata, idempotency_key)

        return self._mutate(user_id, CreditTransactionType.DEBIT, apply, idempotency_key)

    def refund(
        self,
        user_id: str,
        amount: int = 1,
        reason: str = "refund",
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> CreditTransaction:
        """
        Return credits taken by an earlier debit (compensation only)

        Raises:
            LedgerError: database failure
        """
        if amount <= 0:
            raise ValueError("Refund amount must be positive")
        details = {**(metadata or {}), "reason": reason}

        def apply(db: Session) -> CreditTransaction:
            self._credit_account(db, user_id, amount)
            return self._append(db, user_id, amount, CreditTransactionType.REFUND, details, idempotency_key)

        return self._mutate(user_id, CreditTransactionType.REFUND, apply, idempotency_key)

    def top_up(
        self,
        user_id: str,
        amount: int,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> CreditTransaction:
        """
        Add purchased credits to user_id, opening the account if needed

        Raises:
            ValueError: amount is not positive
            LedgerError: database failure
        """
        if amount <= 0:
            raise ValueError("Top-up amount must be positive")

        def apply(db: Session) -> CreditTransaction:
            self._credit_account(db, user_id, amount)
            return self._append(db, user_id, amount, CreditTransactionType.TOPUP, metadata, idempotency_key)

        return self._mutate(user_id, CreditTransactionType.TOPUP, apply, idempotency_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mutate(self, user_id, tx_type, apply, idempotency_key) -> CreditTransaction:
        try:
            with session_scope(self.session_factory) as db:
                if idempotency_key:
                    existing = self._find_by_key(db, idempotency_key)
                    if existing is not None:
                        logger.info(
                            "Idempotent replay of credit transaction",
                            extra={"user_id": user_id, "type": tx_type.value, "idempotency_key": idempotency_key}
                        )
                        return existing
                transaction = apply(db)
        except IntegrityError as e:
            # Concurrent writer committed the same idempotency key first
            if idempotency_key:
                existing = self._load_by_key(idempotency_key)
                if existing is not None:
                    return existing
            raise LedgerError(f"{tx_type.value} for {user_id} violated a constraint: {e}") from e
        except SQLAlchemyError as e:
            raise LedgerError(f"{tx_type.value} for {user_id} failed: {e}") from e

        credit_transactions_total.labels(type=tx_type.value).inc()
        logger.info(
            f"Credit {tx_type.value.lower()} applied",
            extra={
                "user_id": user_id,
                "type": tx_type.value,
                "amount": transaction.amount,
                "balance_after": transaction.balance_after,
                "metadata": transaction.transaction_metadata,
            }
        )
        return transaction

    @staticmethod
    def _credit_account(db: Session, user_id: str, amount: int) -> None:
        result = db.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id)
            .values(balance=CreditAccount.balance + amount, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.add(CreditAccount(user_id=user_id, balance=amount))
            db.flush()

    @staticmethod
    def _append(
        db: Session,
        user_id: str,
        amount: int,
        tx_type: CreditTransactionType,
        metadata: Optional[Dict[str, Any]],
        idempotency_key: Optional[str],
    ) -> CreditTransaction:
        balance_after = db.execute(
            select(CreditAccount.balance).where(CreditAccount.user_id == user_id)
        ).scalar_one()
        transaction = CreditTransaction(
            user_id=user_id,
            amount=amount,
            balance_after=balance_after,
            type=tx_type,
            transaction_metadata=metadata or {},
            idempotency_key=idempotency_key,
        )
        db.add(transaction)
        db.flush()
        db.expunge(transaction)
        return transaction

    @staticmethod
    def _find_by_key(db: Session, idempotency_key: str) -> Optional[CreditTransaction]:
        transaction = db.execute(
            select(CreditTransaction).where(CreditTransaction.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        if transaction is not None:
            db.expunge(transaction)
        return transaction

    def _load_by_key(self, idempotency_key: str) -> Optional[CreditTransaction]:
        try:
            with session_scope(self.session_factory) as db:
                return self._find_by_key(db, idempotency_key)
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to load transaction {idempotency_key}: {e}") from e

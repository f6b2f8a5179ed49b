"""
Credit ledger: balance gating for billable operations.

Core rules:
1. The balance never goes below zero.
2. Every balance change writes exactly one transaction row in the same DB transaction.
3. Transaction rows are never updated or deleted; corrections are new rows.
4. Debits are conditioned on the balance at mutation time, not on an earlier reserve().
"""
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from draftwise.models.database import CreditOperation, CreditTransaction, TransactionStatus, User
from draftwise.services.exceptions import AccountNotFoundError, ConcurrentAdjustmentError, InsufficientCreditsError

logger = logging.getLogger(__name__)

# Serializes mutations per account inside this process. Accounts hash onto a
# fixed pool of lock stripes. The conditional UPDATE statements keep the
# balance non-negative across processes.
LOCK_STRIPES = 64
_account_locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))


def _lock_for(account_id: int) -> threading.Lock:
    return _account_locks[hash(account_id) % LOCK_STRIPES]


@dataclass(frozen=True)
class Reservation:
    """Result of an advisory balance check"""
    approved: bool
    available: int
    required: int


@dataclass(frozen=True)
class Adjustment:
    old_balance: int
    new_balance: int
    difference: int


class CreditService:
    """Service owning CreditAccount balances and the CreditTransaction log"""

    ADJUST_ACTIONS = ("set", "add", "subtract")

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Reads
    # =========================================================================

    def get_balance(self, account_id: int) -> int:
        balance = self.db.execute(select(User.credits).where(User.id == account_id)).scalar_one_or_none()
        if balance is None:
            raise AccountNotFoundError(account_id)
        return balance

    def get_account(self, account_id: int) -> Dict:
        row = self.db.execute(
            select(User.id, User.credits, User.total_credits_used).where(User.id == account_id)
        ).one_or_none()
        if row is None:
            raise AccountNotFoundError(account_id)
        return {"account_id": row.id, "credits": row.credits, "total_credits_used": row.total_credits_used}

    def list_transactions(self, account_id: int, limit: Optional[int] = 10) -> List[CreditTransaction]:
        """Most recent first"""
        query = (
            select(CreditTransaction)
            .where(CreditTransaction.user_id == account_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        )
        if limit:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars())

    def reserve(self, account_id: int, amount: int) -> Reservation:
        """
        Advisory check before starting expensive work. Mutates nothing.

        Raises:
            AccountNotFoundError: unknown account
        """
        available = self.get_balance(account_id)
        return Reservation(approved=available >= amount, available=available, required=amount)

    @staticmethod
    def replay_balance(transactions: Iterable[CreditTransaction]) -> int:
        """Rebuild a balance from zero by applying transactions in (created_at, id) order"""
        ordered = sorted(transactions, key=lambda t: (t.created_at, t.id))
        balance = 0
        for txn in ordered:
            balance -= txn.amount
        return balance

    # =========================================================================
    # Mutations
    # =========================================================================

    def debit(
        self,
        account_id: int,
        operation: CreditOperation,
        amount: int,
        linked_resource_id: Optional[int] = None,
    ) -> int:
        """
        Take `amount` credits for a delivered operation.

        Returns:
            The new balance

        Raises:
            AccountNotFoundError: unknown account
            InsufficientCreditsError: balance is below `amount` right now
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive")
        operation = CreditOperation(operation)

        with _lock_for(account_id):
            try:
                result = self.db.execute(
                    update(User)
                    .where(User.id == account_id, User.credits >= amount)
                    .values(
                        credits=User.credits - amount,
                        total_credits_used=User.total_credits_used + amount,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    available = self.db.execute(
                        select(User.credits).where(User.id == account_id)
                    ).scalar_one_or_none()
                    self.db.rollback()
                    if available is None:
                        raise AccountNotFoundError(account_id)
                    raise InsufficientCreditsError(available, amount, operation.value)

                self.db.add(CreditTransaction(
                    user_id=account_id,
                    operation=operation.value,
                    amount=amount,
                    blog_id=linked_resource_id,
                    status=TransactionStatus.COMPLETED.value,
                ))
                new_balance = self.db.execute(select(User.credits).where(User.id == account_id)).scalar_one()
                self.db.commit()
            except (AccountNotFoundError, InsufficientCreditsError):
                raise
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Deducted {amount} credits for {operation.value} from account {account_id}. Remaining: {new_balance}")
        return new_balance

    def credit(
        self,
        account_id: int,
        operation: CreditOperation,
        amount: int,
        note: str = "",
    ) -> int:
        """
        Add `amount` credits. Recorded as a negative-amount transaction.
        Refunds also reduce total_credits_used, never below zero.

        Returns:
            The new balance
        """
        if amount <= 0:
            raise ValueError("Credit amount must be positive")
        operation = CreditOperation(operation)

        values = {"credits": User.credits + amount}
        if operation == CreditOperation.REFUND:
            values["total_credits_used"] = case(
                (User.total_credits_used >= amount, User.total_credits_used - amount),
                else_=0,
            )

        with _lock_for(account_id):
            try:
                result = self.db.execute(
                    update(User)
                    .where(User.id == account_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    self.db.rollback()
                    raise AccountNotFoundError(account_id)

                self.db.add(CreditTransaction(
                    user_id=account_id,
                    operation=operation.value,
                    amount=-amount,
                    status=TransactionStatus.COMPLETED.value,
                    details=note,
                ))
                new_balance = self.db.execute(select(User.credits).where(User.id == account_id)).scalar_one()
                self.db.commit()
            except AccountNotFoundError:
                raise
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Added {amount} credits for {operation.value} to account {account_id}. Total: {new_balance}")
        return new_balance

    def open_account(self, account_id: int, initial_grant: int) -> int:
        """Record the signup grant so the log replays from zero"""
        if initial_grant <= 0:
            return self.get_balance(account_id)
        return self.credit(account_id, CreditOperation.INITIAL_GRANT, initial_grant, "Free credits on signup")

    def adjust(self, account_id: int, action: str, credits: int, reason: str = "") -> Adjustment:
        """
        Administrative correction: set, add or subtract.

        The resulting balance is clamped at zero and the transaction records the
        delta actually applied. No transaction is written when nothing changes.
        """
        if action not in self.ADJUST_ACTIONS:
            raise ValueError("Action must be 'set', 'add', or 'subtract'")
        if credits < 0:
            raise ValueError("Credits must be a non-negative number")

        note = reason or f"Admin {action}: {credits} credits"

        with _lock_for(account_id):
            try:
                old_balance = self.get_balance(account_id)
                if action == "set":
                    new_balance = credits
                elif action == "add":
                    new_balance = old_balance + credits
                else:
                    new_balance = max(0, old_balance - credits)

                difference = new_balance - old_balance
                if difference == 0:
                    self.db.rollback()
                    return Adjustment(old_balance, old_balance, 0)

                operation = (
                    CreditOperation.ADMIN_CREDIT_ADDITION if difference > 0
                    else CreditOperation.ADMIN_CREDIT_DEDUCTION
                )
                # Compare-and-swap on the balance we based the delta on
                result = self.db.execute(
                    update(User)
                    .where(User.id == account_id, User.credits == old_balance)
                    .values(credits=new_balance)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    self.db.rollback()
                    raise ConcurrentAdjustmentError(account_id)

                self.db.add(CreditTransaction(
                    user_id=account_id,
                    operation=operation.value,
                    amount=-difference,
                    status=TransactionStatus.COMPLETED.value,
                    details=note,
                ))
                self.db.commit()
            except (AccountNotFoundError, ConcurrentAdjustmentError):
                raise
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Admin updated credits for account {account_id}: {old_balance} -> {new_balance}")
        return Adjustment(old_balance, new_balance, difference)

    def record_failed(
        self,
        account_id: int,
        operation: CreditOperation,
        linked_resource_id: Optional[int] = None,
        details: str = "",
    ) -> CreditTransaction:
        """Audit a billable attempt that delivered nothing. Balance is untouched."""
        txn = CreditTransaction(
            user_id=account_id,
            operation=CreditOperation(operation).value,
            amount=0,
            blog_id=linked_resource_id,
            status=TransactionStatus.FAILED.value,
            details=details[:1000],
        )
        try:
            self.db.add(txn)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return txn


def get_credit_service(db: Session) -> CreditService:
    """Get credit service instance bound to a session"""
    return CreditService(db)

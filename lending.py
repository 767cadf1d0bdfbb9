"""Issuing books: the check, record and decrement sequence for one loan."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Optional

from config import settings
from database import is_lock_error, unit_of_work
from errors import (
    BookNotFoundError,
    BookUnavailableError,
    ConcurrencyConflictError,
    ErrorKind,
    LendingError,
    TransactionFailedError,
    UnknownMemberError,
    ValidationFailureError,
)
from stores import InventoryStore, LedgerStore, MemberStore
from transaction import Transaction, TransactionStatus

logger = logging.getLogger(__name__)


class IssueState(str, Enum):
    REQUESTED = "Requested"
    CHECKING = "Checking"
    REJECTED = "Rejected"
    RECORDED = "Recorded"


@dataclass
class IssueResult:
    state: IssueState
    transaction_id: Optional[int] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    due_date: Optional[date] = None

    @property
    def ok(self) -> bool:
        return self.state is IssueState.RECORDED

    @property
    def retryable(self) -> bool:
        return self.error is ErrorKind.CONCURRENCY_CONFLICT

    @classmethod
    def recorded(cls, transaction: Transaction) -> "IssueResult":
        return cls(
            state=IssueState.RECORDED,
            transaction_id=transaction.transaction_id,
            message=f"Book issued successfully. Transaction ID: {transaction.transaction_id}",
            due_date=transaction.due_date,
        )

    @classmethod
    def rejected(cls, error: LendingError) -> "IssueResult":
        return cls(state=IssueState.REJECTED, error=error.kind, message=str(error))


def _validate_id(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationFailureError(f"{name} must be a positive integer, got {value!r}.")
    return value


class IssuanceCoordinator:
    """Lends one copy of a book to one member under a single unit of work.

    ``issue`` never raises for expected failures; every outcome comes back as an
    ``IssueResult`` in state Recorded or Rejected.
    """

    def __init__(self, conn: sqlite3.Connection, inventory: InventoryStore, ledger: LedgerStore,
                 members: MemberStore, loan_period_days: Optional[int] = None) -> None:
        self.conn = conn
        self.inventory = inventory
        self.ledger = ledger
        self.members = members
        self.loan_period = timedelta(
            days=settings.loan_period_days if loan_period_days is None else loan_period_days
        )
        self.state = IssueState.REQUESTED

    def issue(self, member_id: int, book_id: int, today: Optional[date] = None) -> IssueResult:
        today = today or date.today()
        self.state = IssueState.REQUESTED
        try:
            _validate_id(member_id, "member_id")
            _validate_id(book_id, "book_id")
            self.state = IssueState.CHECKING
            transaction = self._record(member_id, book_id, today)
        except LendingError as exc:
            return self._reject(exc, member_id, book_id)
        except sqlite3.Error as exc:
            if is_lock_error(exc):
                failure = ConcurrencyConflictError("The book is busy; retry the operation.")
            else:
                logger.error(f"Issuance of book {book_id} to member {member_id} rolled back: {exc}")
                failure = TransactionFailedError("Could not issue book.")
            return self._reject(failure, member_id, book_id)
        except Exception:
            logger.exception(f"Issuance of book {book_id} to member {member_id} rolled back")
            return self._reject(TransactionFailedError("Could not issue book."), member_id, book_id)

        self.state = IssueState.RECORDED
        logger.info(
            f"Issued book {book_id} to member {member_id}: transaction {transaction.transaction_id}, "
            f"due {transaction.due_date.isoformat()}"
        )
        return IssueResult.recorded(transaction)

    def _record(self, member_id: int, book_id: int, today: date) -> Transaction:
        with unit_of_work(self.conn):
            book = self.inventory.get_book_for_update(book_id)
            if book is None:
                raise BookNotFoundError(book_id)
            if self.members.get_member(member_id) is None:
                raise UnknownMemberError(member_id)
            if book.available_copies <= 0:
                raise BookUnavailableError(book_id)

            transaction = Transaction(
                transaction_id=self.ledger.next_transaction_id(),
                member_id=member_id,
                book_id=book_id,
                issue_date=today,
                due_date=today + self.loan_period,
                return_date=None,
                status=TransactionStatus.PENDING,
            )
            self.ledger.insert_transaction(transaction)
            self.inventory.decrement_available(book_id)
        return transaction

    def _reject(self, exc: LendingError, member_id: int, book_id: int) -> IssueResult:
        self.state = IssueState.REJECTED
        if exc.retryable:
            logger.warning(f"Issuance of book {book_id} to member {member_id} hit a lock conflict: {exc}")
        elif exc.kind is ErrorKind.TRANSACTION_FAILED:
            logger.error(f"Issuance of book {book_id} to member {member_id} failed: {exc}")
        else:
            logger.warning(f"Issuance of book {book_id} to member {member_id} rejected: {exc}")
        return IssueResult.rejected(exc)

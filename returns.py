"""Return processing and the restock rule that follows it."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional

from database import unit_of_work
from errors import TransactionNotFoundError, ValidationFailureError
from fines import FineCalculator
from stores import InventoryStore, LedgerStore
from transaction import Transaction, TransactionStatus

logger = logging.getLogger(__name__)


class ReturnStateMachine:
    """Puts a copy back on the shelf when a loan becomes Returned.

    Edge-triggered: only a change from a non-Returned status into Returned
    counts. Saving a transaction that was already Returned does nothing.
    """

    def __init__(self, inventory: InventoryStore) -> None:
        self.inventory = inventory

    def attach(self, ledger: LedgerStore) -> "ReturnStateMachine":
        ledger.subscribe(self.on_status_changed)
        return self

    def on_status_changed(self, transaction: Transaction, previous: TransactionStatus) -> bool:
        if previous is TransactionStatus.RETURNED or transaction.status is not TransactionStatus.RETURNED:
            return False
        self.inventory.increment_available(transaction.book_id)
        logger.info(f"Restocked book {transaction.book_id} after return of transaction {transaction.transaction_id}")
        return True


class ReturnProcessor:
    """Closes a loan: records the return date and fine, then marks it Returned.

    The status update goes through the ledger, so any attached
    ``ReturnStateMachine`` restocks the book inside the same unit of work.
    """

    def __init__(self, conn: sqlite3.Connection, ledger: LedgerStore,
                 fines: Optional[FineCalculator] = None) -> None:
        self.conn = conn
        self.ledger = ledger
        self.fines = fines or FineCalculator()

    def return_book(self, transaction_id: int, return_date: Optional[date] = None) -> Transaction:
        return_date = return_date or date.today()
        with unit_of_work(self.conn):
            transaction = self.ledger.get_transaction(transaction_id)
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)
            if transaction.status is TransactionStatus.RETURNED:
                logger.info(f"Transaction {transaction_id} was already returned on {transaction.return_date}")
                return transaction

            if return_date < transaction.issue_date:
                raise ValidationFailureError(
                    f"Return date {return_date.isoformat()} is before issue date "
                    f"{transaction.issue_date.isoformat()}."
                )

            fine = self.fines.for_return(transaction, return_date)
            returned = self.ledger.update_transaction_status(
                transaction_id, TransactionStatus.RETURNED, return_date=return_date, fine_amount=fine
            )
        logger.info(f"Transaction {transaction_id} returned on {return_date.isoformat()} with fine {fine}")
        return returned

    def mark_overdue(self, today: Optional[date] = None) -> int:
        """Move Pending loans past their due date to Overdue. Returns how many changed."""
        today = today or date.today()
        with unit_of_work(self.conn):
            past_due = self.ledger.list_past_due(today)
            for transaction in past_due:
                self.ledger.update_transaction_status(transaction.transaction_id, TransactionStatus.OVERDUE)
        if past_due:
            logger.info(f"Marked {len(past_due)} transaction(s) overdue as of {today.isoformat()}")
        return len(past_due)

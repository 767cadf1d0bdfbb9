from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from config import settings
from errors import TransactionNotFoundError
from stores import LedgerStore
from transaction import CENTS, Transaction


def overdue_days(due_date: date, return_date: Optional[date], today: date) -> int:
    """Whole days past the due date, floored at zero.

    A returned loan is measured against its return date, an open one against today.
    """
    compared_to = return_date if return_date is not None else today
    return max((compared_to - due_date).days, 0)


def calculate_fine(due_date: date, return_date: Optional[date], today: date,
                   rate: Optional[Decimal] = None) -> Decimal:
    rate = settings.fine_per_day if rate is None else Decimal(str(rate))
    days = overdue_days(due_date, return_date, today)
    if days <= 0:
        return Decimal("0.00")
    return (rate * days).quantize(CENTS)


class FineCalculator:
    """Computes fines for ledger records without touching them."""

    def __init__(self, rate: Optional[Decimal] = None) -> None:
        self.rate = settings.fine_per_day if rate is None else Decimal(str(rate))

    def for_transaction(self, transaction: Transaction, today: date) -> Decimal:
        return calculate_fine(transaction.due_date, transaction.return_date, today, self.rate)

    def for_return(self, transaction: Transaction, return_date: date) -> Decimal:
        """Fine owed if the loan is closed on ``return_date``."""
        return calculate_fine(transaction.due_date, return_date, return_date, self.rate)

    def for_transaction_id(self, ledger: LedgerStore, transaction_id: int, today: date) -> Decimal:
        transaction = ledger.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return self.for_transaction(transaction, today)

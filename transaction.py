from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum

CENTS = Decimal("0.01")


class TransactionStatus(str, Enum):
    PENDING = "Pending"
    OVERDUE = "Overdue"
    RETURNED = "Returned"

    @property
    def is_open(self) -> bool:
        return self is not TransactionStatus.RETURNED


def _as_date(value: date | str | None) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


class Transaction:
    """A loan record: one copy of a book lent to one member."""

    def __init__(self, transaction_id: int, member_id: int, book_id: int,
                 issue_date: date | str, due_date: date | str,
                 return_date: date | str | None = None,
                 fine_amount: Decimal | str | int = Decimal("0.00"),
                 status: TransactionStatus | str = TransactionStatus.PENDING) -> None:
        self.transaction_id = transaction_id
        self.member_id = member_id
        self.book_id = book_id
        self.issue_date = _as_date(issue_date)
        self.due_date = _as_date(due_date)
        self.return_date = _as_date(return_date)
        self.fine_amount = Decimal(str(fine_amount)).quantize(CENTS)
        self.status = TransactionStatus(status)

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"#{self.transaction_id} book={self.book_id} member={self.member_id} [{self.status.value}]"

    @property
    def is_open(self) -> bool:
        return self.status.is_open

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "member_id": self.member_id,
            "book_id": self.book_id,
            "issue_date": self.issue_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "return_date": self.return_date.isoformat() if self.return_date else None,
            "fine_amount": str(self.fine_amount),
            "status": self.status.value,
        }

    @staticmethod
    def from_dict(data: dict) -> "Transaction":
        return Transaction(
            transaction_id=int(data["transaction_id"]),
            member_id=int(data["member_id"]),
            book_id=int(data["book_id"]),
            issue_date=data["issue_date"],
            due_date=data["due_date"],
            return_date=data.get("return_date"),
            fine_amount=data.get("fine_amount") or "0.00",
            status=data.get("status") or TransactionStatus.PENDING,
        )

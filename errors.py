"""Exception hierarchy for the lending engine.

Every error carries an ``ErrorKind`` so the issuance boundary, the HTTP API and
the CLI can turn it into a structured result without inspecting messages.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    UNAVAILABLE = "Unavailable"
    CONCURRENCY_CONFLICT = "ConcurrencyConflict"
    VALIDATION_FAILURE = "ValidationFailure"
    TRANSACTION_FAILED = "TransactionFailed"


class LendingError(Exception):
    """Base class for lending engine errors."""

    kind: ErrorKind = ErrorKind.TRANSACTION_FAILED
    retryable: bool = False


class NotFoundError(LendingError, LookupError):
    kind = ErrorKind.NOT_FOUND


class BookNotFoundError(NotFoundError):
    def __init__(self, book_id: int) -> None:
        super().__init__(f"Book {book_id} does not exist.")
        self.book_id = book_id


class TransactionNotFoundError(NotFoundError):
    def __init__(self, transaction_id: int) -> None:
        super().__init__(f"Transaction {transaction_id} does not exist.")
        self.transaction_id = transaction_id


class BookUnavailableError(LendingError):
    kind = ErrorKind.UNAVAILABLE

    def __init__(self, book_id: int) -> None:
        super().__init__(f"Book {book_id} is not available for issuing.")
        self.book_id = book_id


class ConcurrencyConflictError(LendingError):
    """The store could not grant the write lock in time. Safe to retry."""

    kind = ErrorKind.CONCURRENCY_CONFLICT
    retryable = True


class ValidationFailureError(LendingError, ValueError):
    kind = ErrorKind.VALIDATION_FAILURE


class UnknownMemberError(ValidationFailureError):
    """Raised when a loan names a member that is not enrolled."""

    def __init__(self, member_id: int) -> None:
        super().__init__(f"Member {member_id} is not enrolled.")
        self.member_id = member_id


class TransactionFailedError(LendingError):
    kind = ErrorKind.TRANSACTION_FAILED

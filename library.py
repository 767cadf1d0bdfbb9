import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterator, List, NamedTuple, Optional

import database
from book import Book
from config import settings
from database import get_db_connection, initialize_database, unit_of_work
from errors import ErrorKind, TransactionNotFoundError, ValidationFailureError
from fines import FineCalculator
from lending import IssuanceCoordinator, IssueResult
from member import Member
from returns import ReturnProcessor, ReturnStateMachine
from stores import InventoryStore, LedgerStore, MemberStore
from transaction import Transaction, TransactionStatus
from utils.validators import CopyCountValidator, MemberValidator, TextValidator

logger = logging.getLogger(__name__)


class _Session(NamedTuple):
    conn: sqlite3.Connection
    inventory: InventoryStore
    ledger: LedgerStore
    members: MemberStore


class Library:
    """Books, members and loans backed by one SQLite database.

    Every public method opens its own connection, so one Library can be shared
    between threads and API workers.
    """

    def __init__(self, db_file: Optional[str] = None, *, lock_timeout: Optional[float] = None,
                 retry_attempts: Optional[int] = None, seed: Optional[bool] = None) -> None:
        self.db_file = database.resolve_database_file(db_file)
        self.lock_timeout = settings.db_lock_timeout if lock_timeout is None else lock_timeout
        self.retry_attempts = settings.issue_retry_attempts if retry_attempts is None else retry_attempts
        self.fines = FineCalculator()
        # Ensure the tables exist (and optionally the sample data) on every start
        initialize_database(self.db_file, seed=seed)

    @contextmanager
    def _session(self) -> Iterator[_Session]:
        conn = get_db_connection(self.db_file, timeout=self.lock_timeout)
        try:
            inventory = InventoryStore(conn)
            ledger = LedgerStore(conn)
            ReturnStateMachine(inventory).attach(ledger)
            yield _Session(conn, inventory, ledger, MemberStore(conn))
        finally:
            conn.close()

    # ------------------------- Lending ------------------------- #
    def issue_book(self, member_id: int, book_id: int, today: Optional[date] = None) -> IssueResult:
        """Lend one copy of ``book_id`` to ``member_id``.

        Lock conflicts are retried with a short backoff; every other outcome is
        returned as-is.
        """
        backoff = 0.05
        for attempt in range(self.retry_attempts + 1):
            with self._session() as s:
                result = IssuanceCoordinator(s.conn, s.inventory, s.ledger, s.members).issue(
                    member_id, book_id, today
                )
            if not result.retryable or attempt == self.retry_attempts:
                return result
            logger.warning(f"Retrying issuance of book {book_id} (attempt {attempt + 2}/{self.retry_attempts + 1})")
            time.sleep(backoff * (2 ** attempt))
        return result

    def return_book(self, transaction_id: int, return_date: Optional[date] = None) -> Transaction:
        """Close a loan. Returning an already returned loan changes nothing."""
        with self._session() as s:
            return ReturnProcessor(s.conn, s.ledger, self.fines).return_book(transaction_id, return_date)

    def calculate_fine(self, transaction_id: int, today: Optional[date] = None) -> Decimal:
        with self._session() as s:
            return self.fines.for_transaction_id(s.ledger, transaction_id, today or date.today())

    def mark_overdue(self, today: Optional[date] = None) -> int:
        with self._session() as s:
            return ReturnProcessor(s.conn, s.ledger, self.fines).mark_overdue(today)

    def get_transaction(self, transaction_id: int) -> Transaction:
        with self._session() as s:
            transaction = s.ledger.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def list_transactions(self, member_id: Optional[int] = None, book_id: Optional[int] = None,
                          status: Optional[TransactionStatus] = None) -> List[Transaction]:
        with self._session() as s:
            return s.ledger.list_transactions(member_id=member_id, book_id=book_id, status=status)

    def find_inventory_drift(self) -> List[Dict[str, Any]]:
        """Books whose copy counts disagree with their open loans (should always be empty)."""
        drift = []
        with self._session() as s:
            for book in s.inventory.list_books():
                open_loans = s.ledger.count_open_for_book(book.book_id)
                if open_loans != book.on_loan:
                    drift.append({
                        "book_id": book.book_id,
                        "total_copies": book.total_copies,
                        "available_copies": book.available_copies,
                        "open_loans": open_loans,
                    })
        return drift

    # ------------------------- Catalog ------------------------- #
    def add_book(self, book: Book) -> Book:
        """Add a new title. Every copy of a new title starts on the shelf."""
        if not TextValidator.validate_title(book.title):
            raise ValidationFailureError("Title must contain letters.")
        if book.author is not None and not TextValidator.validate_author(book.author):
            raise ValidationFailureError("Author cannot be blank or numeric.")
        if not CopyCountValidator.is_valid(book.total_copies, book.available_copies):
            raise ValidationFailureError("Copy counts must satisfy 0 <= available <= total.")
        if book.available_copies != book.total_copies:
            raise ValidationFailureError("A new title must have all of its copies available.")

        with self._session() as s:
            try:
                with unit_of_work(s.conn):
                    s.inventory.add_book(book)
            except sqlite3.IntegrityError as e:
                if book.isbn:
                    raise ValidationFailureError(f"Book with ISBN {book.isbn} already exists.") from e
                raise ValidationFailureError(f"Book {book.book_id} already exists.") from e
        logger.info(f"Cataloged book {book.book_id}: {book.title} x{book.total_copies}")
        return book

    def find_book(self, book_id: int) -> Optional[Book]:
        with self._session() as s:
            return s.inventory.get_book(book_id)

    def list_books(self) -> List[Book]:
        with self._session() as s:
            return s.inventory.list_books()

    def search_books(self, query: str) -> List[Book]:
        with self._session() as s:
            return s.inventory.search_books(query)

    # ------------------------- Members ------------------------- #
    def add_member(self, member: Member) -> Member:
        """Enroll a member. Email and phone must be unique across members."""
        if not member.first_name:
            raise ValidationFailureError("First name is required.")
        if member.email is not None and not MemberValidator.is_valid_email(member.email):
            raise ValidationFailureError(f"Invalid email address: {member.email}")
        if member.phone is not None:
            if not MemberValidator.is_valid_phone(member.phone):
                raise ValidationFailureError(f"Invalid phone number: {member.phone}")
            member.phone = MemberValidator.normalize_phone(member.phone)
        member.membership_date = member.membership_date or date.today().isoformat()

        with self._session() as s:
            try:
                with unit_of_work(s.conn):
                    if s.members.find_by_contact(member.email, member.phone):
                        raise ValidationFailureError("A member with this email or phone already exists.")
                    s.members.add_member(member)
            except sqlite3.IntegrityError as e:
                raise ValidationFailureError(f"Member {member.member_id} already exists.") from e
        logger.info(f"Enrolled member {member.member_id}: {member.full_name}")
        return member

    def find_member(self, member_id: int) -> Optional[Member]:
        with self._session() as s:
            return s.members.get_member(member_id)

    def list_members(self) -> List[Member]:
        with self._session() as s:
            return s.members.list_members()

    def close(self) -> None:
        """Compatibility helper for tests: connections are opened per operation, so nothing to close."""
        return None


def describe_result(result: IssueResult) -> str:
    """One-line summary of an issuance outcome for logs and the CLI."""
    if result.ok:
        return f"{result.message} (due {result.due_date.isoformat()})"
    prefix = "Retry later" if result.error is ErrorKind.CONCURRENCY_CONFLICT else "Error"
    return f"{prefix}: {result.message}"

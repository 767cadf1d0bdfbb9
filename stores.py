"""SQLite-backed record stores for books, members and loan transactions.

Each store wraps one connection. Methods that change state expect to run inside
``database.unit_of_work`` so they commit or roll back together with the rest of
the operation.
"""

from __future__ import annotations

import sqlite3
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional

from book import Book
from errors import BookNotFoundError, TransactionFailedError, TransactionNotFoundError, ValidationFailureError
from member import Member
from transaction import Transaction, TransactionStatus


# listener(transaction_after_update, previous_status)
StatusListener = Callable[[Transaction, TransactionStatus], None]

_BOOK_COLUMNS = (
    "book_id, title, author, publisher, publication_year, isbn, category, "
    "total_copies, available_copies, price, created_at"
)
_TRANSACTION_COLUMNS = (
    "transaction_id, member_id, book_id, issue_date, due_date, return_date, fine_amount, status"
)


class InventoryStore:
    """Book records and their copy counts."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def get_book(self, book_id: int) -> Optional[Book]:
        row = self.conn.execute(f"SELECT {_BOOK_COLUMNS} FROM books WHERE book_id = ?", (book_id,)).fetchone()
        return Book.from_dict(dict(row)) if row else None

    def get_book_for_update(self, book_id: int) -> Optional[Book]:
        """Read a book while the caller's unit of work holds the write lock.

        SQLite has no row locks; ``BEGIN IMMEDIATE`` already gives the caller the
        database write lock, which covers this row until commit or rollback.
        """
        if not self.conn.in_transaction:
            raise RuntimeError("get_book_for_update() must run inside unit_of_work()")
        return self.get_book(book_id)

    def decrement_available(self, book_id: int) -> None:
        cursor = self.conn.execute(
            "UPDATE books SET available_copies = available_copies - 1 "
            "WHERE book_id = ? AND available_copies > 0",
            (book_id,),
        )
        if cursor.rowcount != 1:
            raise TransactionFailedError(f"No copy of book {book_id} left to decrement.")

    def increment_available(self, book_id: int) -> None:
        cursor = self.conn.execute(
            "UPDATE books SET available_copies = available_copies + 1 "
            "WHERE book_id = ? AND available_copies < total_copies",
            (book_id,),
        )
        if cursor.rowcount != 1:
            if self.get_book(book_id) is None:
                raise BookNotFoundError(book_id)
            raise TransactionFailedError(f"All copies of book {book_id} are already on the shelf.")

    def add_book(self, book: Book) -> Book:
        if book.book_id is None:
            book.book_id = self.conn.execute("SELECT IFNULL(MAX(book_id), 0) + 1 FROM books").fetchone()[0]
        self.conn.execute(
            """INSERT INTO books (book_id, title, author, publisher, publication_year, isbn,
                                  category, total_copies, available_copies, price)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (book.book_id, book.title, book.author, book.publisher, book.publication_year, book.isbn,
             book.category, book.total_copies, book.available_copies,
             str(book.price) if book.price is not None else None),
        )
        return book

    def list_books(self) -> List[Book]:
        rows = self.conn.execute(f"SELECT {_BOOK_COLUMNS} FROM books ORDER BY book_id").fetchall()
        return [Book.from_dict(dict(row)) for row in rows]

    def search_books(self, query: str) -> List[Book]:
        """Search for books by title, author or category."""
        like = f"%{query}%"
        rows = self.conn.execute(
            f"SELECT {_BOOK_COLUMNS} FROM books WHERE title LIKE ? OR author LIKE ? OR category LIKE ? "
            "ORDER BY title",
            (like, like, like),
        ).fetchall()
        return [Book.from_dict(dict(row)) for row in rows]


class MemberStore:
    """Enrolled members. The lending engine only reads from here."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def get_member(self, member_id: int) -> Optional[Member]:
        row = self.conn.execute("SELECT * FROM members WHERE member_id = ?", (member_id,)).fetchone()
        return Member.from_dict(dict(row)) if row else None

    def find_by_contact(self, email: Optional[str], phone: Optional[str]) -> Optional[Member]:
        row = self.conn.execute(
            "SELECT * FROM members WHERE email = ? OR phone = ? LIMIT 1", (email, phone)
        ).fetchone()
        return Member.from_dict(dict(row)) if row else None

    def add_member(self, member: Member) -> Member:
        if member.member_id is None:
            member.member_id = self.conn.execute(
                "SELECT IFNULL(MAX(member_id), 0) + 1 FROM members"
            ).fetchone()[0]
        self.conn.execute(
            """INSERT INTO members (member_id, first_name, last_name, email, phone, address,
                                    membership_date, membership_type)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (member.member_id, member.first_name, member.last_name, member.email, member.phone,
             member.address, member.membership_date, member.membership_type.value),
        )
        return member

    def list_members(self) -> List[Member]:
        rows = self.conn.execute("SELECT * FROM members ORDER BY member_id").fetchall()
        return [Member.from_dict(dict(row)) for row in rows]


class LedgerStore:
    """Loan records, open or closed, plus the status-change hook."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._listeners: List[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> None:
        """Register a callback run after every status change, inside the same unit of work."""
        self._listeners.append(listener)

    def next_transaction_id(self) -> int:
        # Only safe under the unit of work's write lock
        return self.conn.execute("SELECT IFNULL(MAX(transaction_id), 0) + 1 FROM transactions").fetchone()[0]

    def insert_transaction(self, record: Transaction) -> None:
        self.conn.execute(
            f"INSERT INTO transactions ({_TRANSACTION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (record.transaction_id, record.member_id, record.book_id, record.issue_date.isoformat(),
             record.due_date.isoformat(), record.return_date.isoformat() if record.return_date else None,
             str(record.fine_amount), record.status.value),
        )

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        row = self.conn.execute(
            f"SELECT {_TRANSACTION_COLUMNS} FROM transactions WHERE transaction_id = ?", (transaction_id,)
        ).fetchone()
        return Transaction.from_dict(dict(row)) if row else None

    def update_transaction_status(self, transaction_id: int, new_status: TransactionStatus,
                                  return_date: Optional[date] = None,
                                  fine_amount: Optional[Decimal] = None) -> Transaction:
        """Change a transaction's status and notify listeners with the previous status."""
        current = self.get_transaction(transaction_id)
        if current is None:
            raise TransactionNotFoundError(transaction_id)
        previous = current.status
        if previous is TransactionStatus.RETURNED and TransactionStatus(new_status) is not TransactionStatus.RETURNED:
            raise ValidationFailureError(f"Transaction {transaction_id} is already returned and cannot be reopened.")

        self.conn.execute(
            """UPDATE transactions
               SET status = ?,
                   return_date = COALESCE(?, return_date),
                   fine_amount = COALESCE(?, fine_amount)
               WHERE transaction_id = ?""",
            (TransactionStatus(new_status).value,
             return_date.isoformat() if return_date else None,
             str(fine_amount) if fine_amount is not None else None,
             transaction_id),
        )
        updated = self.get_transaction(transaction_id)
        for listener in self._listeners:
            listener(updated, previous)
        return updated

    def list_transactions(self, member_id: Optional[int] = None, book_id: Optional[int] = None,
                          status: Optional[TransactionStatus] = None) -> List[Transaction]:
        clauses, params = [], []
        if member_id is not None:
            clauses.append("member_id = ?")
            params.append(member_id)
        if book_id is not None:
            clauses.append("book_id = ?")
            params.append(book_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(TransactionStatus(status).value)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.conn.execute(
            f"SELECT {_TRANSACTION_COLUMNS} FROM transactions{where} ORDER BY transaction_id", params
        ).fetchall()
        return [Transaction.from_dict(dict(row)) for row in rows]

    def list_past_due(self, today: date) -> List[Transaction]:
        rows = self.conn.execute(
            f"SELECT {_TRANSACTION_COLUMNS} FROM transactions "
            "WHERE status = 'Pending' AND due_date < ? ORDER BY transaction_id",
            (today.isoformat(),),
        ).fetchall()
        return [Transaction.from_dict(dict(row)) for row in rows]

    def count_open_for_book(self, book_id: int) -> int:
        return self.conn.execute(
            "SELECT COUNT(*) FROM transactions WHERE book_id = ? AND status IN ('Pending', 'Overdue')",
            (book_id,),
        ).fetchone()[0]

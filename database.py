import json
import logging
import os
import sqlite3
import tempfile
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from dotenv import load_dotenv

from config import settings
from errors import ConcurrencyConflictError

# Make sure .env is loaded before the environment is read below.
load_dotenv()

logger = logging.getLogger(__name__)

# Default database file.
# Priority:
# 1) LIBRARY_DB_FILE (explicit override)
# 2) LIBRARY_DATA_FILE (settings.data_file, may come from .env)
# 3) A per-process temp file
DATABASE_FILE = (
    os.environ.get("LIBRARY_DB_FILE")
    or settings.data_file
    or os.path.join(tempfile.gettempdir(), f"library_{os.getpid()}.db")
)

_LOCK_MESSAGES = ("database is locked", "database table is locked", "database is busy")


def resolve_database_file(db_file: Optional[str] = None) -> str:
    """Pick the database file for a caller: explicit path, environment, then module default."""
    return db_file or os.environ.get("LIBRARY_DB_FILE") or DATABASE_FILE


def get_db_connection(db_file: Optional[str] = None, timeout: Optional[float] = None) -> sqlite3.Connection:
    """Open a connection in autocommit mode; writes go through unit_of_work()."""
    conn = sqlite3.connect(
        resolve_database_file(db_file),
        timeout=settings.db_lock_timeout if timeout is None else timeout,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    # WAL lets readers proceed while one writer holds the lock
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def is_lock_error(exc: sqlite3.Error) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and any(m in str(exc).lower() for m in _LOCK_MESSAGES)


@contextmanager
def unit_of_work(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block as one write transaction holding the database write lock.

    ``BEGIN IMMEDIATE`` takes the lock up front, so every read inside the block
    sees the latest committed state and no other writer can interleave. The
    block commits on normal exit and rolls back on any exception.
    """
    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.OperationalError as exc:
        if is_lock_error(exc):
            raise ConcurrencyConflictError("Could not acquire the write lock; retry the operation.") from exc
        raise
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    try:
        conn.commit()
    except sqlite3.OperationalError as exc:
        conn.rollback()
        if is_lock_error(exc):
            raise ConcurrencyConflictError("Commit was blocked by another writer; retry the operation.") from exc
        raise


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the tables if they do not exist yet."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                book_id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT,
                publisher TEXT,
                publication_year TEXT,
                isbn TEXT UNIQUE,
                category TEXT,
                total_copies INTEGER NOT NULL CHECK(total_copies >= 0),
                available_copies INTEGER NOT NULL
                    CHECK(available_copies >= 0 AND available_copies <= total_copies),
                price TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS members (
                member_id INTEGER PRIMARY KEY,
                first_name TEXT NOT NULL,
                last_name TEXT,
                email TEXT UNIQUE,
                phone TEXT UNIQUE,
                address TEXT,
                membership_date TEXT,
                membership_type TEXT NOT NULL
                    CHECK(membership_type IN ('Student', 'Faculty', 'Staff'))
            )
        """)

        # fine_amount is stored as text so Decimal values round-trip exactly
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                transaction_id INTEGER PRIMARY KEY,
                member_id INTEGER NOT NULL REFERENCES members(member_id),
                book_id INTEGER NOT NULL REFERENCES books(book_id),
                issue_date TEXT NOT NULL,
                due_date TEXT NOT NULL,
                return_date TEXT,
                fine_amount TEXT NOT NULL DEFAULT '0.00',
                status TEXT NOT NULL DEFAULT 'Pending'
                    CHECK(status IN ('Pending', 'Overdue', 'Returned'))
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_member ON transactions(member_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_book ON transactions(book_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_status ON transactions(status)")
    finally:
        conn.close()


def load_sample_data(db_file: Optional[str] = None, path: Optional[str] = None) -> int:
    """Load the sample catalog, members and loans into an empty database.

    Copy counts in the file are reconciled against the open loans it contains,
    so the loaded data satisfies the inventory invariant. Returns the number of
    books loaded (0 when the database already has books or the file is missing).
    """
    path = path or settings.sample_data_file
    conn = get_db_connection(db_file)
    try:
        book_count = conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]
        if book_count > 0:
            return 0
        if not os.path.exists(path):
            logger.warning(f"Sample data file not found: {path}")
            return 0

        try:
            with open(path, "r", encoding="utf-8") as f:
                data: Dict[str, Any] = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Could not read sample data from {path}: {e}")
            return 0

        books = data.get("books", [])
        with unit_of_work(conn):
            conn.executemany(
                """INSERT INTO books (book_id, title, author, publisher, publication_year, isbn,
                                      category, total_copies, available_copies, price)
                   VALUES (:book_id, :title, :author, :publisher, :publication_year, :isbn,
                           :category, :total_copies, :total_copies, :price)""",
                [{**{"publisher": None, "publication_year": None, "isbn": None, "category": None,
                     "price": None}, **b} for b in books],
            )
            conn.executemany(
                """INSERT INTO members (member_id, first_name, last_name, email, phone, address,
                                        membership_date, membership_type)
                   VALUES (:member_id, :first_name, :last_name, :email, :phone, :address,
                           :membership_date, :membership_type)""",
                data.get("members", []),
            )
            conn.executemany(
                """INSERT INTO transactions (transaction_id, member_id, book_id, issue_date, due_date,
                                             return_date, fine_amount, status)
                   VALUES (:transaction_id, :member_id, :book_id, :issue_date, :due_date,
                           :return_date, :fine_amount, :status)""",
                data.get("transactions", []),
            )
            conn.execute("""
                UPDATE books
                SET available_copies = total_copies - (
                    SELECT COUNT(*) FROM transactions t
                    WHERE t.book_id = books.book_id AND t.status IN ('Pending', 'Overdue')
                )
            """)
        logger.info(f"Loaded {len(books)} sample books from {path}")
        return len(books)
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None, seed: Optional[bool] = None) -> None:
    """Create tables and, when requested, load the sample data."""
    create_tables(db_file)
    if settings.seed_sample_data if seed is None else seed:
        load_sample_data(db_file)

import logging
import subprocess
import sys
from datetime import date
from typing import Optional

import typer

import database
from config import settings
from errors import LendingError
from library import Library, describe_result
from transaction import TransactionStatus
from utils.ui_helpers import (
    print_book_list,
    print_fine_result,
    print_member_list,
    print_transaction_list,
    set_output_mode,
)

APP_NAME = "Library Lending CLI"


class LibraryManager:
    """Lazily created Library shared by the CLI commands."""

    _instance: Optional[Library] = None
    _db_file_snapshot: Optional[str] = None

    @classmethod
    def get_instance(cls) -> Library:
        current_db = database.resolve_database_file()
        # Rebuild when the database file changes (e.g. per-test databases)
        if cls._instance is None or current_db != cls._db_file_snapshot:
            cls._instance = Library(current_db)
            cls._db_file_snapshot = current_db
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None
        cls._db_file_snapshot = None


def _parse_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Expected a date like 2025-06-15, got {value!r}")


# --- Typer CLI app ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global options for the CLI (e.g. output mode)."""
    logging.basicConfig(level=settings.log_level)
    if output:
        set_output_mode(output)


@app.command("init")
def cli_init(seed: bool = typer.Option(False, "--seed", help="Load the sample catalog into an empty database")):
    """Create the tables, optionally loading the sample data."""
    db_file = database.resolve_database_file()
    database.initialize_database(db_file, seed=False)
    loaded = database.load_sample_data(db_file) if seed else 0
    print(f"Database ready at {db_file}")
    if seed:
        print(f"Loaded {loaded} sample books.")


@app.command("books")
def cli_books(query: Optional[str] = typer.Option(None, "--query", "-q", help="Search title, author or category")):
    """List books with their copy counts."""
    lib = LibraryManager.get_instance()
    print_book_list(lib.search_books(query) if query else lib.list_books())


@app.command("members")
def cli_members():
    """List enrolled members."""
    print_member_list(LibraryManager.get_instance().list_members())


@app.command("issue")
def cli_issue(member_id: int, book_id: int):
    """Issue a book to a member."""
    result = LibraryManager.get_instance().issue_book(member_id, book_id)
    print(describe_result(result))
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("return")
def cli_return(
    transaction_id: int,
    on: Optional[str] = typer.Option(None, "--date", help="Return date (YYYY-MM-DD), defaults to today"),
):
    """Return a borrowed book and record any fine."""
    try:
        transaction = LibraryManager.get_instance().return_book(transaction_id, _parse_date(on))
    except LendingError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print(
        f"Transaction {transaction.transaction_id} returned on {transaction.return_date.isoformat()}. "
        f"Fine: {transaction.fine_amount} {settings.fine_currency}"
    )


@app.command("fine")
def cli_fine(
    transaction_id: int,
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Compute as of this date (YYYY-MM-DD)"),
):
    """Show the fine for a transaction."""
    try:
        amount = LibraryManager.get_instance().calculate_fine(transaction_id, _parse_date(as_of))
    except LendingError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print_fine_result(transaction_id, amount, settings.fine_currency)


@app.command("loans")
def cli_loans(
    member_id: Optional[int] = typer.Option(None, "--member", help="Only this member's loans"),
    book_id: Optional[int] = typer.Option(None, "--book", help="Only loans of this book"),
    status: Optional[TransactionStatus] = typer.Option(None, "--status", help="Pending, Overdue or Returned"),
):
    """List loan transactions."""
    lib = LibraryManager.get_instance()
    print_transaction_list(lib.list_transactions(member_id=member_id, book_id=book_id, status=status))


@app.command("mark-overdue")
def cli_mark_overdue(as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date (YYYY-MM-DD)")):
    """Flag pending loans past their due date as Overdue."""
    try:
        count = LibraryManager.get_instance().mark_overdue(_parse_date(as_of))
    except LendingError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print(f"Marked {count} transaction(s) overdue.")


@app.command("serve")
def cli_serve(reload: bool = typer.Option(False, "--reload", help="Restart on code changes")):
    """Start the HTTP API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    subprocess.run(args)


if __name__ == "__main__":
    app()

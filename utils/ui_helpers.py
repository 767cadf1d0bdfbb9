import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable that controls CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _print_rows(title: str, columns: List[str], rows: List[Dict[str, Any]], empty_message: str,
                plain_format: str) -> None:
    """Print records in the current output mode.
    - plain: one formatted line per record, or the empty message
    - json: JSON array of the records
    - rich: Rich table
    """
    mode = get_output_mode()

    if not rows:
        print(empty_message)
        return

    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False, default=str))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for column in columns:
            table.add_column(column.replace("_", " ").title(), style="white")
        for row in rows:
            table.add_row(*("" if row.get(c) is None else str(row.get(c)) for c in columns))
        _console.print(table)
    else:
        for row in rows:
            print(plain_format.format(**row))


def print_book_list(books: List[Any]) -> None:
    _print_rows(
        "📚 Books",
        ["book_id", "title", "author", "category", "available_copies", "total_copies"],
        [b.to_dict() for b in books],
        "No books in library.",
        "{book_id} - {title} by {author} ({available_copies}/{total_copies} available)",
    )


def print_member_list(members: List[Any]) -> None:
    _print_rows(
        "👥 Members",
        ["member_id", "first_name", "last_name", "email", "membership_type"],
        [m.to_dict() for m in members],
        "No members enrolled.",
        "{member_id} - {first_name} {last_name} <{email}> [{membership_type}]",
    )


def print_transaction_list(transactions: List[Any]) -> None:
    _print_rows(
        "🔁 Loans",
        ["transaction_id", "member_id", "book_id", "issue_date", "due_date", "return_date", "fine_amount", "status"],
        [t.to_dict() for t in transactions],
        "No transactions found.",
        "#{transaction_id} book {book_id} -> member {member_id}, due {due_date} [{status}]",
    )


def print_fine_result(transaction_id: int, amount: Any, currency: str) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps({"transaction_id": transaction_id, "fine_amount": str(amount), "currency": currency}))
    elif mode == "rich":
        _console.print(Panel.fit(f"[bold]Fine:[/] {amount} {currency}", title=f"💰 Transaction {transaction_id}",
                                 border_style="blue"))
    else:
        print(f"Fine for transaction {transaction_id}: {amount} {currency}")

import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from library_desk.book import Book
from library_desk.date_utils import format_date
from library_desk.user import BorrowRecord, User

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIBRARY_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _availability(book: Book) -> str:
    return f"{book.available_copies}/{book.total_copies}"


def print_book_list(books: List[Book], empty_message: str = "No books in the library.") -> None:
    """Print books according to the output mode.
    - plain: 'ID - Title by Author [available/total]' lines
    - json: JSON array of book dicts
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print(empty_message)
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Available", justify="right")
        table.add_column("Status")
        for b in books:
            status = "Active" if b.active else "Inactive"
            if b.is_digital:
                status += " (digital)"
            table.add_row(b.book_id, b.title, b.author, _availability(b), status)
        _console.print(table)
    else:
        for b in books:
            suffix = "" if b.active else " (inactive)"
            print(f"{b.book_id} - {b.title} by {b.author} [{_availability(b)}]{suffix}")


def print_book_detail(book: Book) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(book.to_dict(), ensure_ascii=False))
        return
    lines = [
        f"Book ID: {book.book_id}",
        f"Title: {book.title}",
        f"Author: {book.author}",
        f"Total Copies: {book.total_copies}",
        f"Available Copies: {book.available_copies}",
        f"Status: {'Active' if book.active else 'Inactive'}",
    ]
    if book.digital is not None:
        lines.append(f"Download Link: {book.digital.download_link}")
        lines.append(f"Download Limit: {book.digital.download_limit}")
    if mode == "rich":
        _console.print(Panel.fit("\n".join(lines), title="Book Found", border_style="blue"))
    else:
        print("Book Found")
        for line in lines:
            print(line)


def print_user_list(users: List[User]) -> None:
    mode = get_output_mode()

    if not users:
        print("No users registered.")
        return

    if mode == "json":
        print(json.dumps([u.to_dict() for u in users], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="Users", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Name")
        table.add_column("Email")
        table.add_column("Phone")
        table.add_column("Borrowed", justify="right")
        for u in users:
            table.add_row(u.user_id, u.name, u.email, u.phone, str(u.active_borrow_count))
        _console.print(table)
    else:
        for u in users:
            suffix = "" if u.active else " (inactive)"
            print(f"{u.user_id} - {u.name} <{u.email}> borrowed: {u.active_borrow_count}{suffix}")


def print_borrow_records(records: List[BorrowRecord], empty_message: str = "No active borrowed books.") -> None:
    mode = get_output_mode()

    if not records:
        print(empty_message)
        return

    if mode == "json":
        print(json.dumps([r.to_dict() for r in records], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="Borrowed Books", header_style="bold cyan")
        table.add_column("Book ID", style="magenta", no_wrap=True)
        table.add_column("Borrow Date")
        table.add_column("Return Date")
        for r in records:
            returned = format_date(r.return_date) if r.return_date else "-"
            table.add_row(r.book_id, format_date(r.borrow_date), returned)
        _console.print(table)
    else:
        for r in records:
            line = f"Book ID: {r.book_id} | Borrow Date: {format_date(r.borrow_date)}"
            if r.returned:
                line += f" | Returned: {format_date(r.return_date)}"
            print(line)


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics according to the output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = [
        ("Total Book Titles", stats.get("total_titles", 0)),
        ("Total Available Copies", stats.get("total_available_copies", 0)),
        ("Total Borrowed Copies", stats.get("total_borrowed_copies", 0)),
        ("Total Registered Users", stats.get("total_users", 0)),
    ]

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {value}" for label, value in labels)
        _console.print(Panel.fit(content, title="Library Statistics", border_style="blue"))
    else:
        for label, value in labels:
            print(f"{label}: {value}")

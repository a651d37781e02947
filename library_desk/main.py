import dataclasses
import logging
import subprocess
import sys
from functools import wraps
from typing import Optional

import typer

from library_desk.book import Book, DigitalExtras
from library_desk.config import settings
from library_desk.date_utils import format_date
from library_desk.exceptions import LibraryError
from library_desk.lending import LendingService, open_service
from library_desk.ui_helpers import (
    print_book_detail,
    print_book_list,
    print_borrow_records,
    print_stats_result,
    print_user_list,
    set_output_mode,
)
from library_desk.user import User
from library_desk.validators import TextValidator

APP_NAME = "Library Desk CLI"

logger = logging.getLogger(__name__)

# --- Typer CLI Application ---
app = typer.Typer(help=APP_NAME, no_args_is_help=True)


@app.callback()
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output format: plain | json | rich (default: plain)"
    ),
    storage: Optional[str] = typer.Option(None, "--storage", help="Storage backend: sqlite | file"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file"),
    data_file: Optional[str] = typer.Option(None, "--data-file", help="Flat-file data document"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log lending activity to stderr"),
):
    """Global options for the CLI (output mode, storage location)."""
    if output:
        set_output_mode(output)
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    overrides = {}
    if storage:
        overrides["storage_backend"] = storage
    if db:
        overrides["database_file"] = db
    if data_file:
        overrides["data_file"] = data_file
    ctx.obj = dataclasses.replace(settings, **overrides)


def _service(ctx: typer.Context) -> LendingService:
    service = ctx.meta.get("service")
    if service is None:
        service = open_service(ctx.obj or settings)
        ctx.meta["service"] = service
        ctx.call_on_close(service.close)
    return service


# Helper decorator reporting lending failures as messages with a non-zero exit
def report_errors(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LibraryError as e:
            print(f"Error: {e}")
            raise typer.Exit(code=1)
    return wrapper


# ------------------------- Books ------------------------- #
@app.command("add-book")
@report_errors
def cli_add_book(
    ctx: typer.Context,
    book_id: str,
    title: str,
    author: str,
    copies: int = typer.Option(1, "--copies", "-c", help="Number of copies"),
    download_link: Optional[str] = typer.Option(None, "--download-link", help="Digital edition URL"),
    download_limit: int = typer.Option(0, "--download-limit", help="Maximum downloads of the digital edition"),
):
    """Add a new book to the catalog."""
    digital = DigitalExtras(download_link, download_limit) if download_link else None
    title = TextValidator.sanitize_text(title)
    author = TextValidator.sanitize_text(author)
    try:
        book = Book(book_id, title, author, total_copies=copies, digital=digital)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    _service(ctx).add_book(book)
    print(f"Book added successfully: {book.book_id} - {book.title}")


@app.command("remove-book")
@report_errors
def cli_remove_book(ctx: typer.Context, book_id: str):
    """Remove a book. Fails while any copy is on loan."""
    _service(ctx).remove_book(book_id)
    print(f"Book {book_id} removed.")


@app.command("update-book")
@report_errors
def cli_update_book(
    ctx: typer.Context,
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    copies: Optional[int] = typer.Option(None, "--copies", "-c"),
):
    """Update title, author or copy count of a book."""
    book = _service(ctx).update_book(book_id, title=title, author=author, total_copies=copies)
    print(f"Book {book.book_id} updated.")
    print_book_detail(book)


@app.command("book-status")
@report_errors
def cli_book_status(ctx: typer.Context, book_id: str, active: bool = typer.Option(..., "--active/--inactive")):
    """Activate or deactivate a book for issuing."""
    _service(ctx).set_book_active(book_id, active)
    print(f"Book {book_id} is now {'active' if active else 'inactive'}.")


@app.command("find-book")
@report_errors
def cli_find_book(ctx: typer.Context, book_id: str):
    """Find a book by ID and show its details."""
    print_book_detail(_service(ctx).find_book(book_id))


@app.command("search")
@report_errors
def cli_search(ctx: typer.Context, query: str):
    """Search books by title, author or ID."""
    results = _service(ctx).search_books(query)
    print_book_list(results, empty_message="No books found matching your search.")


@app.command("list-books")
@report_errors
def cli_list_books(ctx: typer.Context):
    """List all books in the catalog."""
    print_book_list(_service(ctx).list_books())


# ------------------------- Users ------------------------- #
@app.command("add-user")
@report_errors
def cli_add_user(
    ctx: typer.Context,
    user_id: str,
    name: str,
    email: str = typer.Option("", "--email", "-e"),
    phone: str = typer.Option("", "--phone", "-p"),
):
    """Register a new user."""
    user = _service(ctx).register_user(User(user_id, TextValidator.sanitize_text(name), email=email, phone=phone))
    print(f"User registered successfully: {user.user_id} - {user.name}")


@app.command("remove-user")
@report_errors
def cli_remove_user(ctx: typer.Context, user_id: str):
    """Remove a user. Fails while the user has borrowed books."""
    _service(ctx).remove_user(user_id)
    print(f"User {user_id} removed.")


@app.command("user-status")
@report_errors
def cli_user_status(ctx: typer.Context, user_id: str, active: bool = typer.Option(..., "--active/--inactive")):
    """Activate or deactivate a user for borrowing."""
    _service(ctx).set_user_active(user_id, active)
    print(f"User {user_id} is now {'active' if active else 'inactive'}.")


@app.command("list-users")
@report_errors
def cli_list_users(ctx: typer.Context):
    """List all registered users."""
    print_user_list(_service(ctx).list_users())


# ------------------------- Lending ------------------------- #
@app.command("issue")
@report_errors
def cli_issue(
    ctx: typer.Context,
    user_id: str,
    book_id: str,
    date: Optional[str] = typer.Option(None, "--date", "-d", help="Issue date DD/MM/YYYY (default: today)"),
):
    """Issue a book to a user."""
    service = _service(ctx)
    record = service.issue_book(user_id, book_id, date)
    print(f"Book {book_id} issued to {user_id} on {format_date(record.borrow_date)}.")
    print(f"Please return by {format_date(service.due_date(record.borrow_date))} to avoid fine.")


@app.command("return")
@report_errors
def cli_return(
    ctx: typer.Context,
    user_id: str,
    book_id: str,
    date: Optional[str] = typer.Option(None, "--date", "-d", help="Return date DD/MM/YYYY (default: today)"),
):
    """Return a borrowed book and report any fine."""
    result = _service(ctx).return_book(user_id, book_id, date)
    print(f"Book {book_id} returned by {user_id} on {format_date(result.record.return_date)}.")
    if result.fine > 0:
        print(f"Fine Amount: {result.fine:.2f} ({result.overdue_days} days overdue)")
    else:
        print("No fine applicable.")


@app.command("borrowed")
@report_errors
def cli_borrowed(ctx: typer.Context, user_id: str):
    """Show a user's currently borrowed books."""
    print_borrow_records(_service(ctx).list_active_borrows(user_id))


@app.command("history")
@report_errors
def cli_history(ctx: typer.Context, user_id: str):
    """Show a user's full borrow history."""
    print_borrow_records(_service(ctx).borrow_history(user_id), empty_message="No borrow history.")


@app.command("stats")
@report_errors
def cli_stats(ctx: typer.Context):
    """Show library statistics."""
    print_stats_result(_service(ctx).statistics())


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, "--host"),
    port: int = typer.Option(settings.api_port, "--port"),
):
    """Start the HTTP API with uvicorn."""
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "library_desk.api:app",
        "--host", host,
        "--port", str(port),
    ]
    subprocess.run(args, check=False)


if __name__ == "__main__":
    app()

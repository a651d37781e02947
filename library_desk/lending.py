"""Lending lifecycle: issue, return and fines across the catalog and roster.

Every mutation runs under one re-entrant lock and inside a transaction that
snapshots both the catalog and the roster, applies the change, commits it to
the store and restores both snapshots if anything on the way raises. Memory
and store therefore never disagree about a loan.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Dict, Iterator, List, Optional

from library_desk import date_utils
from library_desk.book import Book
from library_desk.catalog import Catalog
from library_desk.config import Settings, settings
from library_desk.exceptions import (
    AlreadyBorrowedError,
    BookNotFoundError,
    InvalidDateRangeError,
    NotAvailableError,
    NotBorrowedError,
    ResourceBusyError,
    UserNotFoundError,
    ValidationError,
)
from library_desk.roster import Roster
from library_desk.store import StoreAdapter, get_store
from library_desk.user import BorrowRecord, User
from library_desk.validators import ContactValidator, IdValidator, TextValidator

logger = logging.getLogger(__name__)


@dataclass
class ReturnResult:
    record: BorrowRecord
    fine: float
    days_borrowed: int
    overdue_days: int


class LendingService:
    """Coordinates catalog and roster mutations and delegates durability to a store."""

    def __init__(self, store: StoreAdapter, catalog: Optional[Catalog] = None,
                 roster: Optional[Roster] = None, *,
                 grace_period_days: Optional[int] = None,
                 fine_per_day: Optional[float] = None,
                 max_active_borrows: Optional[int] = None,
                 clock: Optional[Callable[[], date]] = None) -> None:
        self.store = store
        self.catalog = catalog if catalog is not None else Catalog()
        self.roster = roster if roster is not None else Roster()
        if max_active_borrows is not None:
            self.roster.max_active_borrows = max_active_borrows
        self.grace_period_days = settings.grace_period_days if grace_period_days is None else grace_period_days
        self.fine_per_day = settings.fine_per_day if fine_per_day is None else fine_per_day
        self._clock = clock or date_utils.today
        self._lock = threading.RLock()

    @classmethod
    def from_store(cls, store: StoreAdapter, config: Optional[Settings] = None, **kwargs) -> "LendingService":
        """Load catalog and roster state from ``store`` and wrap it in a service."""
        config = config or settings
        catalog = Catalog(store.load_catalog())
        users = []
        for user, records in store.load_roster():
            user.borrow_history = list(records)
            users.append(user)
        roster = Roster(users, max_active_borrows=config.max_active_borrows)
        kwargs.setdefault("grace_period_days", config.grace_period_days)
        kwargs.setdefault("fine_per_day", config.fine_per_day)
        logger.info("Loaded %d books and %d users", len(catalog), len(roster))
        return cls(store, catalog, roster, **kwargs)

    @property
    def max_active_borrows(self) -> int:
        return self.roster.max_active_borrows

    def close(self) -> None:
        self.store.close()

    # ------------------------- Transactions ------------------------- #
    @contextmanager
    def _transaction(self, action: str) -> Iterator[None]:
        with self._lock:
            catalog_state = self.catalog.snapshot()
            roster_state = self.roster.snapshot()
            try:
                yield
                self.store.save_all(self.catalog.list_books(), self.roster.list_users())
            except Exception as e:
                self.catalog.restore(catalog_state)
                self.roster.restore(roster_state)
                logger.warning("%s rolled back: %s", action, e)
                raise

    def _resolve_date(self, value) -> date:
        if value is None:
            return self._clock()
        return date_utils.parse_date(value)

    # ------------------------- Fines ------------------------- #
    def due_date(self, borrow_date) -> date:
        return date_utils.parse_date(borrow_date) + timedelta(days=self.grace_period_days)

    def overdue_days(self, borrow_date, return_date) -> int:
        days = date_utils.days_between(borrow_date, return_date)
        if days < 0:
            raise InvalidDateRangeError(
                f"Return date {return_date} precedes borrow date {borrow_date}."
            )
        return max(0, days - self.grace_period_days)

    def compute_fine(self, borrow_date, return_date) -> float:
        """Fine for a loan: whole days past the grace period times the daily rate."""
        return float(self.overdue_days(borrow_date, return_date) * self.fine_per_day)

    # ------------------------- Lending ------------------------- #
    def issue_book(self, user_id: str, book_id: str, today=None) -> BorrowRecord:
        issue_date = self._resolve_date(today)
        with self._lock:
            user = self.roster.get(user_id)
            if user is None or not user.active:
                raise UserNotFoundError(f"User with ID {user_id} not found.")
            book = self.catalog.get(book_id)
            if book is None or not book.active:
                raise BookNotFoundError(f"Book with ID {book_id} not found.")
            if self.roster.has_active_borrow(user_id, book_id):
                raise AlreadyBorrowedError(f"User {user_id} has already borrowed book {book_id}.")
            if book.available_copies == 0:
                raise NotAvailableError(f"No copies of book {book_id} are available.")

            with self._transaction(f"Issue of book {book_id} to user {user_id}"):
                self.catalog.decrement_available(book_id)
                record = self.roster.record_borrow(user_id, book_id, issue_date)

        logger.info("Issued book %s to user %s on %s (due %s)",
                    book_id, user_id, issue_date, self.due_date(issue_date))
        return record

    def return_book(self, user_id: str, book_id: str, today=None) -> ReturnResult:
        return_date = self._resolve_date(today)
        with self._lock:
            record = self.roster.active_borrow(user_id, book_id)
            if record is None:
                raise NotBorrowedError(f"User {user_id} has not borrowed book {book_id}.")
            overdue = self.overdue_days(record.borrow_date, return_date)

            with self._transaction(f"Return of book {book_id} by user {user_id}"):
                borrow_date = self.roster.record_return(user_id, book_id, return_date)
                self.catalog.increment_available(book_id)

        fine = float(overdue * self.fine_per_day)
        logger.info("User %s returned book %s on %s, fine %.2f", user_id, book_id, return_date, fine)
        return ReturnResult(
            record=record,
            fine=fine,
            days_borrowed=(return_date - borrow_date).days,
            overdue_days=overdue,
        )

    def list_active_borrows(self, user_id: str) -> List[BorrowRecord]:
        with self._lock:
            return list(self.roster.list_active_borrows(user_id))

    def borrow_history(self, user_id: str) -> List[BorrowRecord]:
        with self._lock:
            return self.roster.borrow_history(user_id)

    # ------------------------- Books ------------------------- #
    def add_book(self, book: Book) -> Book:
        if not IdValidator.is_valid_id(book.book_id):
            raise ValidationError(f"Invalid book ID '{book.book_id}'.")
        if not TextValidator.validate_title(book.title):
            raise ValidationError("Title cannot be empty.")
        if book.total_copies < 1:
            raise ValidationError("Number of copies must be positive.")
        if book.available_copies != book.total_copies:
            raise ValidationError("A new book cannot have copies on loan.")
        if book.digital is not None and book.digital.download_limit < 0:
            raise ValidationError("Download limit cannot be negative.")

        with self._transaction(f"Adding book {book.book_id}"):
            self.catalog.add(book)
        logger.info("Added book %s (%d copies)", book.book_id, book.total_copies)
        return book

    def remove_book(self, book_id: str) -> Book:
        with self._transaction(f"Removing book {book_id}"):
            book = self.catalog.remove(book_id)
        logger.info("Removed book %s", book_id)
        return book

    def update_book(self, book_id: str, *, title: Optional[str] = None, author: Optional[str] = None,
                    total_copies: Optional[int] = None) -> Book:
        """Change title, author and/or copy count. Copies on loan bound the new total."""
        if title is None and author is None and total_copies is None:
            raise ValidationError("Nothing to update. Provide title, author and/or total copies.")
        if title is not None and not TextValidator.validate_title(title):
            raise ValidationError("Title cannot be empty.")
        if author is not None and not TextValidator.validate_title(author):
            raise ValidationError("Author cannot be empty.")
        with self._transaction(f"Updating book {book_id}"):
            book = self.catalog.find(book_id)
            if title is not None:
                book.title = title.strip()
            if author is not None:
                book.author = author.strip()
            if total_copies is not None:
                if total_copies < 1:
                    raise ValidationError("Number of copies must be positive.")
                if total_copies < book.borrowed_copies:
                    raise ResourceBusyError(
                        f"Book {book_id} has {book.borrowed_copies} copies on loan; "
                        f"total cannot drop to {total_copies}."
                    )
                book.available_copies = total_copies - book.borrowed_copies
                book.total_copies = total_copies
        return book

    def set_book_active(self, book_id: str, active: bool) -> Book:
        with self._transaction(f"Setting book {book_id} active={active}"):
            book = self.catalog.find(book_id)
            book.active = active
        return book

    def find_book(self, book_id: str) -> Book:
        with self._lock:
            return self.catalog.find(book_id)

    def search_books(self, query: str) -> List[Book]:
        with self._lock:
            return self.catalog.search(query)

    def list_books(self) -> List[Book]:
        with self._lock:
            return self.catalog.list_books()

    # ------------------------- Users ------------------------- #
    def register_user(self, user: User) -> User:
        if not IdValidator.is_valid_id(user.user_id):
            raise ValidationError(f"Invalid user ID '{user.user_id}'.")
        if not TextValidator.validate_name(user.name):
            raise ValidationError("Name must contain letters.")
        if not ContactValidator.is_valid_email(user.email):
            raise ValidationError(f"Invalid email '{user.email}'.")
        if not ContactValidator.is_valid_phone(user.phone):
            raise ValidationError(f"Invalid phone number '{user.phone}'.")
        if user.borrow_history:
            raise ValidationError("A new user cannot have borrow history.")

        with self._transaction(f"Registering user {user.user_id}"):
            self.roster.add(user)
        logger.info("Registered user %s", user.user_id)
        return user

    def remove_user(self, user_id: str) -> User:
        with self._transaction(f"Removing user {user_id}"):
            user = self.roster.remove(user_id)
        logger.info("Removed user %s", user_id)
        return user

    def set_user_active(self, user_id: str, active: bool) -> User:
        with self._transaction(f"Setting user {user_id} active={active}"):
            user = self.roster.find(user_id)
            user.active = active
        return user

    def find_user(self, user_id: str) -> User:
        with self._lock:
            return self.roster.find(user_id)

    def list_users(self) -> List[User]:
        with self._lock:
            return self.roster.list_users()

    # ------------------------- Reports ------------------------- #
    def statistics(self) -> Dict[str, int]:
        """Read-only aggregation over catalog and roster."""
        with self._lock:
            return {
                "total_titles": len(self.catalog),
                "total_available_copies": self.catalog.total_available_copies(),
                "total_borrowed_copies": self.catalog.total_borrowed_copies(),
                "total_users": len(self.roster),
            }


def open_service(config: Optional[Settings] = None) -> LendingService:
    """Build a LendingService over the store configured in ``config``."""
    config = config or settings
    return LendingService.from_store(get_store(config), config)

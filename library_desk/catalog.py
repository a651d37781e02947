import copy
import logging
from typing import Dict, Iterable, Iterator, List, Optional

from library_desk.book import Book
from library_desk.exceptions import (
    BookNotFoundError,
    DuplicateKeyError,
    InvariantViolationError,
    NotAvailableError,
    ResourceBusyError,
)

logger = logging.getLogger(__name__)


class Catalog:
    """Owns the book records and their copy counts.

    Books are kept in insertion order, which is also the order of
    ``list_books`` and ``search`` results.
    """

    def __init__(self, books: Iterable[Book] = ()) -> None:
        self._books: Dict[str, Book] = {}
        for book in books:
            self.add(book)

    def __len__(self) -> int:
        return len(self._books)

    def __iter__(self) -> Iterator[Book]:
        return iter(self._books.values())

    def __contains__(self, book_id: str) -> bool:
        return book_id in self._books

    # ------------------------- Core operations ------------------------- #
    def add(self, book: Book) -> Book:
        if book.book_id in self._books:
            raise DuplicateKeyError(f"Book with ID {book.book_id} already exists.")
        self._books[book.book_id] = book
        return book

    def remove(self, book_id: str) -> Book:
        book = self.find(book_id)
        if book.available_copies != book.total_copies:
            raise ResourceBusyError(
                f"Cannot remove book {book_id}: {book.borrowed_copies} copies are currently borrowed."
            )
        return self._books.pop(book_id)

    def find(self, book_id: str) -> Book:
        book = self._books.get(book_id)
        if book is None:
            raise BookNotFoundError(f"Book with ID {book_id} not found.")
        return book

    def get(self, book_id: str) -> Optional[Book]:
        return self._books.get(book_id)

    def list_books(self) -> List[Book]:
        return list(self._books.values())

    def search(self, query: str) -> List[Book]:
        """Case-insensitive substring match on id, title and author."""
        needle = (query or "").strip().lower()
        return [
            book for book in self._books.values()
            if needle in book.book_id.lower()
            or needle in book.title.lower()
            or needle in book.author.lower()
        ]

    def decrement_available(self, book_id: str) -> Book:
        book = self.find(book_id)
        if book.available_copies == 0:
            raise NotAvailableError(f"No copies of book {book_id} are available.")
        book.available_copies -= 1
        return book

    def increment_available(self, book_id: str) -> Book:
        book = self.find(book_id)
        if book.available_copies == book.total_copies:
            raise InvariantViolationError(
                f"All {book.total_copies} copies of book {book_id} are already on the shelf."
            )
        book.available_copies += 1
        return book

    # ------------------------- Aggregates ------------------------- #
    def total_available_copies(self) -> int:
        return sum(b.available_copies for b in self._books.values())

    def total_borrowed_copies(self) -> int:
        return sum(b.total_copies - b.available_copies for b in self._books.values())

    # ------------------------- Rollback support ------------------------- #
    def snapshot(self) -> Dict[str, Book]:
        return {book_id: copy.deepcopy(book) for book_id, book in self._books.items()}

    def restore(self, state: Dict[str, Book]) -> None:
        """Put the catalog back to ``state``, reusing live objects where ids match."""
        books: Dict[str, Book] = {}
        for book_id, saved in state.items():
            current = self._books.get(book_id)
            if current is not None:
                vars(current).update(vars(copy.deepcopy(saved)))
                saved = current
            books[book_id] = saved
        self._books = books
        logger.debug("Catalog restored to %d books", len(books))

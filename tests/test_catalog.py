import pytest

from library_desk.book import Book, DigitalExtras
from library_desk.catalog import Catalog
from library_desk.exceptions import (
    BookNotFoundError,
    DuplicateKeyError,
    InvariantViolationError,
    NotAvailableError,
    NotFoundError,
    ResourceBusyError,
)


@pytest.fixture
def catalog():
    return Catalog([
        Book("B1", "Clean Code", "Robert C. Martin", total_copies=2),
        Book("B2", "Design Patterns", "Erich Gamma", total_copies=1),
        Book("PY-3", "Fluent Python", "Luciano Ramalho", total_copies=3),
    ])


def test_add_and_find(catalog):
    catalog.add(Book("B4", "Refactoring", "Martin Fowler"))
    assert catalog.find("B4").title == "Refactoring"
    assert len(catalog) == 4


def test_add_duplicate_id_raises(catalog):
    with pytest.raises(DuplicateKeyError):
        catalog.add(Book("B1", "Duplicate", "Someone"))
    assert catalog.find("B1").title == "Clean Code"


def test_find_missing_raises_not_found(catalog):
    with pytest.raises(BookNotFoundError):
        catalog.find("nope")
    with pytest.raises(NotFoundError):
        catalog.find("nope")
    assert catalog.get("nope") is None


def test_remove_when_all_copies_on_shelf(catalog):
    removed = catalog.remove("B2")
    assert removed.book_id == "B2"
    assert "B2" not in catalog


def test_remove_missing_raises(catalog):
    with pytest.raises(BookNotFoundError):
        catalog.remove("nope")


def test_remove_with_copy_on_loan_is_busy(catalog):
    catalog.decrement_available("B1")
    with pytest.raises(ResourceBusyError):
        catalog.remove("B1")
    assert "B1" in catalog


def test_search_is_case_insensitive_over_id_title_author(catalog):
    assert [b.book_id for b in catalog.search("clean")] == ["B1"]
    assert [b.book_id for b in catalog.search("GAMMA")] == ["B2"]
    assert [b.book_id for b in catalog.search("py-")] == ["PY-3"]


def test_search_keeps_insertion_order(catalog):
    # 'e' appears in every title
    assert [b.book_id for b in catalog.search("e")] == ["B1", "B2", "PY-3"]
    assert catalog.search("zzz") == []


def test_decrement_until_empty_then_not_available(catalog):
    catalog.decrement_available("B1")
    catalog.decrement_available("B1")
    assert catalog.find("B1").available_copies == 0
    with pytest.raises(NotAvailableError):
        catalog.decrement_available("B1")
    assert catalog.find("B1").available_copies == 0


def test_increment_past_total_is_invariant_violation(catalog):
    with pytest.raises(InvariantViolationError):
        catalog.increment_available("B2")
    catalog.decrement_available("B2")
    catalog.increment_available("B2")
    assert catalog.find("B2").available_copies == 1


def test_copy_totals(catalog):
    catalog.decrement_available("B1")
    catalog.decrement_available("PY-3")
    assert catalog.total_available_copies() == 4
    assert catalog.total_borrowed_copies() == 2


def test_restore_keeps_live_objects(catalog):
    book = catalog.find("B1")
    state = catalog.snapshot()
    catalog.decrement_available("B1")
    catalog.remove("B2")
    catalog.restore(state)
    assert book.available_copies == 2
    assert catalog.find("B1") is book
    assert [b.book_id for b in catalog.list_books()] == ["B1", "B2", "PY-3"]


def test_book_rejects_inconsistent_copy_counts():
    with pytest.raises(ValueError):
        Book("X", "Title", "Author", total_copies=2, available_copies=3)
    with pytest.raises(ValueError):
        Book("X", "Title", "Author", total_copies=2, available_copies=-1)


def test_digital_book_round_trips_through_dict():
    book = Book("E1", "Ebook", "Writer", digital=DigitalExtras("https://example.com/e1.pdf", 5))
    clone = Book.from_dict(book.to_dict())
    assert clone.is_digital
    assert clone.digital.download_link == "https://example.com/e1.pdf"
    assert clone.digital.download_limit == 5
    assert Book.from_dict(Book("P1", "Paper", "Writer").to_dict()).digital is None

import pytest

from library_desk.book import Book
from library_desk.database import SQLiteStore
from library_desk.file_store import FileStore
from library_desk.lending import LendingService
from library_desk.user import User


@pytest.fixture
def db_file(tmp_path, request):
    # Unique database file per test
    return str(tmp_path / f"test_{request.node.name}.db")


@pytest.fixture
def data_file(tmp_path, request):
    return str(tmp_path / f"test_{request.node.name}.json")


@pytest.fixture(params=["sqlite", "file"])
def store(request, db_file, data_file):
    """Every store-backed test runs against both backends."""
    if request.param == "sqlite":
        s = SQLiteStore(db_file)
    else:
        s = FileStore(data_file)
    yield s
    s.close()


@pytest.fixture
def lib(store):
    service = LendingService.from_store(store)
    yield service
    service.close()


@pytest.fixture
def stocked(lib):
    """A service holding two books and three users."""
    lib.add_book(Book("B1", "Clean Code", "Robert C. Martin", total_copies=2))
    lib.add_book(Book("B2", "Design Patterns", "Erich Gamma", total_copies=1))
    lib.register_user(User("U1", "Asha Rao", email="asha@example.com", phone="555-0101"))
    lib.register_user(User("U2", "Ben Okafor", email="ben@example.com"))
    lib.register_user(User("U3", "Chen Li"))
    return lib

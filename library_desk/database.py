import logging
import os
import sqlite3
from typing import Dict, List, Optional, Sequence, Tuple

from library_desk.book import Book
from library_desk.exceptions import InvalidDateError, PersistenceError
from library_desk.store import StoreAdapter
from library_desk.user import BorrowRecord, User

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


def get_db_connection(db_file: str, timeout: float = DEFAULT_TIMEOUT) -> sqlite3.Connection:
    """Establishes a connection to the SQLite database."""
    conn = sqlite3.connect(db_file, timeout=timeout)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def create_tables(db_file: str, timeout: float = DEFAULT_TIMEOUT) -> None:
    """Creates the necessary tables in the database if they don't exist."""
    conn = get_db_connection(db_file, timeout)
    try:
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    book_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    author TEXT,
                    total_copies INTEGER NOT NULL,
                    available_copies INTEGER NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    download_link TEXT,
                    download_limit INTEGER,
                    CHECK (available_copies >= 0 AND available_copies <= total_copies)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT UNIQUE,
                    phone TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1
                )
            """)
            # No foreign key on book_id: loan history outlives catalog entries.
            conn.execute("""
                CREATE TABLE IF NOT EXISTS borrow_records (
                    record_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    book_id TEXT NOT NULL,
                    borrow_date TEXT NOT NULL,
                    return_date TEXT,
                    is_returned INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_borrow_records_user ON borrow_records(user_id)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_borrow_records_open ON borrow_records(user_id, book_id, is_returned)"
            )
    finally:
        conn.close()


def migrate_from_file(db_file: str, data_file: str, timeout: float = DEFAULT_TIMEOUT) -> int:
    """Imports a flat-file data document into an empty SQLite database.

    This is a one-time operation. It checks that the database has no books and
    no users and that the data file exists before proceeding. Returns the
    number of books imported.
    """
    if not data_file or not os.path.exists(data_file):
        return 0

    conn = get_db_connection(db_file, timeout)
    try:
        book_count = conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]
        user_count = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
    finally:
        conn.close()
    if book_count or user_count:
        return 0  # Database already has data, no need to migrate

    from library_desk.file_store import FileStore

    source = FileStore(data_file)
    books = source.load_catalog()
    users = []
    for user, records in source.load_roster():
        user.borrow_history = list(records)
        users.append(user)

    logger.info("Migrating %d books and %d users from %s to %s", len(books), len(users), data_file, db_file)
    SQLiteStore(db_file, timeout=timeout).save_all(books, users)
    return len(books)


def initialize_database(db_file: str, migrate_from: Optional[str] = None,
                        timeout: float = DEFAULT_TIMEOUT) -> None:
    """Initializes the database, creating tables and migrating data if needed."""
    create_tables(db_file, timeout)
    if migrate_from:
        migrate_from_file(db_file, migrate_from, timeout)


class SQLiteStore(StoreAdapter):
    """Relational backend. Every ``save_all`` is a single SQLite transaction."""

    def __init__(self, db_file: str, timeout: float = DEFAULT_TIMEOUT,
                 migrate_from: Optional[str] = None) -> None:
        self.db_file = db_file
        self.timeout = timeout
        try:
            initialize_database(db_file, migrate_from=migrate_from, timeout=timeout)
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not open database {db_file}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        return get_db_connection(self.db_file, self.timeout)

    def load_catalog(self) -> List[Book]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT book_id, title, author, total_copies, available_copies,
                       is_active AS active, download_link, download_limit
                FROM books ORDER BY rowid
                """
            ).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not load books: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Corrupt book row in {self.db_file}: {e}") from e
        finally:
            conn.close()

    def load_roster(self) -> List[Tuple[User, List[BorrowRecord]]]:
        conn = self._connect()
        try:
            user_rows = conn.execute(
                "SELECT user_id, name, email, phone, is_active AS active FROM users ORDER BY rowid"
            ).fetchall()
            record_rows = conn.execute(
                """
                SELECT record_id, user_id, book_id, borrow_date, return_date, is_returned AS returned
                FROM borrow_records ORDER BY record_id
                """
            ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not load users: {e}") from e
        finally:
            conn.close()

        records: Dict[str, List[BorrowRecord]] = {}
        try:
            for row in record_rows:
                record = BorrowRecord.from_dict(dict(row))
                records.setdefault(record.user_id, []).append(record)
            return [
                (User.from_dict(dict(row)), records.get(row["user_id"], []))
                for row in user_rows
            ]
        except (KeyError, TypeError, ValueError, InvalidDateError) as e:
            raise PersistenceError(f"Corrupt user or borrow row in {self.db_file}: {e}") from e

    def save_all(self, books: Sequence[Book], users: Sequence[User]) -> None:
        book_rows = [
            (b.book_id, b.title, b.author, b.total_copies, b.available_copies, int(b.active),
             b.digital.download_link if b.digital else None,
             b.digital.download_limit if b.digital else None)
            for b in books
        ]
        user_rows = [(u.user_id, u.name, u.email or None, u.phone, int(u.active)) for u in users]
        record_rows = [
            (r.record_id, r.user_id, r.book_id, r.borrow_date.isoformat(),
             r.return_date.isoformat() if r.return_date else None, int(r.returned))
            for u in users for r in u.borrow_history
        ]

        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM borrow_records")
                conn.execute("DELETE FROM users")
                conn.execute("DELETE FROM books")
                conn.executemany(
                    """
                    INSERT INTO books (book_id, title, author, total_copies, available_copies,
                                       is_active, download_link, download_limit)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    book_rows,
                )
                conn.executemany(
                    "INSERT INTO users (user_id, name, email, phone, is_active) VALUES (?, ?, ?, ?, ?)",
                    user_rows,
                )
                conn.executemany(
                    """
                    INSERT INTO borrow_records (record_id, user_id, book_id, borrow_date, return_date, is_returned)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    record_rows,
                )
        except sqlite3.Error as e:
            logger.error("SQLite commit to %s failed: %s", self.db_file, e)
            raise PersistenceError(f"Could not save library state: {e}") from e
        finally:
            conn.close()

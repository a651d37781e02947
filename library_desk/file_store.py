"""Flat-file backend: the whole library state as one JSON document.

Writes go to a temporary file in the target directory which is then renamed
over the previous document, so a crash leaves either the old or the new
state on disk, never a torn mix.
"""
import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Sequence, Tuple

from library_desk.book import Book
from library_desk.exceptions import InvalidDateError, PersistenceError
from library_desk.store import StoreAdapter
from library_desk.user import BorrowRecord, User

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class FileStore(StoreAdapter):

    def __init__(self, data_file: str) -> None:
        self.data_file = data_file

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.data_file):
            return {"version": FORMAT_VERSION, "books": [], "users": []}
        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(f"Error reading or parsing {self.data_file}: {e}") from e
        if not isinstance(data, dict) or data.get("version") != FORMAT_VERSION:
            raise PersistenceError(f"Unsupported data file format in {self.data_file}")
        return data

    def load_catalog(self) -> List[Book]:
        try:
            return [Book.from_dict(item) for item in self._read().get("books", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Corrupt book entry in {self.data_file}: {e}") from e

    def load_roster(self) -> List[Tuple[User, List[BorrowRecord]]]:
        roster = []
        try:
            for item in self._read().get("users", []):
                records = [BorrowRecord.from_dict(r) for r in item.get("borrow_history", [])]
                roster.append((User.from_dict(item), records))
        except (KeyError, TypeError, ValueError, InvalidDateError) as e:
            raise PersistenceError(f"Corrupt user entry in {self.data_file}: {e}") from e
        return roster

    def save_all(self, books: Sequence[Book], users: Sequence[User]) -> None:
        document = {
            "version": FORMAT_VERSION,
            "books": [b.to_dict() for b in books],
            "users": [
                dict(u.to_dict(), borrow_history=[r.to_dict() for r in u.borrow_history])
                for u in users
            ],
        }
        directory = os.path.dirname(os.path.abspath(self.data_file))
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".library-", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.data_file)
            tmp_path = None
        except OSError as e:
            logger.error("Writing %s failed: %s", self.data_file, e)
            raise PersistenceError(f"Could not save library state to {self.data_file}: {e}") from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)

"""Storage contract consumed by the lending service, and backend selection."""
from typing import List, Optional, Sequence, Tuple

from library_desk.book import Book
from library_desk.config import Settings, settings
from library_desk.user import BorrowRecord, User


class StoreAdapter:
    """Persists and retrieves catalog and roster state.

    ``save_all`` receives the complete state and must either commit all of it
    or raise PersistenceError leaving the previous commit intact.
    """

    def load_catalog(self) -> List[Book]:
        raise NotImplementedError

    def load_roster(self) -> List[Tuple[User, List[BorrowRecord]]]:
        raise NotImplementedError

    def save_all(self, books: Sequence[Book], users: Sequence[User]) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release any resources held by the store."""
        return None


def get_store(config: Optional[Settings] = None) -> StoreAdapter:
    """Build the store selected by ``config.storage_backend``."""
    config = config or settings
    backend = config.storage_backend.lower()
    if backend == "sqlite":
        from library_desk.database import SQLiteStore
        return SQLiteStore(config.database_file, timeout=config.persist_timeout,
                           migrate_from=config.data_file)
    if backend == "file":
        from library_desk.file_store import FileStore
        return FileStore(config.data_file)
    raise ValueError(f"Unknown storage backend '{config.storage_backend}'. Use 'sqlite' or 'file'.")

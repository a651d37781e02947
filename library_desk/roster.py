import copy
import logging
from datetime import date
from typing import Dict, Iterable, Iterator, List, Optional

from library_desk.config import settings
from library_desk.exceptions import (
    AlreadyBorrowedError,
    DuplicateKeyError,
    LimitExceededError,
    NotBorrowedError,
    ResourceBusyError,
    UserNotFoundError,
)
from library_desk.user import BorrowRecord, User

logger = logging.getLogger(__name__)


class Roster:
    """Owns the user records and each user's borrow history.

    The active borrow count of a user is derived from the history, so it can
    never drift from the records themselves.
    """

    def __init__(self, users: Iterable[User] = (), max_active_borrows: Optional[int] = None) -> None:
        self.max_active_borrows = (
            settings.max_active_borrows if max_active_borrows is None else max_active_borrows
        )
        self._users: Dict[str, User] = {}
        for user in users:
            self.add(user)

    def __len__(self) -> int:
        return len(self._users)

    def __iter__(self) -> Iterator[User]:
        return iter(self._users.values())

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._users

    # ------------------------- Users ------------------------- #
    def add(self, user: User) -> User:
        if user.user_id in self._users:
            raise DuplicateKeyError(f"User with ID {user.user_id} already exists.")
        if user.email and self.find_by_email(user.email) is not None:
            raise DuplicateKeyError(f"Email {user.email} is already registered.")
        self._users[user.user_id] = user
        return user

    def remove(self, user_id: str) -> User:
        user = self.find(user_id)
        if user.active_borrow_count > 0:
            raise ResourceBusyError(
                f"Cannot remove user {user_id}: {user.active_borrow_count} books are still borrowed."
            )
        return self._users.pop(user_id)

    def find(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(f"User with ID {user_id} not found.")
        return user

    def get(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        wanted = email.strip().lower()
        for user in self._users.values():
            if user.email and user.email.lower() == wanted:
                return user
        return None

    def list_users(self) -> List[User]:
        return list(self._users.values())

    # ------------------------- Borrowing ------------------------- #
    def active_borrow(self, user_id: str, book_id: str) -> Optional[BorrowRecord]:
        """The unreturned record for the pair, if any."""
        for record in self.find(user_id).borrow_history:
            if record.book_id == book_id and record.is_active:
                return record
        return None

    def has_active_borrow(self, user_id: str, book_id: str) -> bool:
        return self.active_borrow(user_id, book_id) is not None

    def record_borrow(self, user_id: str, book_id: str, borrow_date: date) -> BorrowRecord:
        user = self.find(user_id)
        if user.active_borrow_count >= self.max_active_borrows:
            raise LimitExceededError(
                f"User {user_id} cannot borrow more than {self.max_active_borrows} books at a time."
            )
        if self.has_active_borrow(user_id, book_id):
            raise AlreadyBorrowedError(f"User {user_id} has already borrowed book {book_id}.")
        record = BorrowRecord(user_id=user_id, book_id=book_id, borrow_date=borrow_date,
                              record_id=self._next_record_id())
        user.borrow_history.append(record)
        return record

    def _next_record_id(self) -> int:
        ids = [r.record_id for u in self._users.values() for r in u.borrow_history if r.record_id]
        return max(ids, default=0) + 1

    def record_return(self, user_id: str, book_id: str, return_date: date) -> date:
        """Close the active loan for the pair and return its borrow date."""
        record = self.active_borrow(user_id, book_id)
        if record is None:
            raise NotBorrowedError(f"User {user_id} has not borrowed book {book_id}.")
        record.mark_returned(return_date)
        return record.borrow_date

    def list_active_borrows(self, user_id: str) -> Iterator[BorrowRecord]:
        """Unreturned records of a user, in borrow order."""
        return (r for r in self.find(user_id).borrow_history if r.is_active)

    def borrow_history(self, user_id: str) -> List[BorrowRecord]:
        return list(self.find(user_id).borrow_history)

    # ------------------------- Rollback support ------------------------- #
    def snapshot(self) -> Dict[str, User]:
        return {user_id: copy.deepcopy(user) for user_id, user in self._users.items()}

    def restore(self, state: Dict[str, User]) -> None:
        """Put the roster back to ``state``, reusing live objects where ids match.

        Both ``User`` objects and the ``BorrowRecord`` objects in their
        histories (matched by ``record_id``) keep their identity, so records
        handed out before a failed transaction stay the roster's own.
        """
        users: Dict[str, User] = {}
        for user_id, saved in state.items():
            saved = copy.deepcopy(saved)
            current = self._users.get(user_id)
            if current is not None:
                saved.borrow_history = self._reuse_records(current.borrow_history, saved.borrow_history)
                vars(current).update(vars(saved))
                saved = current
            users[user_id] = saved
        self._users = users
        logger.debug("Roster restored to %d users", len(users))

    @staticmethod
    def _reuse_records(live: List[BorrowRecord], saved: List[BorrowRecord]) -> List[BorrowRecord]:
        by_id = {r.record_id: r for r in live if r.record_id is not None}
        history = []
        for record in saved:
            current = by_id.get(record.record_id) if record.record_id is not None else None
            if current is not None:
                vars(current).update(vars(record))
                record = current
            history.append(record)
        return history

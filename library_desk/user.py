from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from library_desk.date_utils import from_iso, to_iso


class BorrowRecord:
    """One loan of one book to one user.

    Created unreturned by an issue, closed exactly once by a return and never
    deleted afterwards.
    """

    def __init__(self, user_id: str, book_id: str, borrow_date: date,
                 return_date: Optional[date] = None, returned: bool = False,
                 record_id: Optional[int] = None) -> None:
        if returned != (return_date is not None):
            raise ValueError("A borrow record has a return date if and only if it is returned.")
        self.record_id = record_id
        self.user_id = user_id
        self.book_id = book_id
        self.borrow_date = borrow_date
        self.return_date = return_date
        self.returned = returned

    @property
    def is_active(self) -> bool:
        return not self.returned

    def mark_returned(self, return_date: date) -> None:
        self.return_date = return_date
        self.returned = True

    def __repr__(self) -> str:  # pragma: no cover
        state = f"returned {self.return_date}" if self.returned else "active"
        return f"BorrowRecord({self.user_id!r}, {self.book_id!r}, {self.borrow_date}, {state})"

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "borrow_date": to_iso(self.borrow_date),
            "return_date": to_iso(self.return_date),
            "returned": self.returned,
        }

    @staticmethod
    def from_dict(data: dict) -> "BorrowRecord":
        return BorrowRecord(
            user_id=data["user_id"],
            book_id=data["book_id"],
            borrow_date=from_iso(data["borrow_date"]),
            return_date=from_iso(data.get("return_date")),
            returned=bool(data.get("returned", False)),
            record_id=data.get("record_id"),
        )


class User:
    """A registered borrower and their loan history."""

    def __init__(self, user_id: str, name: str, email: str = "", phone: str = "",
                 active: bool = True, borrow_history: Iterable[BorrowRecord] = ()) -> None:
        self.user_id = user_id.strip()
        self.name = name.strip()
        self.email = (email or "").strip()
        self.phone = (phone or "").strip()
        self.active = active
        self.borrow_history: List[BorrowRecord] = list(borrow_history)

    @property
    def active_borrow_count(self) -> int:
        return sum(1 for r in self.borrow_history if r.is_active)

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} (ID: {self.user_id})"

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "active": self.active,
            "active_borrow_count": self.active_borrow_count,
        }

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(
            user_id=data["user_id"],
            name=data["name"],
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            active=bool(data.get("active", True)),
        )

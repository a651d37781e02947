from __future__ import annotations


class DigitalExtras:
    """Extra attributes carried by a digital edition of a book."""

    def __init__(self, download_link: str, download_limit: int = 0) -> None:
        self.download_link = download_link.strip()
        self.download_limit = download_limit

    def to_dict(self) -> dict:
        return {"download_link": self.download_link, "download_limit": self.download_limit}

    @staticmethod
    def from_dict(data: dict) -> "DigitalExtras":
        return DigitalExtras(download_link=data["download_link"], download_limit=data.get("download_limit") or 0)


class Book:
    """A title in the catalog and the bookkeeping of its lendable copies."""

    def __init__(self, book_id: str, title: str, author: str, total_copies: int = 1,
                 available_copies: int | None = None, active: bool = True,
                 digital: DigitalExtras | None = None) -> None:
        if available_copies is None:
            available_copies = total_copies
        if total_copies < 0 or not 0 <= available_copies <= total_copies:
            raise ValueError(
                f"Book {book_id}: available copies ({available_copies}) must be within 0..{total_copies}."
            )
        self.book_id = book_id.strip()
        self.title = title.strip()
        self.author = author.strip()
        self.total_copies = total_copies
        self.available_copies = available_copies
        self.active = active
        self.digital = digital

    @property
    def borrowed_copies(self) -> int:
        return self.total_copies - self.available_copies

    @property
    def is_digital(self) -> bool:
        return self.digital is not None

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ID: {self.book_id})"

    def __repr__(self) -> str:  # pragma: no cover
        return f"Book({self.book_id!r}, available={self.available_copies}/{self.total_copies})"

    def to_dict(self) -> dict:
        data = {
            "book_id": self.book_id,
            "title": self.title,
            "author": self.author,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "active": self.active,
            "download_link": None,
            "download_limit": None,
        }
        if self.digital is not None:
            data.update(self.digital.to_dict())
        return data

    @staticmethod
    def from_dict(data: dict) -> "Book":
        digital = DigitalExtras.from_dict(data) if data.get("download_link") else None
        return Book(
            book_id=data["book_id"],
            title=data["title"],
            author=data.get("author") or "",
            total_copies=int(data["total_copies"]),
            available_copies=int(data["available_copies"]),
            active=bool(data.get("active", True)),
            digital=digital,
        )

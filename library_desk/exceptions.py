class LibraryError(Exception):
    """Base exception for library lending errors."""

    code = "library_error"


class NotFoundError(LibraryError):
    """Referenced book or user id does not exist."""

    code = "not_found"


class BookNotFoundError(NotFoundError):
    """Requested book id does not exist or is inactive."""


class UserNotFoundError(NotFoundError):
    """Requested user id does not exist or is inactive."""


class DuplicateKeyError(LibraryError):
    """An id or unique field collides with an existing entry."""

    code = "duplicate_key"


class ResourceBusyError(LibraryError):
    """Removal blocked by outstanding loans."""

    code = "resource_busy"


class NotAvailableError(LibraryError):
    """No free copies left to issue."""

    code = "not_available"


class AlreadyBorrowedError(LibraryError):
    """The user already holds an unreturned copy of this book."""

    code = "already_borrowed"


class LimitExceededError(LibraryError):
    """The user's active borrow count is at the cap."""

    code = "limit_exceeded"


class NotBorrowedError(LibraryError):
    """Return attempted with no matching active loan."""

    code = "not_borrowed"


class InvalidDateRangeError(LibraryError):
    """Return date precedes borrow date."""

    code = "invalid_date_range"


class InvariantViolationError(LibraryError):
    """A copy-count bound would be broken."""

    code = "invariant_violation"


class PersistenceError(LibraryError):
    """The store could not durably commit a change."""

    code = "persistence_failure"


class ValidationError(LibraryError, ValueError):
    """Malformed input (ids, emails, copy counts...)."""

    code = "invalid_input"


class InvalidDateError(LibraryError, ValueError):
    """A date string could not be parsed."""

    code = "invalid_date"

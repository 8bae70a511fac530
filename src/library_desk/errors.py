"""
Domain errors for the Library Desk backend.

Every failure a desk operation can report is one of these classes. Each
carries a stable ``kind`` (used in tool responses) and the HTTP-equivalent
status a REST layer would map it to:

- Expected, recoverable errors (``NotFound``, ``Conflict`` and its subclasses,
  ``ValidationFailed``, ``Forbidden``, ``Unauthenticated``) are reported to the
  caller with enough detail to change the input.
- ``IntegrityViolation`` signals corrupted state or a programming bug. It is
  logged distinctly and surfaced as a generic server fault.
- ``Unavailable`` wraps datastore failures. The core never retries.
"""


class LibraryError(Exception):
    """Base exception for all desk operations."""

    kind = "library_error"
    http_status = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.message = message or self.__class__.__doc__ or self.kind

    @property
    def is_server_fault(self) -> bool:
        return self.http_status >= 500


class Unauthenticated(LibraryError):
    """No valid credential was supplied."""

    kind = "unauthenticated"
    http_status = 401


class TokenExpired(Unauthenticated):
    """Token has expired."""

    kind = "token_expired"


class InvalidToken(Unauthenticated):
    """Token is not valid."""

    kind = "invalid_token"


class Forbidden(LibraryError):
    """Access denied."""

    kind = "forbidden"
    http_status = 403


class NotFound(LibraryError):
    """Entity not found."""

    kind = "not_found"
    http_status = 404


class ValidationFailed(LibraryError):
    """Malformed or missing input."""

    kind = "validation_failed"
    http_status = 400


class Conflict(LibraryError):
    """The request conflicts with the current state."""

    kind = "conflict"
    http_status = 409


class OutOfStock(Conflict):
    """No copies available."""

    kind = "out_of_stock"


class DuplicateISBN(Conflict):
    """Book with this ISBN already exists."""

    kind = "duplicate_isbn"


class DuplicateRequest(Conflict):
    """Member already has a pending request for this book."""

    kind = "duplicate_request"


class AlreadyIssued(Conflict):
    """Member already has this book issued."""

    kind = "already_issued"


class AlreadyPaid(Conflict):
    """Fine for this loan has already been paid."""

    kind = "already_paid"


class RequestAlreadyResolved(Conflict):
    """Book request has already been resolved."""

    kind = "request_already_resolved"


class DuplicateEmail(Conflict):
    """A user with this email already exists."""

    kind = "duplicate_email"


class UserInUse(Conflict):
    """Loans, requests or payments still reference this user."""

    kind = "user_in_use"


class IntegrityViolation(LibraryError):
    """Stored state violates a library invariant."""

    kind = "integrity_violation"
    http_status = 500


class Unavailable(LibraryError):
    """The datastore is unavailable."""

    kind = "unavailable"
    http_status = 503

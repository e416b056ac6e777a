"""Exceptions raised by the short-link core.

Every exception carries the HTTP status the API layer renders it with, so
the route handlers never need to translate errors themselves.

Classes:
    ShortenerError:
        Generic base class for all service errors.

    InvalidInputError:
        Empty or malformed long URL, short code, or pagination input.

    CodeTakenError:
        A custom (or generated) short code is already in use.

    LinkNotFoundError:
        The link never existed, expired, was deleted, or is not owned by the caller.

    GenerationFailedError:
        No free short code could be generated within the attempt bound.

    StoreUnavailableError:
        The database could not be reached on a critical read/write path.

    CacheUnavailableError:
        Redis could not be reached. Callers of the core operations never see
        this one; it degrades to the database path.

Example:
    >>> from shortener.exceptions import CodeTakenError
    >>> raise CodeTakenError("Short code 'promo-2025' is already taken")
    Traceback (most recent call last):
        ...
    shortener.exceptions.CodeTakenError: Short code 'promo-2025' is already taken
"""

__all__ = [
    "ShortenerError",
    "InvalidInputError",
    "CodeTakenError",
    "LinkNotFoundError",
    "GenerationFailedError",
    "StoreUnavailableError",
    "CacheUnavailableError",
]


class ShortenerError(Exception):
    """Generic base class for short-link service errors."""

    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidInputError(ShortenerError):
    """Exception raised when the caller supplies an empty or malformed value."""

    status_code = 400
    default_message = "Invalid input"


class CodeTakenError(ShortenerError):
    """Exception raised when a short code is already in use."""

    status_code = 409
    default_message = "Short code is already taken"


class LinkNotFoundError(ShortenerError):
    """Exception raised when a link cannot be resolved.

    Never-existed, expired and deleted links all collapse to this one error.
    """

    status_code = 404
    default_message = "Short URL not found"


class GenerationFailedError(ShortenerError):
    """Exception raised when every short code generation attempt collided."""

    status_code = 500
    default_message = "Failed to generate a unique short code"


class StoreUnavailableError(ShortenerError):
    """Exception raised when the database fails on a critical path."""

    status_code = 503
    default_message = "Database unavailable"


class CacheUnavailableError(ShortenerError):
    """Exception raised when Redis is unreachable or returns an error."""

    status_code = 503
    default_message = "Cache unavailable"

"""Error taxonomy shared by storage, services, HTTP boundary and lifecycle.

Every error the service raises on purpose derives from ``ShortenerError``.
The HTTP boundary maps each family to one fixed status code; the message of
an exception is for logs only and never reaches a response body.

Hierarchy
=========
::
    ShortenerError
    ├─ ValidationError            (400)
    │  ├─ InvalidURLError
    │  └─ InvalidAliasError
    ├─ ConflictError              (409)
    │  └─ AliasExistsError
    ├─ NotFoundError              (404)
    │  └─ AliasNotFoundError
    ├─ AllocationExhaustedError   (500)
    ├─ StorageError               (500)
    └─ ShutdownTimeoutError       (logged only)
"""

__all__ = [
    "ShortenerError",
    "ValidationError",
    "InvalidURLError",
    "InvalidAliasError",
    "ConflictError",
    "AliasExistsError",
    "NotFoundError",
    "AliasNotFoundError",
    "AllocationExhaustedError",
    "StorageError",
    "ShutdownTimeoutError",
]


class ShortenerError(Exception):
    """Base class for all URL shortener errors."""


class ValidationError(ShortenerError):
    """Bad caller input. Never retried."""


class InvalidURLError(ValidationError):
    def __init__(self, url: str) -> None:
        super().__init__(f"invalid url: {url!r}")
        self.url = url


class InvalidAliasError(ValidationError):
    def __init__(self, alias: str) -> None:
        super().__init__(f"invalid alias: {alias!r}")
        self.alias = alias


class ConflictError(ShortenerError):
    """The requested resource already exists. Never retried."""


class AliasExistsError(ConflictError):
    def __init__(self, alias: str) -> None:
        super().__init__(f"alias {alias!r} already exists")
        self.alias = alias


class NotFoundError(ShortenerError):
    """Expected outcome of a lookup, not a fault."""


class AliasNotFoundError(NotFoundError):
    def __init__(self, alias: str) -> None:
        super().__init__(f"alias {alias!r} not found")
        self.alias = alias


class AllocationExhaustedError(ShortenerError):
    """Every generated candidate collided; points at a saturated keyspace."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"alias allocation failed after {attempts} attempts")
        self.attempts = attempts


class StorageError(ShortenerError):
    """Fault in the underlying storage engine."""


class ShutdownTimeoutError(ShortenerError):
    """In-flight requests were still running when the drain window closed."""

    def __init__(self, timeout: float, pending: int) -> None:
        super().__init__(f"shutdown timed out after {timeout}s with {pending} request(s) still running")
        self.timeout = timeout
        self.pending = pending

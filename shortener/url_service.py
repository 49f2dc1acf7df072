"""Business logic for registering and resolving short URLs.

URL Registration Flow
=====================
::
    ┌─────────────┐
    │ POST /url   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate    │──► InvalidURLError / InvalidAliasError
    │ url, alias  │
    └──────┬──────┘
    ALIAS? │
    ┌──────┴──────┐
    │ YES          │ NO
    ▼              ▼
┌──────────┐  ┌──────────────┐
│ one save │  │ allocator    │
│ conflict │  │ retry loop   │
│ → 409    │  │              │
└────┬─────┘  └──────┬───────┘
     └───────┬───────┘
             ▼
    ┌─────────────┐
    │ Return alias│
    └─────────────┘

Redirect Flow
=============
::
    GET /{alias} → storage.get_url(alias) → 302 target | AliasNotFoundError

Key Behaviours
===============
- URL validation uses the validators library; single-label hosts such as
  ``localhost`` are accepted.
- Caller-supplied aliases are letters, digits, ``_`` and ``-``, at most 64
  characters, and never a reserved route name.
- A caller-supplied alias is saved once; a duplicate is a conflict, not retried.
- Exactly one row is written on success and none on failure.
- The resolver does not validate aliases; malformed ones are simply not found.

Classes:
    URLRegistrationService:  Validates input and stores new mappings.
    RedirectResolver:  Looks up the target for an alias.
"""

import logging
import re
from typing import Optional, Union

import validators

from shortener.allocator import RESERVED_ALIASES, AliasAllocator
from shortener.enums import RequestStatus
from shortener.errors import (
    AliasExistsError,
    AliasNotFoundError,
    InvalidAliasError,
    InvalidURLError,
    ShortenerError,
)
from shortener.metrics import ServiceMetrics
from shortener.models import MAX_ALIAS_LENGTH
from shortener.storage import Storage

__all__ = ["ALIAS_PATTERN", "RedirectResolver", "URLRegistrationService", "validate_alias", "validate_url"]

Logger = Union[logging.Logger, logging.LoggerAdapter]

ALIAS_PATTERN = re.compile(rf"^[A-Za-z0-9_-]{{1,{MAX_ALIAS_LENGTH}}}$")


def validate_url(url: str) -> str:
    if not isinstance(url, str) or not url or not validators.url(url, simple_host=True):
        raise InvalidURLError(url)
    return url


def validate_alias(alias: str) -> str:
    if not isinstance(alias, str) or not ALIAS_PATTERN.fullmatch(alias) or alias in RESERVED_ALIASES:
        raise InvalidAliasError(alias)
    return alias


class URLRegistrationService:
    """Registers a target URL under a caller-supplied or generated alias.

    Example:
        >>> service = URLRegistrationService(storage, allocator, logger)
        >>> alias = await service.register("https://example.com")
    """

    def __init__(
        self,
        storage: Storage,
        allocator: AliasAllocator,
        logger: Logger,
        metrics: Optional[ServiceMetrics] = None,
    ) -> None:
        self._storage = storage
        self._allocator = allocator
        self._logger = logger
        self._metrics = metrics or ServiceMetrics()

    async def register(self, target: str, alias: Optional[str] = None) -> str:
        """Store a new mapping and return its alias.

        Args:
            target: Absolute URL to redirect to.
            alias: Optional caller-chosen alias.

        Returns:
            str: The stored alias.

        Raises:
            InvalidURLError: If ``target`` is not a well-formed absolute URL.
            InvalidAliasError: If ``alias`` is given and not acceptable.
            AliasExistsError: If ``alias`` is given and already taken.
            AllocationExhaustedError: If no free alias could be generated.
            StorageError: If storage fails.
        """
        try:
            validate_url(target)
            if alias is not None:
                validate_alias(alias)
                stored = await self._storage.save(alias, target)
            else:
                stored = await self._allocator.allocate(target)
        except ShortenerError as exc:
            self._metrics.registrations.labels(status=_status_for(exc)).inc()
            raise

        self._metrics.registrations.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info("URL registered", extra={"alias": stored, "generated": alias is None})
        return stored


class RedirectResolver:
    def __init__(self, storage: Storage, logger: Logger, metrics: Optional[ServiceMetrics] = None) -> None:
        self._storage = storage
        self._logger = logger
        self._metrics = metrics or ServiceMetrics()

    async def resolve(self, alias: str) -> str:
        """Return the target URL for ``alias``.

        Raises:
            AliasNotFoundError: If no mapping exists.
            StorageError: If storage fails.
        """
        try:
            target = await self._storage.get_url(alias)
        except ShortenerError as exc:
            self._metrics.resolutions.labels(status=_status_for(exc)).inc()
            raise

        self._metrics.resolutions.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.debug("Alias resolved", extra={"alias": alias})
        return target


def _status_for(exc: ShortenerError) -> RequestStatus:
    if isinstance(exc, (InvalidURLError, InvalidAliasError)):
        return RequestStatus.VALIDATION_ERROR
    if isinstance(exc, AliasExistsError):
        return RequestStatus.CONFLICT
    if isinstance(exc, AliasNotFoundError):
        return RequestStatus.NOT_FOUND
    return RequestStatus.ERROR

"""Random alias generation with bounded retry on collision.

A generated alias is never assumed unique: storage decides at insert time,
and a collision simply costs one more attempt. The attempt ceiling exists
because repeated collisions mean the keyspace is saturated (or the length is
too small), which retrying cannot fix.

Flow Diagram: allocate()
=========================
::
    ┌──────────────┐
    │ attempt = 1  │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ generate     │◄─────────────┐
    │ candidate    │              │
    └──────┬───────┘              │
           ▼                      │
    ┌──────────────┐   EXISTS     │
    │ storage.save ├──────────────┤ attempt < max
    └──────┬───────┘              │
           │ OK                   ▼
           ▼               ┌──────────────┐
    ┌──────────────┐       │ Allocation   │
    │ return alias │       │ Exhausted    │
    └──────────────┘       └──────────────┘

Key Behaviours
===============
- The random source is injected: ``source(alphabet, size) -> str``;
  ``nanoid.generate`` by default.
- Candidates equal to a reserved route name count as collisions.
- Storage faults are not retried.
"""

import logging
from collections.abc import Callable
from typing import Optional, Union

from nanoid import generate

from shortener.errors import AliasExistsError, AllocationExhaustedError
from shortener.metrics import ServiceMetrics
from shortener.storage import Storage

__all__ = [
    "ALPHABET",
    "DEFAULT_ALIAS_LENGTH",
    "DEFAULT_MAX_ATTEMPTS",
    "RESERVED_ALIASES",
    "AliasAllocator",
    "RandomSource",
    "generate_alias",
]

ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
DEFAULT_ALIAS_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 5

# First path segments served by the application itself.
RESERVED_ALIASES = frozenset({"url", "health", "metrics", "docs", "redoc"})

RandomSource = Callable[[str, int], str]


def generate_alias(
    source: RandomSource = generate,
    length: int = DEFAULT_ALIAS_LENGTH,
    alphabet: str = ALPHABET,
) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    assert alphabet, "alphabet must not be empty"
    alias = source(alphabet, length)
    assert len(alias) == length, f"source returned {len(alias)} characters, expected {length}"
    return alias


class AliasAllocator:
    """Generates an alias and stores it, retrying on collision.

    Args:
        storage: Storage the candidates are saved into.
        logger: Logger for collision and exhaustion events.
        length: Length of generated aliases.
        max_attempts: Candidates tried before giving up.
        source: Random source, ``source(alphabet, size) -> str``.
        metrics: Counters for attempts and collisions.
    """

    def __init__(
        self,
        storage: Storage,
        logger: Union[logging.Logger, logging.LoggerAdapter],
        length: int = DEFAULT_ALIAS_LENGTH,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        source: RandomSource = generate,
        metrics: Optional[ServiceMetrics] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self._storage = storage
        self._logger = logger
        self._length = length
        self._max_attempts = max_attempts
        self._source = source
        self._metrics = metrics or ServiceMetrics()

    @property
    def length(self) -> int:
        return self._length

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def with_logger(self, logger: Union[logging.Logger, logging.LoggerAdapter]) -> "AliasAllocator":
        """Return a copy that logs through ``logger`` (e.g. a per-request adapter)."""
        return AliasAllocator(
            self._storage,
            logger,
            length=self._length,
            max_attempts=self._max_attempts,
            source=self._source,
            metrics=self._metrics,
        )

    async def allocate(self, target: str) -> str:
        """Store ``target`` under a freshly generated alias.

        Returns:
            str: The alias that was stored.

        Raises:
            AllocationExhaustedError: If every attempt collided.
            StorageError: If storage fails for any other reason.
        """
        for attempt in range(1, self._max_attempts + 1):
            candidate = generate_alias(self._source, self._length)
            self._metrics.allocation_attempts.inc()

            if candidate in RESERVED_ALIASES:
                self._metrics.collisions.inc()
                self._logger.debug("Generated alias is reserved", extra={"alias": candidate, "attempt": attempt})
                continue

            try:
                return await self._storage.save(candidate, target)
            except AliasExistsError:
                self._metrics.collisions.inc()
                self._logger.info("Generated alias collided", extra={"alias": candidate, "attempt": attempt})

        self._logger.error("Alias allocation exhausted", extra={"attempts": self._max_attempts})
        raise AllocationExhaustedError(self._max_attempts)

"""Persistence layer: the durable alias → URL mapping.

Every durable write of the service happens here and only here. There is no
cache in front of it; each lookup reads the database.

Flow Diagram: save()
=====================
::
    ┌─────────────┐
    │ save(alias, │
    │   target)   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ INSERT row  │
    │ + COMMIT    │
    └──────┬──────┘
    UNIQUE │ VIOLATION?
    ┌──────┴─────┐
    │ NO          │ YES
    ▼             ▼
┌─────────┐  ┌──────────────┐
│ Return  │  │ ROLLBACK,    │
│ alias   │  │ raise        │
│         │  │ AliasExists  │
└─────────┘  └──────────────┘

How to Use
===========
**Step 1: Open**::
    storage = await SQLStorage.connect(settings.DATABASE_URL, logger)

**Step 2: Write and read**::
    await storage.save("abc123", "https://example.com")
    target = await storage.get_url("abc123")

**Step 3: Release on shutdown**::
    await storage.close()

Key Behaviours
===============
- A duplicate alias raises ``AliasExistsError`` and leaves the table untouched.
- An unknown alias raises ``AliasNotFoundError``.
- Any other SQLAlchemy fault surfaces as ``StorageError``.
- SQLite writes are serialized in-process; PostgreSQL relies on its unique index.

Classes:
    Storage:  Protocol the services depend on.
    SQLStorage:  SQLAlchemy asyncio implementation.
"""

import asyncio
import contextlib
import logging
from typing import AsyncContextManager, Protocol, Union

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortener.database import Base, create_engine
from shortener.errors import AliasExistsError, AliasNotFoundError, StorageError
from shortener.models import URLMapping

__all__ = ["SQLStorage", "Storage"]

Logger = Union[logging.Logger, logging.LoggerAdapter]


class Storage(Protocol):
    async def save(self, alias: str, target: str) -> str: ...

    async def get_url(self, alias: str) -> str: ...

    async def ping(self) -> None: ...

    async def close(self) -> None: ...


class SQLStorage:
    """SQLAlchemy-backed storage for URL mappings."""

    def __init__(self, engine: AsyncEngine, logger: Logger) -> None:
        self._engine = engine
        self._logger = logger
        self._sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        self._write_lock: AsyncContextManager = (
            asyncio.Lock() if engine.dialect.name == "sqlite" else contextlib.nullcontext()
        )

    @classmethod
    async def connect(cls, database_url: str, logger: Logger, echo: bool = False) -> "SQLStorage":
        """Create the engine and the schema.

        Raises:
            StorageError: If the database cannot be reached or the schema cannot be created.
        """
        try:
            engine = create_engine(database_url, echo=echo)
        except (SQLAlchemyError, ValueError, OSError) as exc:
            raise StorageError("failed to create database engine") from exc

        storage = cls(engine, logger)
        await storage.init()
        return storage

    async def init(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError("failed to initialize schema") from exc
        self._logger.debug("Storage schema ready", extra={"backend": self._engine.dialect.name})

    async def save(self, alias: str, target: str) -> str:
        async with self._write_lock, self._sessions() as session:
            session.add(URLMapping(alias=alias, url=target))
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                # Only the unique alias index makes this a conflict.
                if await self._alias_taken(session, alias):
                    raise AliasExistsError(alias) from exc
                raise StorageError(f"failed to save alias {alias!r}") from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                raise StorageError(f"failed to save alias {alias!r}") from exc
        return alias

    @staticmethod
    async def _alias_taken(session: AsyncSession, alias: str) -> bool:
        try:
            result = await session.execute(select(URLMapping.id).where(URLMapping.alias == alias))
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to check alias {alias!r}") from exc
        return result.scalar_one_or_none() is not None

    async def get_url(self, alias: str) -> str:
        try:
            async with self._sessions() as session:
                result = await session.execute(select(URLMapping.url).where(URLMapping.alias == alias))
                target = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to look up alias {alias!r}") from exc

        if target is None:
            raise AliasNotFoundError(alias)
        return target

    async def ping(self) -> None:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError("database ping failed") from exc

    async def close(self) -> None:
        try:
            await self._engine.dispose()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError("failed to close database engine") from exc

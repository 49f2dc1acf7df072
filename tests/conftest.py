"""Shared pytest fixtures for storage, service and API tests."""

import io
import logging
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fakes import TEST_PASSWORD, TEST_USER
from shortener.config import Settings
from shortener.logger import setup_logger
from shortener.main import create_app
from shortener.storage import SQLStorage


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        APP_ENV="local",
        HOST="127.0.0.1",
        PORT=0,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'storage.db'}",
        HTTP_USER=TEST_USER,
        HTTP_PASSWORD=TEST_PASSWORD,
        SHUTDOWN_TIMEOUT=5.0,
    )


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(log_stream: io.StringIO) -> logging.Logger:
    return setup_logger("local", stream=log_stream, name="urlshortener.tests")


@pytest_asyncio.fixture(scope="function")
async def storage(settings: Settings, logger: logging.Logger) -> AsyncGenerator[SQLStorage, None]:
    storage = await SQLStorage.connect(settings.DATABASE_URL, logger)
    yield storage
    await storage.close()


@pytest_asyncio.fixture(scope="function")
async def client(
    settings: Settings, storage: SQLStorage, logger: logging.Logger
) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(settings, storage, logger)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", auth=(TEST_USER, TEST_PASSWORD)) as ac:
        yield ac

"""Process lifecycle tests against a real listener on an ephemeral port."""

import asyncio
import logging
import os
import signal
import socket

import httpx
import pytest
from fastapi import FastAPI

from fakes import TEST_PASSWORD, TEST_USER, InMemoryStorage
from shortener.config import Settings
from shortener.enums import LifecycleState
from shortener.errors import ShutdownTimeoutError, StorageError
from shortener.lifecycle import Lifecycle, ShutdownSignal
from shortener.main import create_app
from shortener.storage import Storage

# ============================================================================
# HELPERS
# ============================================================================


def _app_with_slow_route(settings: Settings, storage: Storage, logger: logging.Logger) -> FastAPI:
    app = create_app(settings, storage, logger)

    @app.get("/slow/{seconds}")
    async def slow(seconds: float) -> dict:
        await asyncio.sleep(seconds)
        return {"slept": seconds}

    return app


def _lifecycle(settings: Settings, logger: logging.Logger, storage: InMemoryStorage, **kwargs) -> Lifecycle:
    async def open_storage() -> InMemoryStorage:
        return storage

    kwargs.setdefault("app_factory", _app_with_slow_route)
    return Lifecycle(settings, logger, storage_factory=open_storage, **kwargs)


async def _request_shutdown(lifecycle: Lifecycle) -> None:
    lifecycle.shutdown_signal.trigger()
    await lifecycle.wait_for_shutdown()


# ============================================================================
# SHUTDOWN SIGNAL
# ============================================================================


@pytest.mark.asyncio
async def test_shutdown_signal_keeps_first_trigger() -> None:
    shutdown = ShutdownSignal()
    assert not shutdown.is_set()

    shutdown.trigger(signal.SIGTERM)
    shutdown.trigger(signal.SIGINT)

    assert shutdown.is_set()
    assert await shutdown.wait() == signal.SIGTERM


# ============================================================================
# STATE MACHINE
# ============================================================================


@pytest.mark.asyncio
async def test_full_lifecycle(settings: Settings, logger: logging.Logger) -> None:
    storage = InMemoryStorage()
    lifecycle = _lifecycle(settings, logger, storage)
    assert lifecycle.state is LifecycleState.STARTING

    await lifecycle.start()
    assert lifecycle.state is LifecycleState.SERVING
    base_url = f"http://127.0.0.1:{lifecycle.port}"

    async with httpx.AsyncClient(base_url=base_url, trust_env=False, auth=(TEST_USER, TEST_PASSWORD)) as client:
        created = await client.post("/url", json={"url": "https://example.com", "alias": "live01"})
        assert created.status_code == 201
        redirect = await client.get("/live01", follow_redirects=False)
        assert redirect.status_code == 302
        assert redirect.headers["location"] == "https://example.com"

    await _request_shutdown(lifecycle)
    assert await lifecycle.drain() is True
    assert lifecycle.state is LifecycleState.DRAINING

    await lifecycle.stop()
    assert lifecycle.state is LifecycleState.STOPPED
    assert storage.closed
    assert lifecycle.shutdown_error is None


@pytest.mark.asyncio
async def test_drain_before_start_is_rejected(settings: Settings, logger: logging.Logger) -> None:
    lifecycle = _lifecycle(settings, logger, InMemoryStorage())
    with pytest.raises(RuntimeError):
        await lifecycle.drain()


@pytest.mark.asyncio
async def test_start_twice_is_rejected(settings: Settings, logger: logging.Logger) -> None:
    lifecycle = _lifecycle(settings, logger, InMemoryStorage())
    await lifecycle.start()
    try:
        with pytest.raises(RuntimeError):
            await lifecycle.start()
    finally:
        await _request_shutdown(lifecycle)
        await lifecycle.drain()
        await lifecycle.stop()


# ============================================================================
# DRAINING
# ============================================================================


@pytest.mark.asyncio
async def test_in_flight_request_finishes_within_drain_window(settings: Settings, logger: logging.Logger) -> None:
    lifecycle = _lifecycle(settings, logger, InMemoryStorage())
    await lifecycle.start()
    base_url = f"http://127.0.0.1:{lifecycle.port}"

    async with httpx.AsyncClient(base_url=base_url, trust_env=False) as slow_client:
        slow = asyncio.create_task(slow_client.get("/slow/1.5"))
        await asyncio.sleep(0.3)

        await _request_shutdown(lifecycle)
        drain = asyncio.create_task(lifecycle.drain())
        await asyncio.sleep(0.5)

        with pytest.raises(httpx.ConnectError):
            async with httpx.AsyncClient(base_url=base_url, trust_env=False) as late_client:
                await late_client.get("/health")

        response = await slow
        assert response.status_code == 200
        assert response.json() == {"slept": 1.5}

    assert await drain is True
    assert lifecycle.shutdown_error is None
    await lifecycle.stop()


@pytest.mark.asyncio
async def test_drain_refuses_new_connections_immediately(settings: Settings, logger: logging.Logger) -> None:
    lifecycle = _lifecycle(settings, logger, InMemoryStorage())
    await lifecycle.start()
    base_url = f"http://127.0.0.1:{lifecycle.port}"

    async with httpx.AsyncClient(base_url=base_url, trust_env=False) as slow_client:
        slow = asyncio.create_task(slow_client.get("/slow/1"))
        await asyncio.sleep(0.3)

        await _request_shutdown(lifecycle)
        drain = asyncio.create_task(lifecycle.drain())
        await asyncio.sleep(0)
        assert lifecycle.state is LifecycleState.DRAINING

        with pytest.raises(httpx.ConnectError):
            async with httpx.AsyncClient(base_url=base_url, trust_env=False) as late_client:
                await late_client.get("/health")

        assert (await slow).status_code == 200

    assert await drain is True
    await lifecycle.stop()


@pytest.mark.asyncio
async def test_in_flight_request_aborted_after_drain_timeout(
    settings: Settings, logger: logging.Logger, log_stream
) -> None:
    settings = settings.model_copy(update={"SHUTDOWN_TIMEOUT": 0.3})
    storage = InMemoryStorage()
    lifecycle = _lifecycle(settings, logger, storage)
    await lifecycle.start()
    base_url = f"http://127.0.0.1:{lifecycle.port}"

    async with httpx.AsyncClient(base_url=base_url, trust_env=False, timeout=30) as client:
        slow = asyncio.create_task(client.get("/slow/10"))
        await asyncio.sleep(0.3)

        await _request_shutdown(lifecycle)
        assert await lifecycle.drain() is False

        with pytest.raises(httpx.TransportError):
            await slow

    assert isinstance(lifecycle.shutdown_error, ShutdownTimeoutError)
    assert lifecycle.shutdown_error.pending == 1
    assert "failed to stop server gracefully" in log_stream.getvalue()

    await lifecycle.stop()
    assert lifecycle.state is LifecycleState.STOPPED
    assert storage.closed


@pytest.mark.asyncio
async def test_storage_close_failure_is_not_fatal(settings: Settings, logger: logging.Logger, log_stream) -> None:
    storage = InMemoryStorage()
    storage.fail_close = True
    lifecycle = _lifecycle(settings, logger, storage)

    await lifecycle.start()
    await _request_shutdown(lifecycle)
    await lifecycle.drain()
    await lifecycle.stop()

    assert lifecycle.state is LifecycleState.STOPPED
    assert "failed to close storage" in log_stream.getvalue()


# ============================================================================
# STARTUP FAILURES
# ============================================================================


@pytest.mark.asyncio
async def test_storage_failure_aborts_startup(settings: Settings, logger: logging.Logger) -> None:
    async def broken_storage() -> Storage:
        raise StorageError("cannot open database")

    lifecycle = Lifecycle(settings, logger, storage_factory=broken_storage)

    with pytest.raises(StorageError):
        await lifecycle.start()


@pytest.mark.asyncio
async def test_bind_failure_closes_storage(settings: Settings, logger: logging.Logger) -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as occupied:
        occupied.bind(("127.0.0.1", 0))
        occupied.listen()
        port = occupied.getsockname()[1]

        storage = InMemoryStorage()
        lifecycle = _lifecycle(settings.model_copy(update={"PORT": port}), logger, storage)

        with pytest.raises(OSError):
            await lifecycle.start()

    assert storage.closed
    assert lifecycle.state is LifecycleState.STOPPED


# ============================================================================
# OS SIGNALS
# ============================================================================


@pytest.mark.asyncio
async def test_run_stops_on_sigterm(settings: Settings, logger: logging.Logger) -> None:
    storage = InMemoryStorage()
    lifecycle = _lifecycle(settings, logger, storage)
    run = asyncio.create_task(lifecycle.run())

    while not (lifecycle.state is LifecycleState.SERVING and lifecycle.shutdown_signal.installed):
        assert not run.done()
        await asyncio.sleep(0.01)

    os.kill(os.getpid(), signal.SIGTERM)

    assert await asyncio.wait_for(run, timeout=10) is None
    assert lifecycle.shutdown_signal.signum == signal.SIGTERM
    assert lifecycle.state is LifecycleState.STOPPED
    assert storage.closed

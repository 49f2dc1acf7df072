"""Process lifecycle: start, serve, drain on SIGINT/SIGTERM, stop.

Lifecycle Diagram
=================
::
    ┌──────────────┐
    │  STARTING    │  open storage, build app, bind socket,
    │              │  spawn listener task
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │  SERVING     │  listener task accepts and handles requests;
    │              │  main coroutine awaits ShutdownSignal only
    └──────┬───────┘
           │ SIGINT / SIGTERM
           ▼
    ┌──────────────┐
    │  DRAINING    │  listening socket closed; in-flight requests get
    │              │  SHUTDOWN_TIMEOUT seconds, then are aborted
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │  STOPPED     │  storage closed (failure is logged, not fatal)
    └──────────────┘

How to Use
===========
**From the command line**::
    url-shortener            # or: python -m shortener

**From code**::
    lifecycle = Lifecycle(settings, logger)
    await lifecycle.run()

**Step by step (tests)**::
    await lifecycle.start()
    lifecycle.shutdown_signal.trigger()
    await lifecycle.wait_for_shutdown()
    await lifecycle.drain()
    await lifecycle.stop()

Key Behaviours
===============
- uvicorn never installs its own signal handlers; ``ShutdownSignal`` is the
  only consumer of SIGINT/SIGTERM.
- A drain timeout is recorded as ``ShutdownTimeoutError`` on
  ``Lifecycle.shutdown_error`` and logged; the process still stops.
- If startup fails after storage was opened, storage is closed again.
"""

import asyncio
import contextlib
import logging
import signal
import socket
import sys
from collections.abc import Awaitable, Callable, Generator, Sequence
from functools import partial
from typing import Optional

import uvicorn
from fastapi import FastAPI

from shortener.config import Settings, get_settings
from shortener.enums import LifecycleState
from shortener.errors import ShutdownTimeoutError, StorageError
from shortener.logger import setup_logger
from shortener.main import create_app
from shortener.storage import SQLStorage, Storage

__all__ = ["HANDLED_SIGNALS", "Lifecycle", "ShutdownSignal", "main"]

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

StorageFactory = Callable[[], Awaitable[Storage]]
AppFactory = Callable[[Settings, Storage, logging.Logger], FastAPI]

_TRANSITIONS = {
    LifecycleState.STARTING: {LifecycleState.SERVING, LifecycleState.STOPPED},
    LifecycleState.SERVING: {LifecycleState.DRAINING},
    LifecycleState.DRAINING: {LifecycleState.STOPPED},
    LifecycleState.STOPPED: set(),
}


class ShutdownSignal:
    """Single-consumer termination signal.

    Registered OS signals and manual ``trigger()`` calls all land on one
    event; only the first one counts.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._installed: list[int] = []
        self.signum: Optional[int] = None

    @property
    def installed(self) -> bool:
        return bool(self._installed)

    def install(self, signals: Sequence[int] = HANDLED_SIGNALS) -> None:
        loop = asyncio.get_running_loop()
        for sig in signals:
            loop.add_signal_handler(sig, self.trigger, sig)
            self._installed.append(sig)

    def uninstall(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()

    def trigger(self, signum: Optional[int] = None) -> None:
        if self._event.is_set():
            return
        self.signum = signum
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> Optional[int]:
        await self._event.wait()
        return self.signum


class _Listener(uvicorn.Server):
    """uvicorn server that leaves signal handling to the lifecycle."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        yield

    @property
    def in_flight(self) -> int:
        return len(self.server_state.tasks)

    def stop_accepting(self) -> None:
        """Close the listening sockets now; open connections are left alone."""
        for server in self.servers:
            server.close()

    def abort(self) -> int:
        """Drop every open connection and cancel running requests.

        Returns:
            int: Number of requests that were still running.
        """
        pending = self.in_flight
        self.force_exit = True
        for connection in list(self.server_state.connections):
            transport = getattr(connection, "transport", None)
            if transport is not None and not transport.is_closing():
                transport.abort()
        for task in list(self.server_state.tasks):
            task.cancel()
        return pending


def _bind(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    return socket.create_server((host, port), family=family)


class Lifecycle:
    """Owns the storage resource and the HTTP listener for one process run.

    Args:
        settings: Application settings.
        logger: Service logger.
        shutdown_signal: Signal to wait on; a fresh one by default.
        storage_factory: Coroutine function returning opened storage.
        app_factory: Builds the ASGI app from settings, storage and logger.
    """

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        shutdown_signal: Optional[ShutdownSignal] = None,
        storage_factory: Optional[StorageFactory] = None,
        app_factory: AppFactory = create_app,
    ) -> None:
        self._settings = settings
        self._logger = logger
        self.shutdown_signal = shutdown_signal or ShutdownSignal()
        self._storage_factory = storage_factory or partial(
            SQLStorage.connect, settings.DATABASE_URL, logger, echo=settings.DATABASE_ECHO
        )
        self._app_factory = app_factory

        self._state = LifecycleState.STARTING
        self._storage: Optional[Storage] = None
        self._server: Optional[_Listener] = None
        self._socket: Optional[socket.socket] = None
        self._serve_task: Optional[asyncio.Task] = None
        self.shutdown_error: Optional[ShutdownTimeoutError] = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def port(self) -> int:
        if self._socket is None:
            raise RuntimeError("listener is not bound")
        return self._socket.getsockname()[1]

    def _transition(self, target: LifecycleState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"invalid lifecycle transition {self._state} -> {target}")
        self._logger.debug("lifecycle transition", extra={"from": str(self._state), "to": str(target)})
        self._state = target

    async def start(self) -> None:
        """Open storage, bind the listener and start serving.

        Raises:
            StorageError: If storage cannot be opened.
            OSError: If the listening socket cannot be bound.
        """
        if self._state is not LifecycleState.STARTING or self._serve_task is not None:
            raise RuntimeError(f"cannot start from state {self._state}")

        self._logger.info(
            "starting url-shortener",
            extra={"env": self._settings.APP_ENV, "version": self._settings.VERSION},
        )
        self._logger.debug("debug messages are enabled")

        self._storage = await self._storage_factory()
        try:
            app = self._app_factory(self._settings, self._storage, self._logger)
            config = uvicorn.Config(
                app,
                host=self._settings.HOST,
                port=self._settings.PORT,
                lifespan="off",
                timeout_keep_alive=self._settings.HTTP_IDLE_TIMEOUT,
                log_config=None,
                access_log=False,
            )
            self._server = _Listener(config)
            self._socket = _bind(self._settings.HOST, self._settings.PORT)
            self._logger.info("starting server", extra={"address": f"{self._settings.HOST}:{self.port}"})

            self._serve_task = asyncio.create_task(self._server.serve(sockets=[self._socket]), name="http-listener")
            self._serve_task.add_done_callback(self._on_listener_done)
            await self._wait_until_listening()
        except BaseException:
            await self._abort_startup()
            raise

        self._transition(LifecycleState.SERVING)
        self._logger.info("server started")

    async def _wait_until_listening(self) -> None:
        while not self._server.started:
            if self._serve_task.done():
                self._serve_task.result()
                raise RuntimeError("listener exited during startup")
            await asyncio.sleep(0.01)

    def _on_listener_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        self._logger.error("listener failed", exc_info=task.exception())

    async def _abort_startup(self) -> None:
        if self._serve_task is not None and not self._serve_task.done():
            self._server.should_exit = True
            self._server.force_exit = True
            await asyncio.gather(self._serve_task, return_exceptions=True)
        if self._socket is not None:
            self._socket.close()
        self._transition(LifecycleState.STOPPED)
        await self._close_storage()

    async def wait_for_shutdown(self) -> Optional[int]:
        """Block until the shutdown signal fires; return the signal number."""
        signum = await self.shutdown_signal.wait()
        name = signal.Signals(signum).name if signum is not None else "manual"
        self._logger.info("shutdown requested", extra={"signal": name})
        return signum

    async def drain(self) -> bool:
        """Stop accepting and let in-flight requests finish.

        Returns:
            bool: True if every request finished inside the drain window.
        """
        self._transition(LifecycleState.DRAINING)
        timeout = self._settings.SHUTDOWN_TIMEOUT
        self._logger.info("stopping server", extra={"in_flight": self._server.in_flight, "timeout": timeout})
        self._server.stop_accepting()
        self._server.should_exit = True

        try:
            await asyncio.wait_for(asyncio.shield(self._serve_task), timeout=timeout)
        except asyncio.TimeoutError:
            pending = self._server.abort()
            self.shutdown_error = ShutdownTimeoutError(timeout, pending)
            self._logger.error("failed to stop server gracefully", extra={"error": str(self.shutdown_error)})
            await asyncio.gather(self._serve_task, return_exceptions=True)
            return False
        except Exception as exc:
            # Already reported by _on_listener_done.
            self._logger.debug("listener ended with an error", extra={"error": str(exc)})
        return True

    async def stop(self) -> None:
        self._transition(LifecycleState.STOPPED)
        await self._close_storage()
        self._logger.info("server stopped")

    async def _close_storage(self) -> None:
        if self._storage is None:
            return
        storage, self._storage = self._storage, None
        try:
            await storage.close()
        except StorageError as exc:
            self._logger.error("failed to close storage", extra={"error": str(exc)})

    async def run(self) -> Optional[ShutdownTimeoutError]:
        """Run start → serve → drain → stop.

        Returns:
            Optional[ShutdownTimeoutError]: The drain timeout, if one happened.
        """
        self.shutdown_signal.install()
        try:
            await self.start()
            await self.wait_for_shutdown()
        finally:
            self.shutdown_signal.uninstall()
        await self.drain()
        await self.stop()
        return self.shutdown_error


def main() -> None:
    settings = get_settings()
    logger = setup_logger(settings.APP_ENV)
    try:
        asyncio.run(Lifecycle(settings, logger).run())
    except (StorageError, OSError) as exc:
        logger.error("failed to start url-shortener", extra={"error": str(exc)})
        sys.exit(1)

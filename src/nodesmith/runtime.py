"""Event loop on a background thread, driven from a synchronous front end."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundRuntime:
    """Owns an asyncio loop running on a daemon thread.

    Work is submitted with :meth:`spawn`; the returned future may be
    cancelled from any thread, which cancels the underlying task. On
    :meth:`stop`, tasks still pending are cancelled and awaited so their
    cleanup (killing child processes) runs before the loop closes.
    """

    def __init__(self, name: str = "nodesmith-runtime") -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._ready = threading.Event()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def start(self) -> BackgroundRuntime:
        if not self._thread.is_alive():
            self._thread.start()
            self._ready.wait()
        return self

    def spawn(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        self.start()
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def stop(self, timeout: float | None = 10.0) -> None:
        if not self._thread.is_alive():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Background runtime did not stop within %s seconds", timeout)

    def __enter__(self) -> BackgroundRuntime:
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        try:
            self._loop.run_forever()
        finally:
            self._shutdown()

    def _shutdown(self) -> None:
        pending = asyncio.all_tasks(self._loop)
        for task in pending:
            task.cancel()
        if pending:
            logger.debug("Cancelling %d pending task(s)", len(pending))
            self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        self._loop.run_until_complete(self._loop.shutdown_default_executor())
        self._loop.close()


__all__ = ["BackgroundRuntime"]

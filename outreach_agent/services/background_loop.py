"""
Long-lived asyncio loop for calling async services from Flask views.

Flask handlers are synchronous; the resume services are coroutines. Running
every request through ``asyncio.run`` would create a new loop per request and
break loop-bound resources (locks, HTTP clients). Instead one daemon thread
owns a loop for the lifetime of the process and views submit coroutines to it.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


class BackgroundLoop:
    def __init__(self, name: str = "outreach-async-loop"):
        self._name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._started = threading.Event()
        self._lock = threading.Lock()

    def start(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is not None and self._thread and self._thread.is_alive():
                return self._loop

            self._started.clear()
            loop = asyncio.new_event_loop()

            def _target():
                asyncio.set_event_loop(loop)
                self._started.set()
                loop.run_forever()

            thread = threading.Thread(target=_target, name=self._name, daemon=True)
            thread.start()
            self._started.wait()
            self._loop, self._thread = loop, thread
            logger.info(f"Started background event loop thread={self._name}")
            return loop

    def run(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
        """Run ``coro`` on the background loop and block for its result."""
        loop = self.start()
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    def stop(self) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop, self._thread = None, None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=5)
        loop.close()


_background_loop = BackgroundLoop()


def run_async(coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
    """Submit ``coro`` to the shared background loop and wait for the result."""
    return _background_loop.run(coro, timeout=timeout)

"""
Background asyncio loop for the synchronous parts of the app.

Flask request threads and APScheduler jobs hand coroutines to one loop
running on a daemon thread, so dispatcher and limiter state is only ever
touched from that loop.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Optional

logger = logging.getLogger(__name__)


class EventLoopThread:

    def __init__(self, name: str = "quote-loop"):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_alive():
            return

        def _run() -> None:
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            self._loop = loop
            self._ready.set()
            try:
                loop.run_forever()
            finally:
                self._ready.clear()
                self._loop = None
                loop.close()

        self._ready.clear()
        self._thread = threading.Thread(target=_run, name=self.name, daemon=True)
        self._thread.start()
        self._ready.wait()
        logger.debug(f"Event loop thread {self.name} started")

    def submit(self, coro) -> Future:
        if not self.is_alive() or self._loop is None:
            coro.close()
            raise RuntimeError("Event loop thread is not running")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def run(self, coro, timeout: Optional[float] = None):
        """
        Run a coroutine on the loop and block the calling thread for its result.
        The coroutine is cancelled if the timeout expires first.
        """
        future = self.submit(coro)
        try:
            return future.result(timeout)
        except FutureTimeoutError:
            future.cancel()
            raise

    def stop(self, timeout: float = 5.0) -> None:
        if not self.is_alive() or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        self._thread = None
        logger.debug(f"Event loop thread {self.name} stopped")

"""
Priority queue dispatcher.

Owns the two request queues (high before normal, FIFO within each) and a
single drain task that releases calls to the quote source at the pace the
RateLimiter allows. Failed calls are classified and either retried or
handed back to the caller as a QuoteFetchError.

All state is touched only from the event loop the dispatcher was started
on; submit() from another thread must go through
asyncio.run_coroutine_threadsafe (see services.event_loop).
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from constants import (
    MAX_RETRY_ATTEMPTS,
    PROVIDER_CALL_TIMEOUT_SECONDS,
    RATE_LIMIT_WAIT_BUFFER_SECONDS,
)
from models import CallRequest, DispatcherStats, Priority
from providers.errors import ErrorKind, QuoteFetchError, classify_error, is_retriable
from services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

CallFactory = Callable[[], Awaitable[Any]]


class PriorityDispatcher:

    def __init__(
        self,
        limiter: RateLimiter,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        call_timeout: Optional[float] = PROVIDER_CALL_TIMEOUT_SECONDS,
        wait_buffer: float = RATE_LIMIT_WAIT_BUFFER_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.limiter = limiter
        self.max_attempts = max_attempts
        self.call_timeout = call_timeout
        self.wait_buffer = wait_buffer
        self._sleep = sleep

        self._high = deque()
        self._normal = deque()
        self._processing = False
        self._drain_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self.stats = DispatcherStats()

    # ========================================
    # LIFECYCLE
    # ========================================

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Bind to the running event loop. Must be called from inside it."""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._running = True
        logger.info(
            f"Dispatcher started (limit {self.limiter.effective_limit}/min, "
            f"max {self.max_attempts} retries)"
        )

    async def stop(self) -> None:
        """Stop draining and cancel every request still waiting in a queue."""
        if not self._running:
            return
        self._running = False

        task, self._drain_task = self._drain_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        pending = list(self._high) + list(self._normal)
        self._high.clear()
        self._normal.clear()
        for request in pending:
            if not request.future.done():
                request.future.cancel()

        self._processing = False
        if pending:
            logger.info(f"Dispatcher stopped, {len(pending)} pending request(s) cancelled")
        else:
            logger.info("Dispatcher stopped")

    # ========================================
    # QUEUEING
    # ========================================

    def submit(self, key: str, call: CallFactory, priority=Priority.NORMAL) -> asyncio.Future:
        """
        Queue a call and return the future the caller awaits.

        Only appends while a drain is active; otherwise starts the single
        drain task.
        """
        if not self._running:
            raise RuntimeError("Dispatcher is not running; call start() first")

        priority = Priority.parse(priority)
        request = CallRequest(
            key=key,
            call=call,
            future=self._loop.create_future(),
            priority=priority,
            max_attempts=self.max_attempts,
            enqueued_at=self.limiter.now(),
        )

        if priority is Priority.HIGH:
            self._high.append(request)
        else:
            self._normal.append(request)

        if not self._processing:
            self._processing = True
            self._drain_task = self._loop.create_task(self._drain())

        return request.future

    async def enqueue(self, key: str, call: CallFactory, priority=Priority.NORMAL):
        return await self.submit(key, call, priority)

    async def batch_update(
        self,
        keys: Iterable[str],
        call_factory: Callable[[str], Awaitable[Any]],
        priority=Priority.NORMAL,
    ) -> Dict[str, Any]:
        """
        Queue one call per key and wait for all of them.

        Returns key -> result, or key -> QuoteFetchError for the keys that
        failed; one failure never blocks the others.
        """
        keys = list(dict.fromkeys(keys))
        futures = [
            self.submit(key, (lambda k=key: call_factory(k)), priority)
            for key in keys
        ]
        results = await asyncio.gather(*futures, return_exceptions=True)
        return dict(zip(keys, results))

    def queue_depths(self) -> Dict[str, int]:
        return {'high': len(self._high), 'normal': len(self._normal)}

    def has_pending(self) -> bool:
        return bool(self._high or self._normal)

    def reset_stats(self) -> None:
        self.stats = DispatcherStats()

    # ========================================
    # DRAIN LOOP
    # ========================================

    def _pop_next(self) -> Optional[CallRequest]:
        if self._high:
            return self._high.popleft()
        if self._normal:
            return self._normal.popleft()
        return None

    async def _drain(self) -> None:
        try:
            while self.has_pending():
                if not self.limiter.can_call():
                    wait = self.limiter.wait_time(self.wait_buffer)
                    logger.info(f"Rate limit reached. Waiting {wait:.1f}s before next call...")
                    await self._sleep(wait)
                    continue

                request = self._pop_next()
                if request.future.done():
                    # caller gave up (cancelled) while queued
                    continue

                # No await between can_call() and record_call()
                self.limiter.record_call()
                await self._execute(request)

                delay = self.limiter.optimal_delay()
                if delay > 0:
                    await self._sleep(delay)
        finally:
            self._processing = False

    async def _execute(self, request: CallRequest) -> None:
        """
        Run one attempt of a queued call under call_timeout.

        A timeout cancels the awaiting coroutine only. A call running in a
        worker thread (asyncio.to_thread) keeps going until the upstream
        request returns, so a retry can overlap that in-flight request.
        """
        self.stats.total_calls += 1
        queued_for = self.limiter.now() - request.enqueued_at
        started = time.monotonic()

        try:
            if self.call_timeout:
                result = await asyncio.wait_for(request.call(), timeout=self.call_timeout)
            else:
                result = await request.call()
        except asyncio.CancelledError:
            if not request.future.done():
                request.future.cancel()
            raise
        except Exception as e:
            duration = time.monotonic() - started
            logger.warning(f"API call for {request.key} failed after {duration * 1000:.0f}ms: {e}")
            self._handle_failure(request, e)
            return

        duration = time.monotonic() - started
        logger.debug(
            f"API call for {request.key} completed in {duration * 1000:.0f}ms "
            f"(queued {queued_for:.1f}s)"
        )
        self.stats.successful_calls += 1
        if not request.future.done():
            request.future.set_result(result)

    def _handle_failure(self, request: CallRequest, error: Exception) -> None:
        kind = classify_error(error)
        if kind is ErrorKind.RATE_LIMITED:
            self.stats.rate_limit_hits += 1
            logger.warning("Rate limit hit! Backing off via retry queue")

        if is_retriable(kind) and request.attempt < request.max_attempts:
            request.attempt += 1
            self.stats.retries += 1
            logger.info(f"Retrying call for {request.key} (attempt {request.attempt + 1})")

            if request.attempt == 1:
                self._high.appendleft(request)
            else:
                self._normal.append(request)
            return

        self.stats.failed_calls += 1
        if request.future.done():
            return

        message = getattr(error, 'message', None) or str(error) or error.__class__.__name__
        failure = QuoteFetchError(
            message,
            symbol=getattr(error, 'symbol', None) or request.key,
            kind=kind,
            attempts=request.attempt + 1,
        )
        failure.__cause__ = error
        request.future.set_exception(failure)

    def status(self) -> Dict:
        status = self.limiter.status()
        status['queue_depths'] = self.queue_depths()
        status['processing'] = self._processing
        status['stats'] = self.stats.to_dict()
        return status

    def __repr__(self):
        depths = self.queue_depths()
        return f"<PriorityDispatcher(high={depths['high']}, normal={depths['normal']}, running={self._running})>"

"""
Sliding-window call limiter for the upstream quote provider.
"""

import logging
import time
from collections import deque
from typing import Callable, Dict

from constants import (
    PROVIDER_MAX_CALLS_PER_MINUTE,
    RATE_LIMIT_SAFETY_BUFFER,
    MIN_CALL_DELAY_SECONDS,
    RATE_LIMIT_WINDOW_SECONDS,
)

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Tracks provider calls over a trailing window and decides when the next
    call may go out.

    The enforced ceiling is the provider's published limit minus a safety
    buffer. Queries never raise; durations are in seconds and never negative.
    History is pruned lazily on every query.
    """

    def __init__(
        self,
        max_calls_per_minute: int = PROVIDER_MAX_CALLS_PER_MINUTE,
        safety_buffer: int = RATE_LIMIT_SAFETY_BUFFER,
        min_delay: float = MIN_CALL_DELAY_SECONDS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_calls_per_minute = int(max_calls_per_minute)
        self.safety_buffer = int(safety_buffer)
        self._effective_limit = self.max_calls_per_minute - self.safety_buffer
        if self._effective_limit < 1:
            raise ValueError(
                f"Effective limit must be >= 1 "
                f"({self.max_calls_per_minute} calls/min - {self.safety_buffer} buffer)"
            )

        self.min_delay = float(min_delay)
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._history = deque()

    @property
    def effective_limit(self) -> int:
        return self._effective_limit

    def now(self) -> float:
        return self._clock()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._history and self._history[0] <= cutoff:
            self._history.popleft()

    def current_window_calls(self) -> int:
        self._prune(self._clock())
        return len(self._history)

    def remaining_calls(self) -> int:
        return max(0, self._effective_limit - self.current_window_calls())

    def can_call(self) -> bool:
        return self.current_window_calls() < self._effective_limit

    def record_call(self) -> None:
        now = self._clock()
        self._history.append(now)
        self._prune(now)

    def time_until_window_reset(self) -> float:
        """Seconds until the oldest call in the window ages out (0 if none)."""
        now = self._clock()
        self._prune(now)
        if not self._history:
            return 0.0
        return max(0.0, self._history[0] + self.window_seconds - now)

    def optimal_delay(self) -> float:
        """
        Spacing before the next call: the rest of the window spread evenly over
        the calls still allowed, never below min_delay. With no calls left this
        is the full reset wait.
        """
        remaining = self.remaining_calls()
        until_reset = self.time_until_window_reset()

        if remaining <= 0:
            return max(self.min_delay, until_reset)

        return max(self.min_delay, until_reset / remaining)

    def wait_time(self, buffer: float = 0.0) -> float:
        """How long to sleep when a call is denied."""
        return self.time_until_window_reset() + buffer

    def reset(self) -> None:
        self._history.clear()

    def status(self) -> Dict:
        window_calls = self.current_window_calls()
        return {
            'can_call_now': window_calls < self._effective_limit,
            'window_usage': window_calls,
            'window_max': self._effective_limit,
            'provider_limit': self.max_calls_per_minute,
            'time_until_reset': round(self.time_until_window_reset(), 3),
        }

    def __repr__(self):
        return f"<RateLimiter({self.current_window_calls()}/{self._effective_limit} per {self.window_seconds:g}s)>"

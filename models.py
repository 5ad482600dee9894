# models.py
"""
Domain models for the quote fetching pipeline.
Defines: Priority, Quote, CallRequest, CacheEntry, DispatcherStats, UpdatePlan
"""

import asyncio
import uuid
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional


class Priority(str, Enum):
    """Request tier: user-initiated (high) or background/bulk (normal)"""
    HIGH = 'high'
    NORMAL = 'normal'

    @classmethod
    def parse(cls, value) -> 'Priority':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or 'normal').strip().lower())
        except ValueError:
            raise ValueError(f"Invalid priority: {value!r} (expected 'high' or 'normal')")


class CapacityTier(str, Enum):
    SMALL = 'small'
    MEDIUM = 'medium'
    LARGE = 'large'
    TOO_LARGE = 'too-large'


@dataclass(frozen=True)
class Quote:
    """A single price observation. Immutable once created."""
    symbol: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    high: float = 0.0
    low: float = 0.0
    open: float = 0.0
    previous_close: float = 0.0
    currency: str = 'USD'
    source: str = 'unknown'
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stale: bool = False

    def as_stale(self) -> 'Quote':
        return replace(self, stale=True)

    def to_dict(self):
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def __repr__(self):
        flag = ' (stale)' if self.stale else ''
        return f'<Quote {self.symbol} ${self.price:.2f} from {self.source}{flag}>'


@dataclass
class CallRequest:
    """
    One queued provider call.

    Owned by exactly one dispatcher queue until its future is resolved or
    failed; `attempt` counts retries already granted.
    """
    key: str
    call: Callable[[], Awaitable[Any]]
    future: 'asyncio.Future'
    priority: Priority = Priority.NORMAL
    max_attempts: int = 3
    attempt: int = 0
    enqueued_at: float = 0.0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __repr__(self):
        return f'<CallRequest {self.key} {self.priority.value} attempt={self.attempt}>'


@dataclass
class CacheEntry:
    key: str
    data: Quote
    stored_at: float


@dataclass
class DispatcherStats:
    """Running counters, updated on every execution attempt"""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rate_limit_hits: int = 0
    retries: int = 0

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class UpdatePlan:
    """Recommended auto-refresh settings for a portfolio of a given size"""
    portfolio_size: int
    frequency_seconds: float
    can_auto_update: bool
    max_positions: int
    capacity: CapacityTier
    recommendation: str
    rate_limit: Optional[dict] = None

    def to_dict(self):
        data = asdict(self)
        data['capacity'] = self.capacity.value
        return data

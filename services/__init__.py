"""
Service layer for quote fetching.
Separates concerns into distinct service classes.
"""

from services.rate_limiter import RateLimiter
from services.dispatcher import PriorityDispatcher
from services.cadence import UpdateCadencePlanner
from services.quote_cache import QuoteCache
from services.quote_service import QuoteService
from services.refresh_service import RefreshService
from services.event_loop import EventLoopThread

__all__ = [
    'RateLimiter',
    'PriorityDispatcher',
    'UpdateCadencePlanner',
    'QuoteCache',
    'QuoteService',
    'RefreshService',
    'EventLoopThread',
]

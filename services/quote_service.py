"""
Quote fetching service.
Cache first, rate-limited provider second, stale cache as last resort.
"""

import asyncio
import inspect
import logging
from typing import Dict, List, Union

from models import Priority, Quote
from providers.base_provider import BaseQuoteSource
from providers.errors import QuoteFetchError
from services.cadence import UpdateCadencePlanner
from services.dispatcher import PriorityDispatcher
from services.quote_cache import QuoteCache
from services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

BatchResult = Dict[str, Union[Quote, QuoteFetchError]]


class QuoteService:
    """Entry point used by the API, the refresh logic and the cron job."""

    def __init__(self, source: BaseQuoteSource, dispatcher: PriorityDispatcher,
                 cache: QuoteCache, planner: UpdateCadencePlanner):
        self.source = source
        self.dispatcher = dispatcher
        self.cache = cache
        self.planner = planner

    @classmethod
    def from_config(cls, config, source: BaseQuoteSource, sleep=None) -> 'QuoteService':
        """Wire limiter, dispatcher, cache and planner from a Flask-style config mapping."""
        limiter = RateLimiter(
            max_calls_per_minute=config['PROVIDER_MAX_CALLS_PER_MINUTE'],
            safety_buffer=config['RATE_LIMIT_SAFETY_BUFFER'],
            min_delay=config['MIN_CALL_DELAY_SECONDS'],
        )
        dispatcher = PriorityDispatcher(
            limiter,
            max_attempts=config['MAX_RETRY_ATTEMPTS'],
            call_timeout=config['PROVIDER_CALL_TIMEOUT_SECONDS'],
            wait_buffer=config['RATE_LIMIT_WAIT_BUFFER_SECONDS'],
            sleep=sleep or asyncio.sleep,
        )
        cache = QuoteCache(
            ttl_seconds=config['QUOTE_CACHE_TTL_SECONDS'],
            max_entries=config['QUOTE_CACHE_MAX_ENTRIES'],
        )
        planner = UpdateCadencePlanner(
            limiter.effective_limit,
            min_refresh_interval=config['MIN_REFRESH_INTERVAL_SECONDS'],
        )
        return cls(source, dispatcher, cache, planner)

    # ========================================
    # LIFECYCLE
    # ========================================

    async def start(self) -> None:
        self.dispatcher.start()

    async def stop(self) -> None:
        await self.dispatcher.stop()

    # ========================================
    # QUOTES
    # ========================================

    async def _fetch(self, symbol: str) -> Quote:
        fetch = self.source.fetch_quote
        if inspect.iscoroutinefunction(fetch):
            return await fetch(symbol)
        # requests/yfinance block, keep them off the event loop
        return await asyncio.to_thread(fetch, symbol)

    @staticmethod
    def _normalize(symbol: str) -> str:
        if not isinstance(symbol, str) or not symbol.strip():
            raise ValueError(f"Invalid ticker: {symbol!r}")
        return symbol.strip().upper()

    def _stale_or_raise(self, symbol: str, error: QuoteFetchError) -> Quote:
        stale = self.cache.get_stale(symbol)
        if stale is not None:
            logger.info(f"Using stale cache for {symbol} ({error.kind.value}: {error.message})")
            return stale
        raise error

    async def request_quote(self, symbol: str, priority=Priority.NORMAL) -> Quote:
        symbol = self._normalize(symbol)

        cached = self.cache.get(symbol)
        if cached is not None:
            return cached

        try:
            quote = await self.dispatcher.enqueue(symbol, lambda: self._fetch(symbol), priority)
        except QuoteFetchError as e:
            logger.warning(f"Failed to fetch price for {symbol}: {e.message}")
            return self._stale_or_raise(symbol, e)

        self.cache.set(symbol, quote)
        return quote

    async def request_batch(self, symbols: List[str], priority=Priority.NORMAL) -> BatchResult:
        symbols = list(dict.fromkeys(self._normalize(s) for s in symbols))
        logger.info(f"Batch updating {len(symbols)} symbols with priority: {Priority.parse(priority).value}")

        results: BatchResult = {}
        missing = []
        for symbol in symbols:
            cached = self.cache.get(symbol)
            if cached is not None:
                results[symbol] = cached
            else:
                missing.append(symbol)

        if missing:
            fetched = await self.dispatcher.batch_update(missing, self._fetch, priority)
            for symbol, outcome in fetched.items():
                if isinstance(outcome, Quote):
                    self.cache.set(symbol, outcome)
                    results[symbol] = outcome
                elif isinstance(outcome, QuoteFetchError):
                    logger.warning(f"Failed to update {symbol}: {outcome.message}")
                    results[symbol] = self.cache.get_stale(symbol) or outcome
                else:
                    # cancelled or otherwise unexpected
                    raise outcome

        return {symbol: results[symbol] for symbol in symbols}

    async def search_symbols(self, query: str) -> List[Dict]:
        query = (query or '').strip()
        if not query or not self.source.supports_search():
            return []

        try:
            return await self.dispatcher.enqueue(
                f"search:{query}",
                lambda: asyncio.to_thread(self.source.search_symbols, query),
                Priority.HIGH,
            )
        except QuoteFetchError as e:
            logger.warning(f"Symbol search failed: {e.message}")
            return []

    def clear_cache(self) -> None:
        self.cache.clear()

    # ========================================
    # STATUS & PLANNING
    # ========================================

    def get_status(self) -> Dict:
        limiter = self.dispatcher.limiter.status()
        return {
            'can_call_now': limiter['can_call_now'],
            'window_usage': limiter['window_usage'],
            'window_max': limiter['window_max'],
            'time_until_reset': limiter['time_until_reset'],
            'queue_depths': self.dispatcher.queue_depths(),
            'stats': self.dispatcher.stats.to_dict(),
            'cache': self.cache.status(),
            'provider': self.source.get_provider_name(),
        }

    def get_optimal_frequency(self, portfolio_size: int) -> float:
        return self.planner.optimal_frequency(portfolio_size)

    def get_update_plan(self, portfolio_size: int):
        limiter = self.dispatcher.limiter.status()
        return self.planner.plan(portfolio_size, rate_limit={
            'current': limiter['window_usage'],
            'max': limiter['window_max'],
            'time_until_reset': limiter['time_until_reset'],
        })

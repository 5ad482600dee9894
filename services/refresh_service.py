"""
Portfolio refresh logic on top of QuoteService.
Tracks when each symbol was last refreshed so stale positions can be reported.
"""

import logging
import time
from typing import Callable, Dict, List

from constants import STALE_POSITION_SECONDS
from models import Priority, Quote
from providers.errors import QuoteFetchError
from services.quote_service import QuoteService

logger = logging.getLogger(__name__)


class RefreshService:
    """Refreshes single symbols or whole portfolios and reports freshness."""

    def __init__(self, quote_service: QuoteService,
                 stale_after_seconds: float = STALE_POSITION_SECONDS,
                 clock: Callable[[], float] = time.time):
        self.quote_service = quote_service
        self.stale_after_seconds = stale_after_seconds
        self._clock = clock
        self.last_updated: Dict[str, float] = {}
        self.last_refresh_at = None
        self.is_updating = False

    def _mark_updated(self, quote: Quote) -> None:
        # stale fallbacks do not count as a refresh
        if not quote.stale:
            self.last_updated[quote.symbol] = self._clock()

    async def refresh_symbol(self, symbol: str, priority=Priority.HIGH) -> Dict:
        """User-initiated refresh of one position."""
        try:
            quote = await self.quote_service.request_quote(symbol, priority)
        except QuoteFetchError as e:
            logger.error(f"Failed to update {symbol}: {e.message}")
            return {'success': False, 'symbol': e.symbol, 'error': e.message, 'kind': e.kind.value}

        self._mark_updated(quote)
        return {'success': True, 'symbol': quote.symbol, 'data': quote.to_dict()}

    async def refresh_all(self, symbols: List[str], force: bool = False) -> Dict:
        """
        Refresh every symbol of a portfolio in one batch.

        force clears the quote cache and queues everything as high priority.
        Only one full refresh runs at a time.
        """
        symbols = list(dict.fromkeys(s.strip().upper() for s in symbols if s and s.strip()))
        if not symbols:
            return {'success': True, 'updated_count': 0, 'stale_count': 0, 'total_count': 0,
                    'errors': [], 'quotes': {}}
        if self.is_updating:
            return {'success': False, 'message': 'Refresh already in progress'}

        self.is_updating = True
        started = self._clock()
        try:
            if force:
                logger.info("Force refreshing all positions with high priority")
                self.quote_service.clear_cache()
            priority = Priority.HIGH if force else Priority.NORMAL

            logger.info(f"Starting batch update of {len(symbols)} positions")
            results = await self.quote_service.request_batch(symbols, priority)

            quotes, errors, stale_count = {}, [], 0
            for symbol, outcome in results.items():
                quotes[symbol] = outcome.to_dict()
                if not isinstance(outcome, Quote):
                    errors.append(f"{symbol}: {outcome.message}")
                elif outcome.stale:
                    stale_count += 1
                else:
                    self._mark_updated(outcome)

            self.last_refresh_at = self._clock()
            duration = self.last_refresh_at - started
            updated = len(symbols) - len(errors) - stale_count
            logger.info(f"Batch update completed in {duration:.1f}s - {updated}/{len(symbols)} successful")

            return {
                'success': updated > 0,
                'updated_count': updated,
                'stale_count': stale_count,
                'total_count': len(symbols),
                'errors': errors,
                'duration': round(duration, 3),
                'quotes': quotes,
            }
        finally:
            self.is_updating = False

    def stale_symbols(self, symbols: List[str]) -> List[str]:
        now = self._clock()
        stale = []
        for symbol in symbols:
            symbol = symbol.strip().upper()
            updated_at = self.last_updated.get(symbol)
            if updated_at is None or now - updated_at > self.stale_after_seconds:
                stale.append(symbol)
        return stale

    async def refresh_stale(self, symbols: List[str]) -> Dict:
        stale = self.stale_symbols(symbols)
        if not stale:
            return {'success': True, 'updated': 0, 'total': 0, 'message': 'All positions are fresh'}

        logger.info(f"Updating {len(stale)} stale positions")
        results = await self.quote_service.request_batch(stale, Priority.HIGH)

        successful = 0
        for outcome in results.values():
            if isinstance(outcome, Quote) and not outcome.stale:
                self._mark_updated(outcome)
                successful += 1

        return {
            'success': successful > 0,
            'updated': successful,
            'total': len(stale),
            'message': f"Updated {successful}/{len(stale)} stale positions",
        }

    def health(self, symbols: List[str]) -> Dict:
        total = len(symbols)
        stale = len(self.stale_symbols(symbols))
        return {
            'total': total,
            'stale': stale,
            'fresh': total - stale,
            'health_score': (1 - stale / total) * 100 if total else 100.0,
        }

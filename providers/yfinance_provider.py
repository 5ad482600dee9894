"""
yfinance implementation of the quote source.
Best for local development (free, no key).
Problematic on shared IPs (Railway, Heroku) due to Yahoo rate limiting.
"""

import logging
from typing import Dict, Optional

import yfinance as yf

from models import Quote
from .base_provider import BaseQuoteSource
from .errors import RateLimitedError, SymbolNotFoundError

logger = logging.getLogger(__name__)


class YFinanceProvider(BaseQuoteSource):
    """
    yfinance-based quote source.

    Pros:
    - Free, no API key
    - Works great locally

    Cons:
    - Scrapes Yahoo Finance (not official API)
    - Rate limited by IP address
    """

    def __init__(self, config: Optional[Dict] = None):
        super().__init__(config)
        logger.info("yfinance provider initialized")

    def get_provider_name(self) -> str:
        return "Yahoo Finance"

    def fetch_quote(self, symbol: str) -> Quote:
        symbol = self._validate_symbol(symbol)

        try:
            ticker = yf.Ticker(symbol)
            info = ticker.fast_info
            price = info.get('lastPrice')
            previous_close = info.get('previousClose')

            if price is None:
                # Try history (slower, but works for thinly traded symbols)
                hist = ticker.history(period='1d')
                if hist.empty:
                    raise SymbolNotFoundError(f"No data returned for {symbol}", symbol=symbol)
                price = float(hist['Close'].iloc[-1])

            price = self._assert_price(price, symbol, "fetch_quote")
            return self._build_quote(
                symbol,
                price,
                previous_close=previous_close,
                high=self._num(info.get('dayHigh')),
                low=self._num(info.get('dayLow')),
                open=self._num(info.get('open')),
                currency=info.get('currency') or 'USD',
            )

        except Exception as e:
            if "429" in str(e) or "Too Many Requests" in str(e):
                raise RateLimitedError(f"yfinance rate limited for {symbol}", symbol=symbol) from e
            raise

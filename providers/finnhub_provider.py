"""
Finnhub implementation of the quote source.
Primary provider: official API, 60 calls/min on the free tier.
"""

import logging
from typing import Dict, List, Optional

import requests

from constants import MAX_SEARCH_RESULTS
from models import Quote
from .base_provider import BaseQuoteSource
from .errors import (
    RateLimitedError,
    ServerError,
    SymbolNotFoundError,
    InvalidSymbolError,
    QuoteError,
)

logger = logging.getLogger(__name__)


class FinnhubProvider(BaseQuoteSource):
    base_url = "https://finnhub.io/api/v1"

    def __init__(self, config: Dict):
        super().__init__(config)
        self.api_key = config.get('api_key')
        if not self.api_key:
            raise ValueError("Finnhub API key is required")
        self.session = config.get('session') or requests.Session()
        logger.info("Finnhub provider initialized")

    def get_provider_name(self) -> str:
        return "Finnhub"

    def _get(self, path: str, params: Dict, symbol: Optional[str] = None) -> Dict:
        params = dict(params, token=self.api_key)
        response = self.session.get(f"{self.base_url}/{path}", params=params, timeout=self.timeout)

        status = response.status_code
        if status == 429:
            retry_after = response.headers.get('Retry-After')
            raise RateLimitedError(
                "Finnhub rate limit exceeded",
                symbol=symbol,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else 60
            )
        if status in (401, 403):
            raise QuoteError(f"Finnhub rejected the API key (HTTP {status})", symbol=symbol)
        if status >= 500:
            raise ServerError(f"Finnhub server error (HTTP {status})", symbol=symbol, status_code=status)

        response.raise_for_status()
        return response.json()

    def fetch_quote(self, symbol: str) -> Quote:
        symbol = self._validate_symbol(symbol)
        data = self._get('quote', {'symbol': symbol}, symbol=symbol)

        if not isinstance(data, dict):
            raise QuoteError(f"Invalid Finnhub response for {symbol}", symbol=symbol)
        if 'error' in data:
            raise InvalidSymbolError(f"Finnhub error: {data['error']}", symbol=symbol)

        # Finnhub answers unknown symbols with an all-zero quote
        if not data.get('c'):
            raise SymbolNotFoundError(f"Invalid Finnhub response - no price data for {symbol}", symbol=symbol)

        price = self._assert_price(data['c'], symbol, "fetch_quote")
        quote = self._build_quote(
            symbol,
            price,
            previous_close=data.get('pc'),
            change=self._num(data.get('d')),
            change_percent=self._num(data.get('dp')),
            high=self._num(data.get('h')),
            low=self._num(data.get('l')),
            open=self._num(data.get('o')),
        )
        logger.debug(f"{symbol}: ${quote.price:.2f}")
        return quote

    def search_symbols(self, query: str) -> List[Dict]:
        query = (query or '').strip()
        if not query:
            return []

        data = self._get('search', {'q': query})
        results = data.get('result') or []
        return [
            {
                'symbol': item.get('symbol'),
                'name': item.get('description'),
                'type': item.get('type'),
                'source': self.get_provider_name(),
            }
            for item in results[:MAX_SEARCH_RESULTS]
        ]

    def __repr__(self):
        return f"<FinnhubProvider({self.get_provider_name()})>"

# providers/alphavantage_provider.py

import logging
from typing import Dict

import requests

from models import Quote
from .base_provider import BaseQuoteSource
from .errors import (
    QuoteError,
    RateLimitedError,
    ServerError,
    SymbolNotFoundError,
    InvalidSymbolError,
)

logger = logging.getLogger(__name__)


class AlphaVantageInvalidKeyError(QuoteError):
    pass


class AlphaVantageProvider(BaseQuoteSource):
    base_url = "https://www.alphavantage.co/query"

    def __init__(self, config: Dict):
        super().__init__(config)

        self.api_key = config.get('api_key')
        if not self.api_key:
            raise ValueError("Alpha Vantage API key is required")
        if self.api_key == 'demo':
            raise ValueError("Alpha Vantage demo key not supported for real data")

        self.session = config.get('session') or requests.Session()
        logger.info("Alpha Vantage provider initialized")

    def get_provider_name(self) -> str:
        return "Alpha Vantage"

    def _make_request(self, params: Dict, symbol: str) -> Dict:
        params = dict(params, apikey=self.api_key)
        response = self.session.get(self.base_url, params=params, timeout=self.timeout)

        if response.status_code == 429:
            raise RateLimitedError("HTTP 429 rate limit", symbol=symbol, retry_after=60)
        if response.status_code >= 500:
            raise ServerError(
                f"Alpha Vantage server error (HTTP {response.status_code})",
                symbol=symbol,
                status_code=response.status_code
            )
        response.raise_for_status()
        data = response.json()

        if 'Error Message' in data:
            msg = data['Error Message']
            if 'api key' in msg.lower():
                raise AlphaVantageInvalidKeyError("Invalid Alpha Vantage API key", symbol=symbol)
            raise InvalidSymbolError(f"API Error: {msg}", symbol=symbol)

        # Throttling is reported in a 200 body, not through the status code
        for field in ('Note', 'Information'):
            if field in data:
                note = data[field]
                if 'call frequency' in note.lower() or 'rate limit' in note.lower():
                    raise RateLimitedError("Rate limit exceeded", symbol=symbol, retry_after=60)
                if 'premium' in note.lower() or 'upgrade' in note.lower():
                    raise RateLimitedError("Daily quota exhausted", symbol=symbol, retry_after=86400)

        return data

    def fetch_quote(self, symbol: str) -> Quote:
        symbol = self._validate_symbol(symbol)
        data = self._make_request({'function': 'GLOBAL_QUOTE', 'symbol': symbol}, symbol)

        quote = data.get('Global Quote')
        if not quote or '05. price' not in quote:
            raise SymbolNotFoundError(f"{symbol}: No quote data", symbol=symbol)

        price = self._assert_price(quote.get('05. price'), symbol, "fetch_quote")
        change_percent = str(quote.get('10. change percent', '0')).replace('%', '')

        return self._build_quote(
            symbol,
            price,
            previous_close=quote.get('08. previous close'),
            change=self._num(quote.get('09. change')),
            change_percent=self._num(change_percent),
            high=self._num(quote.get('03. high')),
            low=self._num(quote.get('04. low')),
            open=self._num(quote.get('02. open')),
        )

    def __repr__(self):
        return f"<AlphaVantageProvider({self.get_provider_name()})>"

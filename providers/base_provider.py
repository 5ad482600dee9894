"""
Abstract base class for quote sources.
Enforces consistent interface across Finnhub, Alpha Vantage, yfinance, etc.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

import pandas as pd

from constants import MAX_TICKER_LENGTH, PROVIDER_CALL_TIMEOUT_SECONDS
from models import Quote
from .errors import InvalidSymbolError, SymbolNotFoundError


class BaseQuoteSource(ABC):
    """
    Abstract base class for stock quote providers.
    All providers must implement these methods with consistent validation.

    A quote source is a black box to the rate-limited dispatcher: it may be
    slow and it may fail, but every failure must be an exception that
    providers.errors.classify_error understands.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize provider with configuration.

        Args:
            config: Dictionary containing provider-specific settings
        """
        self.config = config or {}
        self.timeout = self.config.get('timeout', PROVIDER_CALL_TIMEOUT_SECONDS)

    # ========================================
    # VALIDATION METHODS
    # ========================================

    def _validate_symbol(self, symbol: str) -> str:
        """Validate and clean a ticker symbol"""
        if not isinstance(symbol, str) or not symbol.strip():
            raise InvalidSymbolError(f"Invalid ticker: {symbol!r}", symbol=str(symbol))
        clean = symbol.strip().upper()
        if len(clean) > MAX_TICKER_LENGTH or ' ' in clean:
            raise InvalidSymbolError(f"Invalid ticker format: {clean}", symbol=clean)
        return clean

    def _assert_price(self, price, symbol: str, context: str) -> float:
        """Validate stock price, returning it as float"""
        if price is None or pd.isna(price):
            raise SymbolNotFoundError(f"[{symbol}] no price in {context}", symbol=symbol)
        try:
            p = float(price)
        except (TypeError, ValueError):
            raise SymbolNotFoundError(f"[{symbol}] invalid price in {context}", symbol=symbol)
        if p <= 0:
            raise SymbolNotFoundError(f"[{symbol}] price must be > 0 in {context}", symbol=symbol)
        return p

    @staticmethod
    def _num(value, default: float = 0.0) -> float:
        """Coerce optional provider fields to a rounded float"""
        try:
            if value is None or pd.isna(value):
                return default
            return round(float(value), 2)
        except (TypeError, ValueError):
            return default

    def _build_quote(self, symbol: str, price: float, previous_close: float = 0.0,
                     change: Optional[float] = None, change_percent: Optional[float] = None,
                     **fields) -> Quote:
        """Assemble a Quote, deriving change figures from previous close when missing"""
        price = round(float(price), 2)
        previous_close = self._num(previous_close)
        if change is None:
            change = price - previous_close if previous_close else 0.0
        if change_percent is None:
            change_percent = (change / previous_close) * 100 if previous_close else 0.0

        return Quote(
            symbol=symbol,
            price=price,
            change=round(float(change), 2),
            change_percent=round(float(change_percent), 2),
            previous_close=previous_close,
            source=self.get_provider_name(),
            timestamp=datetime.now(timezone.utc),
            **fields
        )

    # ========================================
    # ABSTRACT METHODS (must be implemented)
    # ========================================

    @abstractmethod
    def fetch_quote(self, symbol: str) -> Quote:
        """
        Get the current quote for one symbol.

        Args:
            symbol: Stock symbol

        Returns:
            Quote with price > 0

        Raises:
            QuoteError subclasses (or requests exceptions) on failure
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return human-readable provider name"""
        pass

    def supports_search(self) -> bool:
        return callable(getattr(self, 'search_symbols', None))

    def __repr__(self):
        return f"<{self.__class__.__name__}(provider={self.get_provider_name()})>"

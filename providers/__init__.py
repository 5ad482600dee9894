# providers/__init__.py
"""
Quote source factory and exports.
Automatically selects appropriate providers based on configuration.
"""

import logging
from typing import Dict

from .base_provider import BaseQuoteSource
from .finnhub_provider import FinnhubProvider
from .yfinance_provider import YFinanceProvider
from .fallback_provider import FallbackQuoteSource
from .alphavantage_provider import AlphaVantageProvider, AlphaVantageInvalidKeyError
from .errors import (
    ErrorKind,
    QuoteError,
    QuoteFetchError,
    RateLimitedError,
    QuoteTimeoutError,
    NetworkError,
    ServerError,
    SymbolNotFoundError,
    InvalidSymbolError,
    classify_error,
    is_retriable,
)

logger = logging.getLogger(__name__)


class QuoteSourceFactory:
    """
    Factory for creating the configured quote source.
    Handles provider selection and fallback ordering.
    """

    @staticmethod
    def create_source(config: Dict) -> BaseQuoteSource:
        """
        Create quote source based on configuration.

        Priority (auto):
        1. FINNHUB_API_KEY exists → Finnhub first
        2. ALPHA_VANTAGE_API_KEY exists → Alpha Vantage next
        3. yfinance always last

        Args:
            config: Application configuration

        Returns:
            A single provider, or a FallbackQuoteSource when more than one applies
        """
        provider_name = (config.get('QUOTE_PROVIDER') or 'auto').lower()
        finnhub_key = config.get('FINNHUB_API_KEY', '')
        alpha_vantage_key = config.get('ALPHA_VANTAGE_API_KEY', '')
        timeout = config.get('PROVIDER_CALL_TIMEOUT_SECONDS')

        if provider_name == 'finnhub':
            if not finnhub_key:
                raise ValueError(
                    "Finnhub selected but FINNHUB_API_KEY not set. "
                    "Please add it to your .env file."
                )
            return QuoteSourceFactory._create_finnhub(finnhub_key, timeout)

        elif provider_name == 'alphavantage':
            if not alpha_vantage_key:
                raise ValueError(
                    "Alpha Vantage selected but ALPHA_VANTAGE_API_KEY not set. "
                    "Please add it to your .env file."
                )
            return QuoteSourceFactory._create_alpha_vantage(alpha_vantage_key, timeout)

        elif provider_name == 'yfinance':
            return QuoteSourceFactory._create_yfinance(timeout)

        elif provider_name != 'auto':
            raise ValueError(f"Unknown QUOTE_PROVIDER: {provider_name}")

        sources = []
        if finnhub_key:
            sources.append(QuoteSourceFactory._create_finnhub(finnhub_key, timeout))
        if alpha_vantage_key and alpha_vantage_key != 'demo':
            sources.append(QuoteSourceFactory._create_alpha_vantage(alpha_vantage_key, timeout))
        sources.append(QuoteSourceFactory._create_yfinance(timeout))

        if len(sources) == 1:
            logger.info("No API keys found, using yfinance provider (local dev mode)")
            return sources[0]

        source = FallbackQuoteSource(sources)
        logger.info(f"Using quote sources: {source.get_provider_name()}")
        return source

    @staticmethod
    def _provider_config(timeout) -> Dict:
        return {'timeout': timeout} if timeout else {}

    @staticmethod
    def _create_finnhub(api_key: str, timeout) -> FinnhubProvider:
        """Create Finnhub provider"""
        return FinnhubProvider(dict(QuoteSourceFactory._provider_config(timeout), api_key=api_key))

    @staticmethod
    def _create_alpha_vantage(api_key: str, timeout) -> AlphaVantageProvider:
        """Create Alpha Vantage provider"""
        return AlphaVantageProvider(dict(QuoteSourceFactory._provider_config(timeout), api_key=api_key))

    @staticmethod
    def _create_yfinance(timeout) -> YFinanceProvider:
        """Create yfinance provider"""
        return YFinanceProvider(QuoteSourceFactory._provider_config(timeout))


# Exports
__all__ = [
    'BaseQuoteSource',
    'FinnhubProvider',
    'AlphaVantageProvider',
    'AlphaVantageInvalidKeyError',
    'YFinanceProvider',
    'FallbackQuoteSource',
    'QuoteSourceFactory',
    'ErrorKind',
    'QuoteError',
    'QuoteFetchError',
    'RateLimitedError',
    'QuoteTimeoutError',
    'NetworkError',
    'ServerError',
    'SymbolNotFoundError',
    'InvalidSymbolError',
    'classify_error',
    'is_retriable',
]

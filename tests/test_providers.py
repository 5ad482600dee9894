"""
Tests for quote sources, the error taxonomy and the source factory.
"""

import asyncio
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest
import requests

from conftest import FakeSource
from providers import (
    AlphaVantageProvider,
    FallbackQuoteSource,
    FinnhubProvider,
    QuoteSourceFactory,
    YFinanceProvider,
)
from providers.errors import (
    ErrorKind,
    InvalidSymbolError,
    NetworkError,
    QuoteFetchError,
    RateLimitedError,
    ServerError,
    SymbolNotFoundError,
    classify_error,
    is_retriable,
)


def mock_response(status=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status
    response.headers = headers or {}
    response.json.return_value = payload if payload is not None else {}
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    return response


class TestErrorClassification:
    """Test mapping of raw exceptions onto error kinds."""

    def test_quote_errors_keep_their_kind(self):
        """Test typed errors classify as themselves."""
        assert classify_error(RateLimitedError("slow down")) is ErrorKind.RATE_LIMITED
        assert classify_error(SymbolNotFoundError("nope")) is ErrorKind.NOT_FOUND
        assert classify_error(InvalidSymbolError("bad")) is ErrorKind.INVALID_SYMBOL

    def test_timeouts(self):
        """Test asyncio and requests timeouts classify as timeout."""
        assert classify_error(asyncio.TimeoutError()) is ErrorKind.TIMEOUT
        assert classify_error(requests.Timeout()) is ErrorKind.TIMEOUT

    def test_connection_errors(self):
        """Test connection failures classify as network."""
        assert classify_error(requests.ConnectionError("refused")) is ErrorKind.NETWORK
        assert classify_error(ConnectionResetError()) is ErrorKind.NETWORK

    @pytest.mark.parametrize('status,kind', [
        (429, ErrorKind.RATE_LIMITED),
        (404, ErrorKind.NOT_FOUND),
        (500, ErrorKind.SERVER),
        (503, ErrorKind.SERVER),
    ])
    def test_http_status(self, status, kind):
        """Test HTTP errors classify by status code."""
        error = requests.HTTPError(response=mock_response(status))
        assert classify_error(error) is kind

    def test_message_heuristics(self):
        """Test untyped errors fall back to message matching."""
        assert classify_error(Exception("Too Many Requests")) is ErrorKind.RATE_LIMITED
        assert classify_error(Exception("read timed out")) is ErrorKind.TIMEOUT
        assert classify_error(Exception("something odd")) is ErrorKind.UNKNOWN

    def test_retriable_kinds(self):
        """Test only transient kinds are retriable."""
        assert is_retriable(ErrorKind.RATE_LIMITED)
        assert is_retriable(ErrorKind.SERVER)
        assert not is_retriable(ErrorKind.NOT_FOUND)
        assert not is_retriable(ErrorKind.UNKNOWN)

    def test_fetch_error_to_dict(self):
        """Test QuoteFetchError serializes for the API."""
        error = QuoteFetchError("gave up", symbol='AAPL', kind=ErrorKind.TIMEOUT, attempts=4)
        assert error.to_dict() == {'symbol': 'AAPL', 'error': 'gave up', 'kind': 'timeout', 'attempts': 4}


class TestFinnhubProvider:
    """Test Finnhub provider."""

    def test_requires_api_key(self):
        """Test missing key is rejected."""
        with pytest.raises(ValueError, match="API key"):
            FinnhubProvider({})

    def test_fetch_quote(self):
        """Test a successful quote is parsed."""
        session = MagicMock()
        session.get.return_value = mock_response(payload={
            'c': 150.5, 'pc': 148.0, 'd': 2.5, 'dp': 1.69, 'h': 151.0, 'l': 147.5, 'o': 148.2
        })
        provider = FinnhubProvider({'api_key': 'key', 'session': session})

        quote = provider.fetch_quote('aapl')

        assert quote.symbol == 'AAPL'
        assert quote.price == 150.5
        assert quote.change_percent == 1.69
        assert quote.source == 'Finnhub'
        _, kwargs = session.get.call_args
        assert kwargs['params']['symbol'] == 'AAPL'
        assert kwargs['params']['token'] == 'key'

    def test_zero_price_means_not_found(self):
        """Test Finnhub's all-zero answer is a not-found error."""
        session = MagicMock()
        session.get.return_value = mock_response(payload={'c': 0, 'pc': 0})
        provider = FinnhubProvider({'api_key': 'key', 'session': session})

        with pytest.raises(SymbolNotFoundError):
            provider.fetch_quote('ZZZZ')

    def test_rate_limit_status(self):
        """Test HTTP 429 raises RateLimitedError with Retry-After."""
        session = MagicMock()
        session.get.return_value = mock_response(429, headers={'Retry-After': '30'})
        provider = FinnhubProvider({'api_key': 'key', 'session': session})

        with pytest.raises(RateLimitedError) as exc_info:
            provider.fetch_quote('AAPL')
        assert exc_info.value.retry_after == 30

    def test_server_error(self):
        """Test 5xx responses raise ServerError."""
        session = MagicMock()
        session.get.return_value = mock_response(502)
        provider = FinnhubProvider({'api_key': 'key', 'session': session})

        with pytest.raises(ServerError):
            provider.fetch_quote('AAPL')

    def test_invalid_symbol_rejected_locally(self):
        """Test malformed symbols never reach the network."""
        session = MagicMock()
        provider = FinnhubProvider({'api_key': 'key', 'session': session})

        with pytest.raises(InvalidSymbolError):
            provider.fetch_quote('NOT A TICKER')
        session.get.assert_not_called()

    def test_search_symbols(self):
        """Test search results are trimmed to a common shape."""
        session = MagicMock()
        session.get.return_value = mock_response(payload={'result': [
            {'symbol': 'AAPL', 'description': 'APPLE INC', 'type': 'Common Stock'},
        ]})
        provider = FinnhubProvider({'api_key': 'key', 'session': session})

        assert provider.search_symbols('apple') == [
            {'symbol': 'AAPL', 'name': 'APPLE INC', 'type': 'Common Stock', 'source': 'Finnhub'}
        ]
        assert provider.supports_search() is True


class TestAlphaVantageProvider:
    """Test Alpha Vantage provider."""

    def test_demo_key_rejected(self):
        """Test the demo key is refused."""
        with pytest.raises(ValueError, match="demo"):
            AlphaVantageProvider({'api_key': 'demo'})

    def test_fetch_quote(self):
        """Test GLOBAL_QUOTE parsing."""
        session = MagicMock()
        session.get.return_value = mock_response(payload={'Global Quote': {
            '01. symbol': 'MSFT', '02. open': '400.00', '03. high': '405.00', '04. low': '398.00',
            '05. price': '402.50', '08. previous close': '399.00', '09. change': '3.50',
            '10. change percent': '0.8772%'
        }})
        provider = AlphaVantageProvider({'api_key': 'key', 'session': session})

        quote = provider.fetch_quote('MSFT')

        assert quote.price == 402.5
        assert quote.change_percent == 0.88
        assert quote.high == 405.0

    def test_throttle_note_is_rate_limit(self):
        """Test the 200-status throttle note raises RateLimitedError."""
        session = MagicMock()
        session.get.return_value = mock_response(payload={
            'Note': 'Thank you for using Alpha Vantage! Our standard API call frequency is 5 calls per minute.'
        })
        provider = AlphaVantageProvider({'api_key': 'key', 'session': session})

        with pytest.raises(RateLimitedError):
            provider.fetch_quote('MSFT')

    def test_error_message_is_invalid_symbol(self):
        """Test an error body raises InvalidSymbolError."""
        session = MagicMock()
        session.get.return_value = mock_response(payload={'Error Message': 'Invalid API call.'})
        provider = AlphaVantageProvider({'api_key': 'key', 'session': session})

        with pytest.raises(InvalidSymbolError):
            provider.fetch_quote('MSFT')

    def test_no_search_support(self):
        """Test Alpha Vantage does not advertise search."""
        provider = AlphaVantageProvider({'api_key': 'key', 'session': MagicMock()})
        assert provider.supports_search() is False


class TestYFinanceProvider:
    """Test yfinance provider."""

    @patch('providers.yfinance_provider.yf.Ticker')
    def test_fetch_quote_from_fast_info(self, mock_ticker):
        """Test quote built from fast_info."""
        mock_ticker.return_value.fast_info = {
            'lastPrice': 900.123, 'previousClose': 880.0, 'dayHigh': 905.0,
            'dayLow': 870.0, 'open': 882.0, 'currency': 'USD'
        }
        quote = YFinanceProvider().fetch_quote('NVDA')

        assert quote.price == 900.12
        assert quote.change == pytest.approx(20.12)
        assert quote.source == 'Yahoo Finance'

    @patch('providers.yfinance_provider.yf.Ticker')
    def test_falls_back_to_history(self, mock_ticker):
        """Test history is used when fast_info has no price."""
        mock_ticker.return_value.fast_info = {}
        mock_ticker.return_value.history.return_value = pd.DataFrame({'Close': [101.0, 102.5]})

        assert YFinanceProvider().fetch_quote('JPM').price == 102.5

    @patch('providers.yfinance_provider.yf.Ticker')
    def test_empty_history_is_not_found(self, mock_ticker):
        """Test no data at all raises SymbolNotFoundError."""
        mock_ticker.return_value.fast_info = {}
        mock_ticker.return_value.history.return_value = pd.DataFrame()

        with pytest.raises(SymbolNotFoundError):
            YFinanceProvider().fetch_quote('ZZZZ')

    @patch('providers.yfinance_provider.yf.Ticker')
    def test_yahoo_throttle_is_rate_limit(self, mock_ticker):
        """Test Yahoo's 429 surfaces as RateLimitedError."""
        mock_ticker.side_effect = Exception("429 Client Error: Too Many Requests")

        with pytest.raises(RateLimitedError):
            YFinanceProvider().fetch_quote('AAPL')


class TestFallbackAndFactory:
    """Test FallbackQuoteSource and QuoteSourceFactory."""

    def test_fallback_uses_next_source(self):
        """Test the second source answers when the first fails."""
        first = FakeSource(failures={'AAPL': [NetworkError("down")]})
        second = FakeSource(prices={'AAPL': 150.0})
        source = FallbackQuoteSource([first, second])

        assert source.fetch_quote('AAPL').price == 150.0
        assert first.calls == ['AAPL']

    def test_fallback_prefers_rate_limit_error(self):
        """Test a rate limit anywhere in the chain wins over other retriable errors."""
        source = FallbackQuoteSource([
            FakeSource(failures={'AAPL': [NetworkError("down")]}),
            FakeSource(failures={'AAPL': [RateLimitedError("slow")]}),
        ])
        with pytest.raises(RateLimitedError) as exc_info:
            source.fetch_quote('AAPL')

        assert isinstance(exc_info.value.__cause__, NetworkError)

    def test_throttled_primary_not_masked_by_unknown_error(self):
        """Test a throttled first source is reported even when the last source fails oddly."""
        source = FallbackQuoteSource([
            FakeSource(failures={'AAPL': [RateLimitedError("HTTP 429")]}),
            FakeSource(failures={'AAPL': [Exception("No timezone found, symbol may be delisted")]}),
        ])
        with pytest.raises(RateLimitedError) as exc_info:
            source.fetch_quote('AAPL')

        assert "No timezone found" in str(exc_info.value.__cause__)

    def test_fallback_prefers_retriable_over_terminal(self):
        """Test a transient failure is chosen over a terminal one."""
        source = FallbackQuoteSource([
            FakeSource(failures={'AAPL': [ServerError("502", status_code=502)]}),
            FakeSource(prices={}),
        ])
        with pytest.raises(ServerError):
            source.fetch_quote('AAPL')

    def test_fallback_all_terminal_raises_last_error(self):
        """Test the final source's error propagates when nothing is retriable."""
        source = FallbackQuoteSource([
            FakeSource(failures={'AAPL': [InvalidSymbolError("bad")]}),
            FakeSource(prices={}),
        ])
        with pytest.raises(SymbolNotFoundError):
            source.fetch_quote('AAPL')

    def test_fallback_requires_sources(self):
        """Test an empty chain is rejected."""
        with pytest.raises(ValueError):
            FallbackQuoteSource([])

    def test_factory_yfinance_without_keys(self):
        """Test auto mode without keys selects yfinance."""
        source = QuoteSourceFactory.create_source({'QUOTE_PROVIDER': 'auto'})
        assert isinstance(source, YFinanceProvider)

    def test_factory_auto_with_keys_builds_chain(self):
        """Test auto mode orders Finnhub, Alpha Vantage, then yfinance."""
        source = QuoteSourceFactory.create_source({
            'QUOTE_PROVIDER': 'auto',
            'FINNHUB_API_KEY': 'fh',
            'ALPHA_VANTAGE_API_KEY': 'av',
        })
        assert isinstance(source, FallbackQuoteSource)
        assert source.get_provider_name() == "Finnhub -> Alpha Vantage -> Yahoo Finance"

    def test_factory_named_provider_requires_key(self):
        """Test an explicit provider without its key is a config error."""
        with pytest.raises(ValueError, match="FINNHUB_API_KEY"):
            QuoteSourceFactory.create_source({'QUOTE_PROVIDER': 'finnhub'})

    def test_factory_unknown_provider(self):
        """Test an unknown provider name is rejected."""
        with pytest.raises(ValueError, match="Unknown QUOTE_PROVIDER"):
            QuoteSourceFactory.create_source({'QUOTE_PROVIDER': 'bloomberg'})

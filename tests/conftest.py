"""
Pytest fixtures for the quote service tests.
"""

import asyncio
import os
import pytest

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'
os.environ['SECRET_KEY'] = 'test-secret-key'

from app import create_app, shutdown_app
from models import Quote
from providers.base_provider import BaseQuoteSource
from providers.errors import SymbolNotFoundError
from services import (
    PriorityDispatcher,
    QuoteCache,
    QuoteService,
    RateLimiter,
    UpdateCadencePlanner,
)


class FakeClock:
    """Manually advanced clock; sleep() advances it instead of waiting."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += max(0.0, seconds)
        await asyncio.sleep(0)


class FakeSource(BaseQuoteSource):
    """
    In-memory quote source.

    prices maps symbol -> price; failures maps symbol -> list of exceptions
    raised on successive calls before prices are served.
    """

    def __init__(self, prices=None, failures=None, search_results=None):
        super().__init__({})
        self.prices = dict(prices or {})
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.search_results = search_results
        self.calls = []

    def get_provider_name(self):
        return "Fake"

    def fetch_quote(self, symbol):
        self.calls.append(symbol)
        pending = self.failures.get(symbol)
        if pending:
            raise pending.pop(0)
        if symbol not in self.prices:
            raise SymbolNotFoundError(f"Unknown symbol {symbol}", symbol=symbol)
        return self._build_quote(symbol, self.prices[symbol], previous_close=self.prices[symbol] - 1)

    def supports_search(self):
        return self.search_results is not None

    def search_symbols(self, query):
        return [r for r in self.search_results if query.upper() in r['symbol']]


async def no_wait(seconds):
    await asyncio.sleep(0)


def make_quote(symbol='AAPL', price=150.0, **kwargs):
    return Quote(symbol=symbol, price=price, previous_close=price - 1, change=1.0, source='test', **kwargs)


def build_service(source, clock):
    """QuoteService wired to a fake clock so pacing and TTLs run instantly."""
    limiter = RateLimiter(clock=clock)
    dispatcher = PriorityDispatcher(limiter, call_timeout=2.0, sleep=clock.sleep)
    cache = QuoteCache(ttl_seconds=30, clock=clock)
    planner = UpdateCadencePlanner(limiter.effective_limit)
    return QuoteService(source, dispatcher, cache, planner)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_source():
    return FakeSource(
        prices={'AAPL': 150.0, 'MSFT': 400.0, 'NVDA': 900.0},
        search_results=[
            {'symbol': 'AAPL', 'name': 'Apple Inc', 'type': 'Common Stock', 'source': 'Fake'},
            {'symbol': 'MSFT', 'name': 'Microsoft Corp', 'type': 'Common Stock', 'source': 'Fake'},
        ],
    )


@pytest.fixture(scope='function')
def app(fake_source):
    """Create application for testing."""
    application = create_app('testing', quote_source=fake_source)
    application.config['TESTING'] = True
    # no pacing between calls in API tests
    application.quote_service.dispatcher._sleep = no_wait

    yield application

    shutdown_app(application)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()

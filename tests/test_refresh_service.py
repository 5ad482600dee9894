"""
Tests for RefreshService.
"""

import pytest
import pytest_asyncio

from conftest import FakeClock, build_service
from models import Priority
from providers.errors import RateLimitedError
from services import RefreshService


@pytest.fixture
def wall_clock():
    return FakeClock(start=1_700_000_000.0)


@pytest_asyncio.fixture
async def quote_service(fake_source, clock):
    svc = build_service(fake_source, clock)
    await svc.start()
    yield svc
    await svc.stop()


@pytest.fixture
def refresh_service(quote_service, wall_clock):
    return RefreshService(quote_service, stale_after_seconds=300, clock=wall_clock)


class TestRefreshSymbol:
    """Test single-position refresh."""

    @pytest.mark.asyncio
    async def test_success_marks_updated(self, refresh_service, wall_clock):
        """Test a refreshed symbol records its update time."""
        result = await refresh_service.refresh_symbol('aapl')

        assert result['success'] is True
        assert result['data']['price'] == 150.0
        assert refresh_service.last_updated['AAPL'] == wall_clock.now

    @pytest.mark.asyncio
    async def test_failure_reports_kind(self, refresh_service):
        """Test a failed refresh returns the error kind instead of raising."""
        result = await refresh_service.refresh_symbol('ZZZZ')

        assert result['success'] is False
        assert result['kind'] == 'not_found'
        assert 'ZZZZ' not in refresh_service.last_updated


class TestRefreshAll:
    """Test full-portfolio refresh."""

    @pytest.mark.asyncio
    async def test_counts_updates_and_errors(self, refresh_service):
        """Test the summary separates updated symbols from failures."""
        result = await refresh_service.refresh_all(['AAPL', 'MSFT', 'ZZZZ'])

        assert result['success'] is True
        assert result['updated_count'] == 2
        assert result['total_count'] == 3
        assert result['stale_count'] == 0
        assert len(result['errors']) == 1
        assert result['errors'][0].startswith('ZZZZ')
        assert result['quotes']['ZZZZ']['kind'] == 'not_found'
        assert refresh_service.is_updating is False

    @pytest.mark.asyncio
    async def test_empty_portfolio(self, refresh_service):
        """Test an empty list is a successful no-op."""
        result = await refresh_service.refresh_all([])
        assert result['total_count'] == 0
        assert result['success'] is True

    @pytest.mark.asyncio
    async def test_force_bypasses_cache(self, refresh_service, fake_source):
        """Test force refresh clears the cache and fetches everything again."""
        await refresh_service.refresh_all(['AAPL'])
        await refresh_service.refresh_all(['AAPL'])
        assert fake_source.calls == ['AAPL']

        await refresh_service.refresh_all(['AAPL'], force=True)
        assert fake_source.calls == ['AAPL', 'AAPL']

    @pytest.mark.asyncio
    async def test_force_uses_high_priority(self, refresh_service, quote_service):
        """Test force refresh queues with high priority."""
        seen = []
        original = quote_service.request_batch

        async def spy(symbols, priority=Priority.NORMAL):
            seen.append(priority)
            return await original(symbols, priority)

        quote_service.request_batch = spy
        await refresh_service.refresh_all(['AAPL'], force=True)
        await refresh_service.refresh_all(['MSFT'])

        assert seen == [Priority.HIGH, Priority.NORMAL]

    @pytest.mark.asyncio
    async def test_refuses_concurrent_refresh(self, refresh_service):
        """Test a second full refresh is refused while one is running."""
        refresh_service.is_updating = True

        result = await refresh_service.refresh_all(['AAPL'])

        assert result == {'success': False, 'message': 'Refresh already in progress'}

    @pytest.mark.asyncio
    async def test_stale_quotes_not_counted_as_updated(self, refresh_service, fake_source, clock):
        """Test stale fallbacks are reported separately and leave freshness untouched."""
        await refresh_service.refresh_all(['AAPL'])
        updated_at = refresh_service.last_updated['AAPL']
        clock.advance(60)
        fake_source.failures['AAPL'] = [RateLimitedError("429") for _ in range(4)]

        result = await refresh_service.refresh_all(['AAPL'])

        assert result['updated_count'] == 0
        assert result['stale_count'] == 1
        assert result['success'] is False
        assert result['quotes']['AAPL']['stale'] is True
        assert refresh_service.last_updated['AAPL'] == updated_at


class TestFreshness:
    """Test stale position tracking."""

    @pytest.mark.asyncio
    async def test_stale_symbols_and_health(self, refresh_service, wall_clock):
        """Test positions go stale after the threshold."""
        await refresh_service.refresh_all(['AAPL', 'MSFT'])
        assert refresh_service.stale_symbols(['AAPL', 'MSFT', 'NVDA']) == ['NVDA']

        wall_clock.advance(301)
        assert refresh_service.stale_symbols(['AAPL', 'MSFT']) == ['AAPL', 'MSFT']

        health = refresh_service.health(['AAPL', 'MSFT'])
        assert health == {'total': 2, 'stale': 2, 'fresh': 0, 'health_score': 0.0}

    @pytest.mark.asyncio
    async def test_health_empty(self, refresh_service):
        """Test an empty portfolio is fully healthy."""
        assert refresh_service.health([])['health_score'] == 100.0

    @pytest.mark.asyncio
    async def test_refresh_stale(self, refresh_service):
        """Test only stale positions are refreshed."""
        await refresh_service.refresh_all(['AAPL'])

        result = await refresh_service.refresh_stale(['AAPL', 'MSFT'])

        assert result['total'] == 1
        assert result['updated'] == 1
        assert result['message'] == "Updated 1/1 stale positions"

    @pytest.mark.asyncio
    async def test_refresh_stale_nothing_to_do(self, refresh_service):
        """Test all-fresh portfolios skip the provider."""
        await refresh_service.refresh_all(['AAPL'])
        result = await refresh_service.refresh_stale(['AAPL'])
        assert result['message'] == 'All positions are fresh'

#!/usr/bin/env python3
"""
Cron job for scheduled quote refresh. Run every 15 minutes.

Schedule behavior:
- Weekends: Skip entirely
- Before 9:30 AM ET / after 4:00 PM ET: Skip unless --force
- Market hours: Refresh every PORTFOLIO_STOCKS symbol in one rate-limited batch

Exits with status 1 when no symbol could be refreshed.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from config import get_config
from providers import QuoteSourceFactory
from services import QuoteService, RefreshService

# Market hours in UTC (ET + 5, or ET + 4 during DST)
# Using conservative estimates that work year-round
MARKET_OPEN_UTC = (13, 30)   # 9:30 AM ET = 14:30 UTC (winter) / 13:30 UTC (summer)
MARKET_CLOSE_UTC = (21, 0)   # 4:00 PM ET = 21:00 UTC (winter) / 20:00 UTC (summer)

WEEKEND = 'weekend'
PRE_MARKET = 'pre-market'
OPEN = 'open'
AFTER_HOURS = 'after-hours'


def market_status(now=None):
    """Classify a UTC timestamp as weekend, pre-market, open or after-hours."""
    now = now or datetime.now(timezone.utc)
    if now.weekday() >= 5:
        return WEEKEND

    minutes = now.hour * 60 + now.minute
    if minutes < MARKET_OPEN_UTC[0] * 60 + MARKET_OPEN_UTC[1]:
        return PRE_MARKET
    if minutes > MARKET_CLOSE_UTC[0] * 60 + MARKET_CLOSE_UTC[1]:
        return AFTER_HOURS
    return OPEN


async def refresh_portfolio(config, symbols, source=None):
    """Build the quote stack, refresh every symbol once and shut it down."""
    source = source or QuoteSourceFactory.create_source(config)
    quote_service = QuoteService.from_config(config, source)
    refresh_service = RefreshService(quote_service, stale_after_seconds=config['STALE_POSITION_SECONDS'])

    await quote_service.start()
    try:
        logger.info(f"Provider: {source.get_provider_name()}")
        logger.info(quote_service.get_update_plan(len(symbols)).recommendation)
        return await refresh_service.refresh_all(symbols, force=True)
    finally:
        await quote_service.stop()


def log_summary(result):
    for symbol, quote in result.get('quotes', {}).items():
        if 'error' in quote:
            logger.error(f"  {symbol}: FAILED ({quote.get('kind')}: {quote['error']})")
        else:
            flag = ' (stale)' if quote.get('stale') else ''
            logger.info(f"  {symbol}: ${quote['price']:.2f} ({quote['change_percent']:+.2f}%){flag}")

    logger.info(
        f"Updated {result.get('updated_count', 0)}/{result.get('total_count', 0)} symbols"
        f" in {result.get('duration', 0):.1f}s"
    )


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Refresh portfolio quotes once.')
    parser.add_argument('--force', action='store_true', help='Refresh even outside market hours')
    parser.add_argument('--symbols', help='Comma-separated symbols (defaults to PORTFOLIO_STOCKS)')
    parser.add_argument('--env', default=None, help='Config name (development, production, testing)')
    return parser.parse_args(argv)


def main(argv=None, source=None):
    args = parse_args(argv)
    now = datetime.now(timezone.utc)
    logger.info("=" * 60)
    logger.info("CRON: Portfolio Quote Refresh")
    logger.info(f"Time: {now.strftime('%Y-%m-%d %H:%M:%S')} UTC")
    logger.info(f"Day: {now.strftime('%A')}")
    logger.info("=" * 60)

    status = market_status(now)
    logger.info(f"Market status: {status.upper()}")
    if status != OPEN and not args.force:
        logger.info("Outside market hours - skipping quote refresh")
        return 0

    config_class = get_config(args.env)
    config = {key: getattr(config_class, key) for key in dir(config_class) if key.isupper()}

    if args.symbols:
        symbols = [s.strip().upper() for s in args.symbols.split(',') if s.strip()]
    else:
        symbols = list(config['PORTFOLIO_STOCKS'])

    if not symbols:
        logger.info("No stocks to update.")
        return 0

    logger.info(f"Fetching quotes for {len(symbols)} stocks...")
    result = asyncio.run(refresh_portfolio(config, symbols, source))
    log_summary(result)

    if result.get('updated_count', 0) + result.get('stale_count', 0) == 0:
        logger.error("CRON: Every symbol failed")
        return 1

    logger.info("=" * 60)
    logger.info("CRON: Completed successfully")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())

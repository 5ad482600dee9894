# routes/api.py

import logging
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from functools import wraps

from flask import Blueprint, jsonify, request, current_app

from constants import MAX_BATCH_SYMBOLS, MAX_TICKER_LENGTH, PUBLIC_API_RATE_LIMIT
from extensions import limiter
from models import Priority, Quote
from providers.errors import QuoteFetchError

logger = logging.getLogger(__name__)
api_bp = Blueprint('api', __name__)


def api_error_handler(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        except QuoteFetchError as e:
            return jsonify(e.to_dict()), 502
        except FutureTimeoutError:
            logger.warning(f"Timed out waiting for queued call in {f.__name__}")
            return jsonify({'error': 'Timed out waiting for the quote provider'}), 504
        except Exception as e:
            logger.exception(f"Error in {f.__name__}")
            return jsonify({'error': 'An error occurred'}), 500
    return wrapper


def _run(coro):
    """Run a coroutine on the app's quote loop and wait for the result."""
    return current_app.quote_runner.run(coro, current_app.config['API_WAIT_TIMEOUT_SECONDS'])


def _validate_ticker(ticker):
    ticker = (ticker or '').strip().upper()
    if not ticker or len(ticker) > MAX_TICKER_LENGTH:
        raise ValueError(f'Invalid ticker format: {ticker}')
    return ticker


def _symbols_from(data, default=None):
    symbols = data.get('symbols', default) if data else default
    if isinstance(symbols, str):
        symbols = symbols.split(',')
    if not isinstance(symbols, list) or not symbols:
        raise ValueError('symbols must be a non-empty list')
    if len(symbols) > MAX_BATCH_SYMBOLS:
        raise ValueError(f'Too many symbols: {len(symbols)} (max {MAX_BATCH_SYMBOLS})')
    return [_validate_ticker(s if isinstance(s, str) else '') for s in symbols]


def _now():
    return datetime.now(timezone.utc).isoformat()


# ========================================
# QUOTES
# ========================================

@api_bp.route('/quote/<symbol>')
@limiter.limit(PUBLIC_API_RATE_LIMIT)
@api_error_handler
def get_quote(symbol):
    ticker = _validate_ticker(symbol)
    priority = Priority.parse(request.args.get('priority', Priority.HIGH.value))

    quote = _run(current_app.quote_service.request_quote(ticker, priority))
    return jsonify(quote.to_dict())


@api_bp.route('/quotes', methods=['POST'])
@limiter.limit(PUBLIC_API_RATE_LIMIT)
@api_error_handler
def get_quotes():
    data = request.get_json(silent=True) or {}
    symbols = _symbols_from(data)
    priority = Priority.parse(data.get('priority', Priority.NORMAL.value))

    results = _run(current_app.quote_service.request_batch(symbols, priority))

    quotes = {symbol: outcome.to_dict() for symbol, outcome in results.items()}
    failed = [symbol for symbol, outcome in results.items() if not isinstance(outcome, Quote)]

    return jsonify({
        'quotes': quotes,
        'failed': failed,
        'total_count': len(results),
        'timestamp': _now()
    })


@api_bp.route('/search')
@limiter.limit(PUBLIC_API_RATE_LIMIT)
@api_error_handler
def search():
    query = request.args.get('q', '').strip()
    if not query:
        raise ValueError('Missing search query')

    results = _run(current_app.quote_service.search_symbols(query))
    return jsonify({'query': query, 'results': results})


# ========================================
# STATUS & PLANNING
# ========================================

@api_bp.route('/status')
@api_error_handler
def get_status():
    status = current_app.quote_service.get_status()
    status['auto_refresh'] = current_app.auto_refresh.status()
    status['timestamp'] = _now()
    return jsonify(status)


@api_bp.route('/frequency')
@api_error_handler
def get_frequency():
    raw = request.args.get('portfolio_size')
    if raw is None:
        portfolio_size = len(current_app.config['PORTFOLIO_STOCKS'])
    else:
        try:
            portfolio_size = int(raw)
        except ValueError:
            raise ValueError(f'Invalid portfolio_size: {raw}')
        if portfolio_size < 0:
            raise ValueError('portfolio_size must not be negative')

    plan = current_app.quote_service.get_update_plan(portfolio_size)
    return jsonify({
        'portfolio_size': portfolio_size,
        'frequency_seconds': current_app.quote_service.get_optimal_frequency(portfolio_size),
        'plan': plan.to_dict()
    })


@api_bp.route('/health')
@api_error_handler
def portfolio_health():
    raw = request.args.get('symbols')
    symbols = _symbols_from({'symbols': raw} if raw else None, current_app.config['PORTFOLIO_STOCKS'])
    refresh_service = current_app.refresh_service

    return jsonify({
        **refresh_service.health(symbols),
        'stale_symbols': refresh_service.stale_symbols(symbols),
        'is_updating': refresh_service.is_updating
    })


# ========================================
# REFRESH
# ========================================

@api_bp.route('/refresh', methods=['POST'])
@limiter.limit(PUBLIC_API_RATE_LIMIT)
@api_error_handler
def manual_refresh():
    data = request.get_json(silent=True) or {}
    symbols = _symbols_from(data, current_app.config['PORTFOLIO_STOCKS'])
    force = bool(data.get('force', False))

    result = _run(current_app.refresh_service.refresh_all(symbols, force=force))

    if not result['success'] and result.get('message') == 'Refresh already in progress':
        return jsonify(result), 409

    result['timestamp'] = _now()
    return jsonify(result)


@api_bp.route('/refresh/stale', methods=['POST'])
@limiter.limit(PUBLIC_API_RATE_LIMIT)
@api_error_handler
def refresh_stale():
    data = request.get_json(silent=True) or {}
    symbols = _symbols_from(data, current_app.config['PORTFOLIO_STOCKS'])

    result = _run(current_app.refresh_service.refresh_stale(symbols))
    return jsonify(result)


@api_bp.route('/auto-refresh', methods=['GET'])
@api_error_handler
def auto_refresh_status():
    return jsonify(current_app.auto_refresh.status())


@api_bp.route('/auto-refresh', methods=['POST'])
@api_error_handler
def start_auto_refresh():
    data = request.get_json(silent=True) or {}
    symbols = _symbols_from(data, current_app.config['PORTFOLIO_STOCKS'])

    frequency = data.get('frequency')
    if frequency is not None:
        try:
            frequency = float(frequency)
        except (TypeError, ValueError):
            raise ValueError(f'Invalid frequency: {frequency}')

    result = current_app.auto_refresh.start(
        symbols,
        frequency=frequency,
        allow_oversized=bool(data.get('allow_oversized', False))
    )
    return jsonify(result), (200 if result['enabled'] else 422)


@api_bp.route('/auto-refresh', methods=['DELETE'])
@api_error_handler
def stop_auto_refresh():
    current_app.auto_refresh.stop()
    return jsonify(current_app.auto_refresh.status())


@api_bp.route('/cache/clear', methods=['POST'])
@api_error_handler
def clear_cache():
    current_app.quote_service.clear_cache()
    logger.info("Quote cache cleared via API")
    return jsonify({'success': True, 'message': 'Quote cache cleared'})

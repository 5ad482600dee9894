# config.py
"""
Configuration settings for the Flask application.
Handles provider credentials, rate limiting and environment-specific settings.
"""

import os

from constants import (
    PROVIDER_MAX_CALLS_PER_MINUTE,
    RATE_LIMIT_SAFETY_BUFFER,
    MIN_CALL_DELAY_SECONDS,
    RATE_LIMIT_WAIT_BUFFER_SECONDS,
    MAX_RETRY_ATTEMPTS,
    PROVIDER_CALL_TIMEOUT_SECONDS,
    QUOTE_CACHE_TTL_SECONDS,
    QUOTE_CACHE_MAX_ENTRIES,
    MIN_REFRESH_INTERVAL_SECONDS,
    STALE_POSITION_SECONDS,
    API_WAIT_TIMEOUT_SECONDS,
)


def _env_list(name, default):
    raw = os.environ.get(name)
    if not raw:
        return default
    return [item.strip().upper() for item in raw.split(',') if item.strip()]


class Config:
    """Base configuration"""

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Quote provider selection: auto, finnhub, alphavantage, yfinance
    QUOTE_PROVIDER = os.environ.get('QUOTE_PROVIDER', 'auto')
    FINNHUB_API_KEY = os.environ.get('FINNHUB_API_KEY', '')
    ALPHA_VANTAGE_API_KEY = os.environ.get('ALPHA_VANTAGE_API_KEY', '')

    # Outbound rate limiting
    PROVIDER_MAX_CALLS_PER_MINUTE = int(os.environ.get('PROVIDER_MAX_CALLS_PER_MINUTE', PROVIDER_MAX_CALLS_PER_MINUTE))
    RATE_LIMIT_SAFETY_BUFFER = int(os.environ.get('RATE_LIMIT_SAFETY_BUFFER', RATE_LIMIT_SAFETY_BUFFER))
    MIN_CALL_DELAY_SECONDS = float(os.environ.get('MIN_CALL_DELAY_SECONDS', MIN_CALL_DELAY_SECONDS))
    RATE_LIMIT_WAIT_BUFFER_SECONDS = float(
        os.environ.get('RATE_LIMIT_WAIT_BUFFER_SECONDS', RATE_LIMIT_WAIT_BUFFER_SECONDS)
    )

    # Retries and timeouts
    MAX_RETRY_ATTEMPTS = int(os.environ.get('MAX_RETRY_ATTEMPTS', MAX_RETRY_ATTEMPTS))
    PROVIDER_CALL_TIMEOUT_SECONDS = float(
        os.environ.get('PROVIDER_CALL_TIMEOUT_SECONDS', PROVIDER_CALL_TIMEOUT_SECONDS)
    )

    # Quote cache
    QUOTE_CACHE_TTL_SECONDS = float(os.environ.get('QUOTE_CACHE_TTL_SECONDS', QUOTE_CACHE_TTL_SECONDS))
    QUOTE_CACHE_MAX_ENTRIES = int(os.environ.get('QUOTE_CACHE_MAX_ENTRIES', QUOTE_CACHE_MAX_ENTRIES))

    # Refresh cadence
    MIN_REFRESH_INTERVAL_SECONDS = float(
        os.environ.get('MIN_REFRESH_INTERVAL_SECONDS', MIN_REFRESH_INTERVAL_SECONDS)
    )
    STALE_POSITION_SECONDS = float(os.environ.get('STALE_POSITION_SECONDS', STALE_POSITION_SECONDS))

    # How long an API request waits for its queued call
    API_WAIT_TIMEOUT_SECONDS = float(os.environ.get('API_WAIT_TIMEOUT_SECONDS', API_WAIT_TIMEOUT_SECONDS))

    # Symbols refreshed by cron_refresh.py
    PORTFOLIO_STOCKS = _env_list('PORTFOLIO_STOCKS', ['NVDA', 'MSFT', 'AAPL', 'JPM', 'UNH'])

    # Inbound API rate limiting (Flask-Limiter)
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False


class TestingConfig(Config):
    """Testing configuration"""
    DEBUG = False
    TESTING = True
    QUOTE_PROVIDER = 'yfinance'
    FINNHUB_API_KEY = ''
    ALPHA_VANTAGE_API_KEY = ''
    RATELIMIT_ENABLED = False
    PROVIDER_CALL_TIMEOUT_SECONDS = 2.0


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration by name, falling back to the FLASK_ENV environment variable"""
    env = config_name or os.environ.get('FLASK_ENV', 'development')
    return config.get(env, config['default'])

# constants.py
"""
Application constants and limits.
These are the defaults behind every configurable value in config.py.
Modify these values directly if you need to change limits.
"""

# =============================================================================
# PROVIDER RATE LIMITS
# =============================================================================

# Published ceiling of the quote provider (Finnhub free tier: 60 calls/min)
PROVIDER_MAX_CALLS_PER_MINUTE = 60

# Calls kept in reserve below the published ceiling (clock skew, other clients)
RATE_LIMIT_SAFETY_BUFFER = 5

# Length of the sliding rate-limit window
RATE_LIMIT_WINDOW_SECONDS = 60

# Minimum spacing between two provider calls
MIN_CALL_DELAY_SECONDS = 1.0

# Extra wait added after the window resets before calling again
RATE_LIMIT_WAIT_BUFFER_SECONDS = 1.0

# =============================================================================
# RETRIES & TIMEOUTS
# =============================================================================

# Retries allowed per request after its first attempt
MAX_RETRY_ATTEMPTS = 3

# Deadline for one provider round-trip
PROVIDER_CALL_TIMEOUT_SECONDS = 10

# =============================================================================
# QUOTE CACHE
# =============================================================================

# Freshness window for live prices
QUOTE_CACHE_TTL_SECONDS = 30

# Entries kept before oldest-first eviction
QUOTE_CACHE_MAX_ENTRIES = 500

# =============================================================================
# REFRESH CADENCE
# =============================================================================

# Never refresh the full portfolio more often than this
MIN_REFRESH_INTERVAL_SECONDS = 30

# Positions not refreshed within this window are reported as stale
STALE_POSITION_SECONDS = 300

# Capacity tiers (portfolio size upper bounds)
SMALL_PORTFOLIO_MAX = 10
MEDIUM_PORTFOLIO_MAX = 30

# Maximum results returned by symbol search
MAX_SEARCH_RESULTS = 10

# =============================================================================
# VALIDATION LIMITS
# =============================================================================

# Maximum length for stock ticker symbols
MAX_TICKER_LENGTH = 12

# Maximum symbols accepted by one batch request
MAX_BATCH_SYMBOLS = 200

# =============================================================================
# RATE LIMITING (inbound API)
# =============================================================================

# Public API rate limit (requests per minute)
PUBLIC_API_RATE_LIMIT = "60 per minute"

# Default limit applied to every route
DEFAULT_API_RATE_LIMIT = "200 per hour"

# Longest an HTTP request blocks waiting for its queued quote call
API_WAIT_TIMEOUT_SECONDS = 120

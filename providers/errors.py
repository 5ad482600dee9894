# providers/errors.py
"""
Error taxonomy for quote sources.

Every failure coming out of a quote source is mapped onto an ErrorKind.
Rate limits, timeouts, network errors and 5xx responses are retriable;
everything else is terminal.
"""

import asyncio
from enum import Enum
from typing import Optional

import requests


class ErrorKind(str, Enum):
    RATE_LIMITED = 'rate_limited'
    TIMEOUT = 'timeout'
    NETWORK = 'network'
    SERVER = 'server_error'
    NOT_FOUND = 'not_found'
    INVALID_SYMBOL = 'invalid_symbol'
    UNKNOWN = 'unknown'


RETRIABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.TIMEOUT,
    ErrorKind.NETWORK,
    ErrorKind.SERVER,
})


class QuoteError(Exception):
    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str, symbol: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.symbol = symbol


class RateLimitedError(QuoteError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, symbol: Optional[str] = None, retry_after: Optional[int] = None):
        super().__init__(message, symbol)
        self.retry_after = retry_after


class QuoteTimeoutError(QuoteError):
    kind = ErrorKind.TIMEOUT


class NetworkError(QuoteError):
    kind = ErrorKind.NETWORK


class ServerError(QuoteError):
    kind = ErrorKind.SERVER

    def __init__(self, message: str, symbol: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, symbol)
        self.status_code = status_code


class SymbolNotFoundError(QuoteError):
    kind = ErrorKind.NOT_FOUND


class InvalidSymbolError(QuoteError):
    kind = ErrorKind.INVALID_SYMBOL


class QuoteFetchError(QuoteError):
    """
    Terminal failure handed back to the caller once retries are exhausted
    or the error was not retriable. The original exception is chained as
    __cause__.
    """

    def __init__(self, message: str, symbol: Optional[str] = None,
                 kind: ErrorKind = ErrorKind.UNKNOWN, attempts: int = 1):
        super().__init__(message, symbol)
        self.kind = kind
        self.attempts = attempts

    def to_dict(self):
        return {
            'symbol': self.symbol,
            'error': self.message,
            'kind': self.kind.value,
            'attempts': self.attempts,
        }


def _kind_from_status(status) -> Optional[ErrorKind]:
    try:
        status = int(status)
    except (TypeError, ValueError):
        return None
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status >= 500:
        return ErrorKind.SERVER
    return None


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception raised by a quote call onto the error taxonomy."""
    if isinstance(exc, QuoteError):
        return exc.kind

    # requests.ConnectTimeout is both a Timeout and a ConnectionError
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, requests.Timeout)):
        return ErrorKind.TIMEOUT

    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        kind = _kind_from_status(exc.response.status_code)
        if kind:
            return kind

    if isinstance(exc, (requests.ConnectionError, ConnectionError)):
        return ErrorKind.NETWORK

    for attr in ('status', 'status_code'):
        kind = _kind_from_status(getattr(exc, attr, None))
        if kind:
            return kind

    message = str(exc).lower()
    if 'rate limit' in message or 'too many requests' in message:
        return ErrorKind.RATE_LIMITED
    if 'timeout' in message or 'timed out' in message:
        return ErrorKind.TIMEOUT
    if 'network' in message:
        return ErrorKind.NETWORK

    return ErrorKind.UNKNOWN


def is_retriable(kind: ErrorKind) -> bool:
    return kind in RETRIABLE_KINDS

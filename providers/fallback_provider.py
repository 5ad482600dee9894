"""
Composite quote source that walks an ordered list of providers.
"""

import logging
from typing import Dict, List, Sequence

from models import Quote
from .base_provider import BaseQuoteSource
from .errors import ErrorKind, classify_error, is_retriable

logger = logging.getLogger(__name__)


def _pick_error(errors: List[Exception]) -> Exception:
    """Rate limits first, then any other retriable error, then the last one."""
    kinds = [classify_error(e) for e in errors]
    for error, kind in zip(errors, kinds):
        if kind is ErrorKind.RATE_LIMITED:
            return error
    for error, kind in zip(errors, kinds):
        if is_retriable(kind):
            return error
    return errors[-1]


class FallbackQuoteSource(BaseQuoteSource):
    """
    Try each source in order and return the first quote obtained.

    When every source fails, the error handed to the dispatcher is the most
    actionable one collected along the chain: a throttled source is reported
    as rate limited even if a later source failed with something terminal.
    The other errors stay reachable through __cause__.
    """

    def __init__(self, sources: Sequence[BaseQuoteSource]):
        super().__init__({})
        if not sources:
            raise ValueError("FallbackQuoteSource needs at least one source")
        self.sources: List[BaseQuoteSource] = list(sources)

    def get_provider_name(self) -> str:
        return " -> ".join(source.get_provider_name() for source in self.sources)

    def fetch_quote(self, symbol: str) -> Quote:
        errors = []
        for source in self.sources:
            try:
                return source.fetch_quote(symbol)
            except Exception as e:
                logger.warning(f"{source.get_provider_name()} failed for {symbol}: {e}")
                errors.append(e)

        chosen = _pick_error(errors)
        others = [e for e in errors if e is not chosen]
        if others and chosen.__cause__ is None:
            raise chosen from others[-1]
        raise chosen

    def supports_search(self) -> bool:
        return any(source.supports_search() for source in self.sources)

    def search_symbols(self, query: str) -> List[Dict]:
        for source in self.sources:
            if source.supports_search():
                return source.search_symbols(query)
        return []

"""
Auto-refresh cadence derived from portfolio size and the provider's rate limit.
"""

import math

from constants import (
    RATE_LIMIT_WINDOW_SECONDS,
    MIN_REFRESH_INTERVAL_SECONDS,
    SMALL_PORTFOLIO_MAX,
    MEDIUM_PORTFOLIO_MAX,
)
from models import CapacityTier, UpdatePlan


class UpdateCadencePlanner:
    """Computes how often a whole portfolio can be refreshed without starving the limiter."""

    def __init__(
        self,
        effective_limit: int,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        min_refresh_interval: float = MIN_REFRESH_INTERVAL_SECONDS,
        small_max: int = SMALL_PORTFOLIO_MAX,
        medium_max: int = MEDIUM_PORTFOLIO_MAX,
    ):
        if effective_limit < 1:
            raise ValueError("effective_limit must be >= 1")
        self.effective_limit = effective_limit
        self.window_seconds = float(window_seconds)
        self.min_refresh_interval = float(min_refresh_interval)
        self.small_max = small_max
        self.medium_max = medium_max

    def optimal_frequency(self, portfolio_size: int) -> float:
        """Seconds between two full-portfolio refreshes."""
        if portfolio_size <= 0:
            return self.min_refresh_interval

        updates_per_window = self.effective_limit // portfolio_size
        if updates_per_window >= 1:
            frequency = self.window_seconds / updates_per_window
            return max(frequency, self.min_refresh_interval)

        # Cycling through every position once takes several windows
        windows_needed = math.ceil(portfolio_size / self.effective_limit)
        return windows_needed * self.window_seconds

    def capacity(self, portfolio_size: int) -> CapacityTier:
        if portfolio_size <= self.small_max:
            return CapacityTier.SMALL
        if portfolio_size <= self.medium_max:
            return CapacityTier.MEDIUM
        if portfolio_size <= self.effective_limit:
            return CapacityTier.LARGE
        return CapacityTier.TOO_LARGE

    def can_auto_update(self, portfolio_size: int) -> bool:
        return portfolio_size <= self.effective_limit

    def recommendation(self, portfolio_size: int) -> str:
        minutes = math.ceil(self.optimal_frequency(portfolio_size) / 60)
        tier = self.capacity(portfolio_size)

        if tier is CapacityTier.SMALL:
            return f"Small portfolio - can update every {minutes} minute(s)"
        if tier is CapacityTier.MEDIUM:
            return f"Medium portfolio - updates every {minutes} minute(s)"
        if tier is CapacityTier.LARGE:
            return f"Large portfolio - updates every {minutes} minute(s)"
        return "Portfolio too large for real-time updates - consider reducing positions"

    def plan(self, portfolio_size: int, rate_limit: dict = None) -> UpdatePlan:
        return UpdatePlan(
            portfolio_size=portfolio_size,
            frequency_seconds=self.optimal_frequency(portfolio_size),
            can_auto_update=self.can_auto_update(portfolio_size),
            max_positions=self.effective_limit,
            capacity=self.capacity(portfolio_size),
            recommendation=self.recommendation(portfolio_size),
            rate_limit=rate_limit,
        )

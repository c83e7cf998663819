"""Re-query cadence for the discovery engine."""
from __future__ import annotations


class QuerySchedule:
    """Geometric backoff between queries, capped at ``maximum`` seconds.

    Args:
        initial: First delay in seconds; also the minimum delay.
        maximum: Largest delay ever returned.
        factor: Growth factor applied after each delay.
    """

    def __init__(self, initial: float = 1.0, maximum: float = 60.0, factor: float = 2.0) -> None:
        if initial <= 0:
            raise ValueError("initial interval must be positive")
        if maximum < initial:
            raise ValueError("maximum interval must not be below the initial interval")
        if factor < 1:
            raise ValueError("backoff factor must be at least 1")
        self.initial = initial
        self.maximum = maximum
        self.factor = factor
        self._current = initial

    def next_delay(self) -> float:
        """Return the delay before the next query and advance the schedule."""
        delay = self._current
        self._current = min(self._current * self.factor, self.maximum)
        return delay

    def reset(self) -> None:
        self._current = self.initial

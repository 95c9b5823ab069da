"""
Finite-difference angular speed and boundary ETA.

The body's longitude is sampled again `sample_interval` after the instant;
the wrap-safe difference over the interval is the speed in degrees/hour.
A zero, negative or non-finite speed is reported as RateUnavailable, which
`eta_for` turns into the "unknown" ETA (None).
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Optional

from kala.angles import circular_difference
from kala.divisions import DivisionResult
from kala.errors import ConfigurationError, ProviderError, RateUnavailable

LOG = logging.getLogger(__name__)

# instant -> longitude (degrees)
Sampler = Callable[[datetime], float]

DEFAULT_SAMPLE_INTERVAL = timedelta(hours=1)


def estimate_speed(first: float, second: float, interval_hours: float) -> float:
    """Degrees/hour between two samples `interval_hours` apart."""
    if not (math.isfinite(first) and math.isfinite(second)):
        raise RateUnavailable(f"non-finite sample ({first!r}, {second!r})")
    speed = circular_difference(second, first) / interval_hours
    if not math.isfinite(speed) or speed <= 0.0:
        raise RateUnavailable(f"unusable speed {speed!r} deg/h")
    return speed


def minutes_for(degrees_remaining: float, speed: float) -> float:
    """Minutes to cover `degrees_remaining` at `speed` degrees/hour."""
    return degrees_remaining / speed * 60.0


class RateEstimator:
    def __init__(self, sample_interval: timedelta = DEFAULT_SAMPLE_INTERVAL):
        if sample_interval.total_seconds() <= 0:
            raise ConfigurationError(f"sample interval must be positive, got {sample_interval}")
        self.sample_interval = sample_interval

    @property
    def interval_hours(self) -> float:
        return self.sample_interval.total_seconds() / 3600.0

    def speed(self, sampler: Sampler, instant: datetime, current: Optional[float] = None) -> float:
        """
        Angular speed of the sampled quantity at `instant`, degrees/hour.

        `current` may be passed to reuse a longitude the caller already has.
        Provider failures or unusable values on the second sample are reported
        as RateUnavailable.
        """
        if current is None:
            current = sampler(instant)
        try:
            later = sampler(instant + self.sample_interval)
        except (ProviderError, ValueError) as exc:
            raise RateUnavailable(f"second sample failed: {exc}") from exc
        return estimate_speed(current, later, self.interval_hours)

    def eta_for(
        self,
        position: DivisionResult,
        sampler: Sampler,
        instant: datetime,
        current: Optional[float] = None,
        label: str = "division",
    ) -> DivisionResult:
        """Return `position` with `minutes_to_next` filled in, or None if unknown."""
        try:
            speed = self.speed(sampler, instant, current)
        except RateUnavailable as exc:
            LOG.warning(
                "ETA unavailable for %s at %s: %s",
                label,
                instant.isoformat(),
                exc,
                extra={"err_code": "RATE_UNAVAILABLE"},
            )
            return position.with_eta(None)
        return position.with_eta(minutes_for(position.remaining, speed))

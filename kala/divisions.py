"""
Generic division mapping.

Every calendar unit in the engine is the same shape: a quantity that cycles
(an ecliptic angle, or seconds into a day), split into `count` equal divisions
of `width`, each with a progress fraction and an optional quarter split
(pada). A `DivisionScheme` carries the shape, tagged with the kind of
quantity so the ETA logic knows whether it needs a rate estimate.
"""

import enum
import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np

from kala.angles import FULL_CIRCLE, division_index_and_remainder, normalize
from kala.errors import ConfigurationError

_LAST_PERCENT_BELOW_100 = math.nextafter(100.0, 0.0)


class QuantityKind(enum.Enum):
    # Ecliptic angle in degrees; wraps at 360, advances at a varying rate.
    ANGULAR = "angular"
    # Elapsed seconds; wraps at the scheme cycle, advances at exactly 1 s/s.
    LINEAR = "linear"


@dataclass(frozen=True)
class DivisionScheme:
    name: str
    count: int
    width: float
    kind: QuantityKind = QuantityKind.ANGULAR
    sub_quarters: int = 4

    def __post_init__(self) -> None:
        if self.count <= 0:
            raise ConfigurationError(f"{self.name}: division count must be positive, got {self.count}")
        if not math.isfinite(self.width) or self.width <= 0:
            raise ConfigurationError(f"{self.name}: division width must be positive, got {self.width}")
        if self.sub_quarters <= 0:
            raise ConfigurationError(f"{self.name}: sub-quarter count must be positive, got {self.sub_quarters}")

    @classmethod
    def angular(cls, name: str, count: int, sub_quarters: int = 4) -> "DivisionScheme":
        """Equal division of the full 360° circle."""
        if count <= 0:
            raise ConfigurationError(f"{name}: division count must be positive, got {count}")
        return cls(name, count, FULL_CIRCLE / count, QuantityKind.ANGULAR, sub_quarters)

    @classmethod
    def linear(cls, name: str, count: int, cycle: float, sub_quarters: int = 4) -> "DivisionScheme":
        """Equal division of a time cycle measured in seconds."""
        if count <= 0:
            raise ConfigurationError(f"{name}: division count must be positive, got {count}")
        return cls(name, count, cycle / count, QuantityKind.LINEAR, sub_quarters)

    @property
    def cycle(self) -> float:
        return self.width * self.count

    def wrap(self, value: float) -> float:
        if self.kind is QuantityKind.ANGULAR:
            return normalize(value)
        if not math.isfinite(value):
            raise ValueError(f"{self.name}: cannot map non-finite value {value!r}")
        wrapped = value % self.cycle
        return 0.0 if wrapped >= self.cycle else wrapped


@dataclass(frozen=True)
class DivisionResult:
    """
    Position of a quantity inside one division.

    index        : 1..count
    progress     : percent through the division, [0, 100)
    sub_quarter  : 1..sub_quarters (pada for nakshatras)
    remainder    : amount already covered inside the division (scheme units)
    minutes_to_next : ETA to the next boundary, None when unknown
    """

    index: int
    progress: float
    sub_quarter: int
    remainder: float
    remaining: float
    minutes_to_next: Optional[float] = None

    @property
    def eta_known(self) -> bool:
        return self.minutes_to_next is not None

    def with_eta(self, minutes: Optional[float]) -> "DivisionResult":
        return replace(self, minutes_to_next=minutes)


def map_division(value: float, scheme: DivisionScheme) -> DivisionResult:
    """
    Map a raw quantity to its division. Never assumes upstream wrapping.

    For LINEAR schemes the ETA is filled in directly (rate is exactly 1);
    ANGULAR results come back with `minutes_to_next=None` for the caller to
    complete through a RateEstimator.
    """
    wrapped = scheme.wrap(value)
    index, remainder = division_index_and_remainder(wrapped, scheme.width, scheme.count)

    progress = remainder / scheme.width * 100.0
    if progress >= 100.0:
        progress = _LAST_PERCENT_BELOW_100

    quarter_width = scheme.width / scheme.sub_quarters
    sub_quarter = min(int(remainder // quarter_width) + 1, scheme.sub_quarters)

    remaining = scheme.width - remainder
    minutes = remaining / 60.0 if scheme.kind is QuantityKind.LINEAR else None

    return DivisionResult(
        index=index + 1,
        progress=progress,
        sub_quarter=sub_quarter,
        remainder=remainder,
        remaining=remaining,
        minutes_to_next=minutes,
    )


def map_divisions_batch(values: np.ndarray, scheme: DivisionScheme) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Vectorized mapping of many values to (indices_1_based, progress, sub_quarters).

    Agrees with `map_division` element by element.
    """
    arr = np.asarray(values, dtype=np.float64)
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{scheme.name}: cannot map non-finite values")

    cycle = FULL_CIRCLE if scheme.kind is QuantityKind.ANGULAR else scheme.cycle
    wrapped = np.mod(arr, cycle)
    wrapped = np.where(wrapped >= cycle, 0.0, wrapped)

    # Same floor-then-clamp rule as division_index_and_remainder
    quotients = np.floor(wrapped / scheme.width)
    remainders = wrapped - quotients * scheme.width
    remainders = np.where(remainders < 0.0, 0.0, remainders)
    overflow = remainders >= scheme.width
    quotients = np.where(overflow, quotients + 1, quotients)
    remainders = np.where(overflow, remainders - scheme.width, remainders)
    indices = quotients.astype(int) % scheme.count + 1

    progress = np.minimum(remainders / scheme.width * 100.0, _LAST_PERCENT_BELOW_100)

    quarter_width = scheme.width / scheme.sub_quarters
    quarters = np.minimum(np.floor(remainders / quarter_width).astype(int) + 1, scheme.sub_quarters)

    return indices, progress, quarters

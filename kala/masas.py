"""
Masa (lunar month) approximated from the Sun's sign: each 30° of solar
longitude is one month, Sun in Mesha (0-30°) giving Chaitra.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from kala.angles import checked_longitude
from kala.divisions import DivisionResult, DivisionScheme, map_division
from kala.rates import RateEstimator

MASA_NAMES: Tuple[str, ...] = (
    "Chaitra", "Vaishakha", "Jyeshtha", "Ashadha", "Shravana", "Bhadrapada",
    "Ashwin", "Kartik", "Margashirsha", "Pausha", "Magha", "Phalguna",
)

MASA_SCHEME = DivisionScheme.angular("masa", len(MASA_NAMES))


@dataclass(frozen=True)
class MasaResult:
    division: DivisionResult
    name: str
    sun_longitude: float

    @property
    def index(self) -> int:
        return self.division.index

    @property
    def minutes_to_next(self) -> Optional[float]:
        return self.division.minutes_to_next


def masa_name(number: int) -> str:
    if not 1 <= number <= len(MASA_NAMES):
        raise ValueError(f"Masa number must be 1..{len(MASA_NAMES)}, got {number}")
    return MASA_NAMES[number - 1]


def masa_index(sun_longitude: float) -> int:
    return map_division(sun_longitude, MASA_SCHEME).index


def calculate_masa(
    provider,
    instant: datetime,
    latitude: float = 0.0,
    longitude: float = 0.0,
    rate_estimator: Optional[RateEstimator] = None,
) -> MasaResult:
    estimator = rate_estimator or RateEstimator()

    def sampler(t: datetime) -> float:
        return checked_longitude(provider.sun_longitude(t, latitude, longitude), "Sun")

    sun = sampler(instant)
    position = map_division(sun, MASA_SCHEME)
    position = estimator.eta_for(position, sampler, instant, current=sun, label="masa")
    return MasaResult(division=position, name=masa_name(position.index), sun_longitude=sun)

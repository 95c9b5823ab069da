"""
Tithi (lunar day): 30 divisions of 12° of Sun-Moon elongation.

Indices 1..15 fall in Shukla paksha (waxing), 16..30 in Krishna (waning).
The fifteen names repeat in both halves, so the name lookup uses
`(index - 1) % 15` while paksha uses the full 1..30 index.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from kala.angles import checked_longitude, normalize
from kala.divisions import DivisionResult, DivisionScheme, map_division
from kala.rates import RateEstimator

SHUKLA = "Shukla"
KRISHNA = "Krishna"

TITHI_NAMES: Tuple[str, ...] = (
    "Pratipad", "Dwitiya", "Tritiya", "Chaturthi", "Panchami",
    "Shashthi", "Saptami", "Ashtami", "Navami", "Dashami",
    "Ekadashi", "Dwadashi", "Trayodashi", "Chaturdashi", "Purnima/Amavasya",
)

TITHI_SCHEME = DivisionScheme.angular("tithi", 30)
TITHIS_PER_PAKSHA = TITHI_SCHEME.count // 2


@dataclass(frozen=True)
class TithiResult:
    division: DivisionResult
    name: str
    paksha: str
    elongation: float

    @property
    def index(self) -> int:
        return self.division.index

    @property
    def progress(self) -> float:
        return self.division.progress

    @property
    def minutes_to_next(self) -> Optional[float]:
        return self.division.minutes_to_next


def elongation(moon_longitude: float, sun_longitude: float) -> float:
    """Moon minus Sun, wrapped into [0, 360). 0 = new moon, 180 = full moon."""
    return normalize(moon_longitude - sun_longitude)


def tithi_name(number: int) -> str:
    if not 1 <= number <= TITHI_SCHEME.count:
        raise ValueError(f"Tithi number must be 1..{TITHI_SCHEME.count}, got {number}")
    return TITHI_NAMES[(number - 1) % TITHIS_PER_PAKSHA]


def paksha_for(number: int) -> str:
    if not 1 <= number <= TITHI_SCHEME.count:
        raise ValueError(f"Tithi number must be 1..{TITHI_SCHEME.count}, got {number}")
    return SHUKLA if number <= TITHIS_PER_PAKSHA else KRISHNA


def tithi_position(elongation_deg: float) -> DivisionResult:
    return map_division(elongation_deg, TITHI_SCHEME)


def is_purnima(number: int) -> bool:
    return number == TITHIS_PER_PAKSHA


def is_amavasya(number: int) -> bool:
    return number == TITHI_SCHEME.count


def is_ekadashi(number: int) -> bool:
    return number in (11, TITHIS_PER_PAKSHA + 11)


def calculate_tithi(
    provider,
    instant: datetime,
    latitude: float = 0.0,
    longitude: float = 0.0,
    rate_estimator: Optional[RateEstimator] = None,
) -> TithiResult:
    """
    Tithi at `instant`. The ETA comes from the rate of the elongation itself
    (Moon speed minus Sun speed), sampled one interval later.
    """
    estimator = rate_estimator or RateEstimator()

    def sampler(t: datetime) -> float:
        return elongation(
            checked_longitude(provider.moon_longitude(t, latitude, longitude), "Moon"),
            checked_longitude(provider.sun_longitude(t, latitude, longitude), "Sun"),
        )

    current = sampler(instant)
    position = tithi_position(current)
    position = estimator.eta_for(position, sampler, instant, current=current, label="tithi")

    return TithiResult(
        division=position,
        name=tithi_name(position.index),
        paksha=paksha_for(position.index),
        elongation=current,
    )

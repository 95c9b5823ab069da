from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

import numpy as np

from kala.angles import checked_longitude
from kala.divisions import DivisionResult, DivisionScheme, map_division, map_divisions_batch
from kala.rates import RateEstimator

# Constants
NAKSHATRA_NAMES: Tuple[str, ...] = (
    "Ashwini", "Bharani", "Krittika", "Rohini", "Mrigashira", "Ardra",
    "Punarvasu", "Pushya", "Ashlesha", "Magha", "Purva Phalguni", "Uttara Phalguni",
    "Hasta", "Chitra", "Swati", "Vishakha", "Anuradha", "Jyeshtha",
    "Mula", "Purva Ashadha", "Uttara Ashadha", "Shravana", "Dhanishta", "Shatabhisha",
    "Purva Bhadrapada", "Uttara Bhadrapada", "Revati",
)

RASHI_NAMES: Tuple[str, ...] = (
    "Mesha", "Vrishabha", "Mithuna", "Karka", "Simha", "Kanya",
    "Tula", "Vrishchika", "Dhanu", "Makara", "Kumbha", "Meena",
)

# Each Nakshatra is 13 degrees 20 minutes = 13.3333... degrees
NAKSHATRA_SCHEME = DivisionScheme.angular("nakshatra", len(NAKSHATRA_NAMES), sub_quarters=4)
NAKSHATRA_EXTENT = NAKSHATRA_SCHEME.width

# Zodiac signs: same ecliptic, different division
RASHI_SCHEME = DivisionScheme.angular("rashi", len(RASHI_NAMES))


@dataclass(frozen=True)
class NakshatraDetail:
    number: int
    name: str
    deity: str
    symbol: str


NAKSHATRA_DETAILS: Tuple[NakshatraDetail, ...] = tuple(
    NakshatraDetail(i + 1, NAKSHATRA_NAMES[i], deity, symbol)
    for i, (deity, symbol) in enumerate([
        ("Ashwini Kumaras", "Horse Head"),
        ("Yama", "Yoni"),
        ("Agni", "Razor"),
        ("Brahma", "Cart"),
        ("Soma", "Deer Head"),
        ("Rudra", "Teardrop"),
        ("Aditi", "Bow and Quiver"),
        ("Brihaspati", "Flower"),
        ("Nagas", "Serpent"),
        ("Pitris", "Throne"),
        ("Bhaga", "Hammock"),
        ("Aryaman", "Bed"),
        ("Savitar", "Hand"),
        ("Vishwakarma", "Pearl"),
        ("Vayu", "Coral"),
        ("Indra-Agni", "Archway"),
        ("Mitra", "Lotus"),
        ("Indra", "Earring"),
        ("Nirriti", "Root"),
        ("Apas", "Elephant Tusk"),
        ("Vishvadevas", "Elephant Tusk"),
        ("Vishnu", "Ear"),
        ("Vasus", "Drum"),
        ("Varuna", "Empty Circle"),
        ("Aja Ekapada", "Sword"),
        ("Ahir Budhnya", "Twins"),
        ("Pushan", "Fish"),
    ])
)


@dataclass(frozen=True)
class NakshatraResult:
    division: DivisionResult
    name: str
    moon_longitude: float

    @property
    def index(self) -> int:
        return self.division.index

    @property
    def pada(self) -> int:
        return self.division.sub_quarter

    @property
    def progress(self) -> float:
        return self.division.progress

    @property
    def minutes_to_next(self) -> Optional[float]:
        return self.division.minutes_to_next


def nakshatra_name(number: int) -> str:
    """Name for a 1-based nakshatra number."""
    if not 1 <= number <= len(NAKSHATRA_NAMES):
        raise ValueError(f"Nakshatra number must be 1..{len(NAKSHATRA_NAMES)}, got {number}")
    return NAKSHATRA_NAMES[number - 1]


def rashi_name(number: int) -> str:
    if not 1 <= number <= len(RASHI_NAMES):
        raise ValueError(f"Rashi number must be 1..{len(RASHI_NAMES)}, got {number}")
    return RASHI_NAMES[number - 1]


def nakshatra_position(moon_longitude: float, sub_quarters: int = 4) -> DivisionResult:
    """
    Index (1..27), progress and pada of a Moon longitude, without an ETA.

    Longitude 0 -> Ashwini pada 1; 360/27 -> Bharani, progress 0.
    """
    scheme = NAKSHATRA_SCHEME
    if sub_quarters != scheme.sub_quarters:
        scheme = DivisionScheme.angular(scheme.name, scheme.count, sub_quarters=sub_quarters)
    return map_division(moon_longitude, scheme)


def moon_rashi(longitude: float) -> int:
    """Zodiac sign 1..12 (30° each) of an ecliptic longitude."""
    return map_division(longitude, RASHI_SCHEME).index


def calculate_nakshatra(
    provider,
    instant: datetime,
    latitude: float = 0.0,
    longitude: float = 0.0,
    rate_estimator: Optional[RateEstimator] = None,
    sub_quarters: int = 4,
) -> NakshatraResult:
    """
    Nakshatra of the Moon at `instant`, with the minutes until the Moon
    enters the next one (None if the Moon's speed could not be estimated).

    Provider failures on the first sample propagate as ProviderError.
    """
    estimator = rate_estimator or RateEstimator()

    def sampler(t: datetime) -> float:
        return checked_longitude(provider.moon_longitude(t, latitude, longitude), "Moon")

    moon = sampler(instant)
    position = nakshatra_position(moon, sub_quarters)
    position = estimator.eta_for(position, sampler, instant, current=moon, label="nakshatra")

    return NakshatraResult(
        division=position,
        name=nakshatra_name(position.index),
        moon_longitude=moon,
    )


def get_nakshatra_batch(longitudes: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Vectorized mapping of longitudes to Nakshatra numbers (1..27) and Padas.

    Args:
        longitudes: NumPy array of longitudes.

    Returns:
        (numbers, padas) as integer arrays.
    """
    numbers, _, padas = map_divisions_batch(longitudes, NAKSHATRA_SCHEME)
    return numbers, padas

"""
Muhurta and prana: divisions of elapsed time since the start of the day.

Unlike the ecliptic units these advance at a fixed rate, so progress and time
remaining come straight from the clock. The day is 86400 s long and counted
from an anchor (sunrise, or local midnight when sunrise is unavailable):

    30 muhurtas    of 48 min
    21600 pranas   of 4 s
    720 pranas per muhurta

Each prana carries a two-phase breath state (inhale, then exhale). How many
pranas make one full breath is a parameter; the default of 1 makes every
prana one complete breath, so the phase restarts at each prana boundary.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from kala.divisions import DivisionResult, DivisionScheme, map_division

LOG = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0

MUHURTA_SCHEME = DivisionScheme.linear("muhurta", 30, SECONDS_PER_DAY)
PRANA_SCHEME = DivisionScheme.linear("prana", 21600, SECONDS_PER_DAY)

SECONDS_PER_PRANA = PRANA_SCHEME.width
MINUTES_PER_MUHURTA = MUHURTA_SCHEME.width / 60.0
PRANAS_PER_MUHURTA = PRANA_SCHEME.count // MUHURTA_SCHEME.count

INHALE = "inhale"
EXHALE = "exhale"
BREATH_PHASES = (INHALE, EXHALE)

DAY_START_SUNRISE = "sunrise"
DAY_START_MIDNIGHT = "midnight"

# (English, Devanagari)
MUHURTA_NAMES: Tuple[Tuple[str, str], ...] = (
    ("Rudra", "रुद्र"),
    ("Ahi", "आहि"),
    ("Mitra", "मित्र"),
    ("Pitri", "पितृ"),
    ("Vasu", "वसु"),
    ("Vara", "वर"),
    ("Vishve", "विश्वे"),
    ("Vidhi", "विधि"),
    ("Satamukhi", "सतमुखी"),
    ("Puruhuta", "पुरुहूत"),
    ("Vahini", "वाहिनी"),
    ("Naktanara", "नक्तनार"),
    ("Varuna", "वरुण"),
    ("Aryama", "अर्यमा"),
    ("Bhaga", "भग"),
    ("Girisha", "गिरीश"),
    ("Ajapada", "अजपाद"),
    ("Ahirbudhnya", "अहिर्बुध्न्य"),
    ("Pushan", "पूषन्"),
    ("Ashvini", "अश्विनी"),
    ("Yama", "यम"),
    ("Agni", "अग्नि"),
    ("Vidhatri", "विधातृ"),
    ("Kanda", "कण्ड"),
    ("Aditi", "अदिति"),
    ("Jiva", "जीव"),  # also called Amrita
    ("Vishnu", "विष्णु"),
    ("Dyumadgadyuti", "द्युमद्गद्युति"),
    ("Brahma", "ब्रह्मा"),
    ("Samudram", "समुद्रम्"),
)


@dataclass(frozen=True)
class MuhurtaResult:
    division: DivisionResult
    name: str
    name_sanskrit: str

    @property
    def index(self) -> int:
        return self.division.index

    @property
    def progress(self) -> float:
        return self.division.progress

    @property
    def minutes_to_next(self) -> Optional[float]:
        return self.division.minutes_to_next


@dataclass(frozen=True)
class PranaResult:
    division: DivisionResult
    number: int                    # 0..21599
    angle: float                   # dial angle, 0..360
    seconds_since_day_start: float
    day_start: datetime
    breath_phase: str              # "inhale" | "exhale"
    breath_phase_progress: float   # 0..100 within the current phase

    @property
    def index(self) -> int:
        return self.division.index

    @property
    def progress(self) -> float:
        return self.division.progress

    @property
    def minutes_to_next(self) -> Optional[float]:
        return self.division.minutes_to_next


def muhurta_name(number: int) -> Tuple[str, str]:
    if not 1 <= number <= MUHURTA_SCHEME.count:
        raise ValueError(f"Muhurta number must be 1..{MUHURTA_SCHEME.count}, got {number}")
    return MUHURTA_NAMES[number - 1]


def seconds_since(day_start: datetime, instant: datetime) -> float:
    """
    Seconds from the day anchor to `instant`.

    A civil-midnight anchor counts wall-clock time, so a 23 h or 25 h day
    across a DST change still maps into 0..86400 (the repeated hour maps to
    the same muhurtas twice). Other anchors count elapsed seconds.
    """
    if instant.tzinfo is not None:
        midnight = local_midnight(instant)
        if day_start == midnight:
            return (instant.replace(tzinfo=None) - midnight.replace(tzinfo=None)).total_seconds()
    return (instant - day_start).total_seconds()


def calculate_muhurta(instant: datetime, day_start: datetime) -> MuhurtaResult:
    position = map_division(seconds_since(day_start, instant), MUHURTA_SCHEME)
    name, sanskrit = muhurta_name(position.index)
    return MuhurtaResult(division=position, name=name, name_sanskrit=sanskrit)


def breath_scheme(breath_cycle_pranas: float = 1.0) -> DivisionScheme:
    """Two equal phases spanning `breath_cycle_pranas` pranas."""
    return DivisionScheme.linear("breath", len(BREATH_PHASES), breath_cycle_pranas * SECONDS_PER_PRANA)


def breath_phase(seconds: float, breath_cycle_pranas: float = 1.0) -> Tuple[str, float]:
    """(phase, percent through that phase) at `seconds` since the day start."""
    position = map_division(seconds, breath_scheme(breath_cycle_pranas))
    return BREATH_PHASES[position.index - 1], position.progress


def calculate_prana(instant: datetime, day_start: datetime, breath_cycle_pranas: float = 1.0) -> PranaResult:
    elapsed = seconds_since(day_start, instant)
    position = map_division(elapsed, PRANA_SCHEME)
    number = position.index - 1
    phase, phase_progress = breath_phase(elapsed, breath_cycle_pranas)

    return PranaResult(
        division=position,
        number=number,
        angle=number / PRANA_SCHEME.count * 360.0,
        seconds_since_day_start=elapsed,
        day_start=day_start,
        breath_phase=phase,
        breath_phase_progress=phase_progress,
    )


def pranas_to_next_muhurta(prana_number: int) -> int:
    return PRANAS_PER_MUHURTA - prana_number % PRANAS_PER_MUHURTA


def prana_to_time_string(prana_number: int) -> str:
    """HH:MM:SS elapsed since the day start at the beginning of a prana."""
    total_seconds = int(prana_number * SECONDS_PER_PRANA)
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def local_midnight(local_instant: datetime) -> datetime:
    """Civil midnight of the day `local_instant` falls on, in its own zone."""
    naive = local_instant.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    tz = local_instant.tzinfo
    if tz is None:
        return naive
    if hasattr(tz, "localize"):
        # pytz zones need localize() to pick the right offset
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def resolve_day_start(
    provider,
    local_instant: datetime,
    latitude: float = 0.0,
    longitude: float = 0.0,
    mode: str = DAY_START_SUNRISE,
) -> datetime:
    """
    Anchor for muhurta/prana counting.

    In sunrise mode the provider's `sunrise_before` is used when it has one;
    providers without it, and days with no sunrise, fall back to midnight.
    """
    if mode == DAY_START_SUNRISE:
        finder = getattr(provider, "sunrise_before", None)
        if finder is not None:
            sunrise = finder(local_instant, latitude, longitude)
            if sunrise is not None:
                return sunrise
            LOG.debug("No sunrise before %s at (%.4f, %.4f); using midnight", local_instant, latitude, longitude)
        else:
            LOG.debug("%s has no sunrise search; using midnight", type(provider).__name__)
    elif mode != DAY_START_MIDNIGHT:
        raise ValueError(f"Unknown day start mode {mode!r}")
    return local_midnight(local_instant)

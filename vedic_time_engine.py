"""
Vedic time engine – one consistent snapshot per instant.

Calls each calculator (tithi, nakshatra, masa, muhurta, prana) once for an
instant and location and assembles a frozen VedicTime. The units are
independent: a provider failure marks only the units that needed the failing
position as unavailable, and an unknown rate only blanks an ETA.

Batch entry points fan instants out over a thread pool; every instant is
independent, and a failure or timeout on one never aborts the others.
"""

import logging
import math
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import pytz

from kala.angles import checked_longitude
from kala.day_divisions import (
    DAY_START_MIDNIGHT,
    DAY_START_SUNRISE,
    MuhurtaResult,
    PranaResult,
    calculate_muhurta,
    calculate_prana,
    local_midnight,
    resolve_day_start,
)
from kala.errors import ConfigurationError, ProviderError
from kala.masas import MasaResult, calculate_masa
from kala.nakshatras import NakshatraResult, calculate_nakshatra, moon_rashi
from kala.rates import RateEstimator
from kala.tithis import TithiResult, calculate_tithi, elongation
from kala_ephemeris import (
    PositionProvider,
    TimeLocation,
    get_default_provider,
    local_datetime,
    resolve_instant,
)

LOG = logging.getLogger(__name__)

T = TypeVar("T")

# How often a queued batch instant is checked for having started
_QUEUE_POLL_SECONDS = 0.05


# ---------------------------------------------------------------------------
# 1. Config
# ---------------------------------------------------------------------------


@dataclass
class VedicTimeConfig:
    rate_sample_hours: float = 1.0
    day_start: str = DAY_START_SUNRISE
    breath_cycle_pranas: float = 1.0
    sub_quarters: int = 4
    provider_timeout: Optional[float] = None   # seconds per instant, batch only
    max_workers: int = 4

    def __post_init__(self) -> None:
        if not (math.isfinite(self.rate_sample_hours) and self.rate_sample_hours > 0):
            raise ConfigurationError(f"rate_sample_hours must be positive, got {self.rate_sample_hours}")
        if self.day_start not in (DAY_START_SUNRISE, DAY_START_MIDNIGHT):
            raise ConfigurationError(f"day_start must be 'sunrise' or 'midnight', got {self.day_start!r}")
        if not (math.isfinite(self.breath_cycle_pranas) and self.breath_cycle_pranas > 0):
            raise ConfigurationError(f"breath_cycle_pranas must be positive, got {self.breath_cycle_pranas}")
        if self.sub_quarters <= 0:
            raise ConfigurationError(f"sub_quarters must be positive, got {self.sub_quarters}")
        if self.provider_timeout is not None and self.provider_timeout <= 0:
            raise ConfigurationError(f"provider_timeout must be positive, got {self.provider_timeout}")
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {self.max_workers}")

    def rate_estimator(self) -> RateEstimator:
        return RateEstimator(timedelta(hours=self.rate_sample_hours))


# ---------------------------------------------------------------------------
# 2. Result classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UnitFailure:
    unit: str
    reason: str


@dataclass(frozen=True)
class VedicTime:
    calculated_for: datetime          # UTC

    tithi: Optional[TithiResult]
    nakshatra: Optional[NakshatraResult]
    masa: Optional[MasaResult]
    muhurta: Optional[MuhurtaResult]
    prana: Optional[PranaResult]

    paksha: Optional[str]             # 'Shukla' or 'Krishna'

    sun_longitude: Optional[float]
    moon_longitude: Optional[float]
    elongation: Optional[float]
    moon_phase: Optional[float]       # 0 new, 0.5 full
    moon_illumination: Optional[float]
    moon_rashi: Optional[int]         # 1..12

    failures: Tuple[UnitFailure, ...] = field(default_factory=tuple)

    @property
    def masa_index(self) -> Optional[int]:
        return self.masa.index if self.masa else None

    @property
    def masa_name(self) -> Optional[str]:
        return self.masa.name if self.masa else None

    @property
    def unavailable_units(self) -> Tuple[str, ...]:
        return tuple(f.unit for f in self.failures)

    @property
    def is_complete(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class BatchEntry:
    time_location: TimeLocation
    vedic_time: Optional[VedicTime]
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# 3. Helpers
# ---------------------------------------------------------------------------


def _attempt(
    unit: str,
    instant: datetime,
    failures: List[UnitFailure],
    fn: Callable[..., T],
    *args,
    **kwargs,
) -> Optional[T]:
    """Run one unit's calculation; a ProviderError marks only that unit unavailable."""
    try:
        return fn(*args, **kwargs)
    except ProviderError as exc:
        LOG.warning(
            "%s unavailable at %s: %s",
            unit,
            instant.isoformat(),
            exc,
            extra={"err_code": "UNIT_UNAVAILABLE"},
        )
        failures.append(UnitFailure(unit, str(exc)))
        return None


def _day_start(provider, local_instant: datetime, lat: float, lon: float, config: VedicTimeConfig) -> datetime:
    try:
        return resolve_day_start(provider, local_instant, lat, lon, config.day_start)
    except ProviderError as exc:
        # Midnight is always computable; muhurta/prana stay available
        LOG.warning(
            "Sunrise search failed at %s, counting from midnight: %s",
            local_instant.isoformat(),
            exc,
            extra={"err_code": "DAY_START_FALLBACK"},
        )
        return local_midnight(local_instant)


def _read_longitude(read: Callable[..., float], body: str, instant: datetime, lat: float, lon: float) -> float:
    return checked_longitude(read(instant, lat, lon), body)


def moon_illumination(elongation_deg: float) -> float:
    """Illuminated fraction of the Moon's disk, 0 at new moon, 1 at full."""
    return (1.0 - math.cos(math.radians(elongation_deg))) / 2.0


# ---------------------------------------------------------------------------
# 4. Main Functions
# ---------------------------------------------------------------------------


def compute_vedic_time(
    time_loc: TimeLocation,
    provider: Optional[PositionProvider] = None,
    config: Optional[VedicTimeConfig] = None,
) -> VedicTime:
    if config is None:
        config = VedicTimeConfig()
    if provider is None:
        provider = get_default_provider()

    instant = resolve_instant(time_loc)
    local = local_datetime(time_loc)
    lat, lon = time_loc.latitude, time_loc.longitude
    estimator = config.rate_estimator()
    failures: List[UnitFailure] = []

    # 1. Raw positions, kept for transparency
    sun = _attempt("sun_longitude", instant, failures, _read_longitude, provider.sun_longitude, "Sun", instant, lat, lon)
    moon = _attempt(
        "moon_longitude", instant, failures, _read_longitude, provider.moon_longitude, "Moon", instant, lat, lon
    )

    # 2. Ecliptic units
    tithi = _attempt("tithi", instant, failures, calculate_tithi, provider, instant, lat, lon, estimator)
    nakshatra = _attempt(
        "nakshatra", instant, failures,
        calculate_nakshatra, provider, instant, lat, lon, estimator, config.sub_quarters,
    )
    masa = _attempt("masa", instant, failures, calculate_masa, provider, instant, lat, lon, estimator)

    # 3. Time-of-day units
    day_start = _day_start(provider, local, lat, lon, config)
    muhurta = calculate_muhurta(local, day_start)
    prana = calculate_prana(local, day_start, config.breath_cycle_pranas)

    # 4. Derived values
    elong: Optional[float] = None
    if sun is not None and moon is not None:
        elong = elongation(moon, sun)

    return VedicTime(
        calculated_for=instant,
        tithi=tithi,
        nakshatra=nakshatra,
        masa=masa,
        muhurta=muhurta,
        prana=prana,
        paksha=tithi.paksha if tithi else None,
        sun_longitude=sun,
        moon_longitude=moon,
        elongation=elong,
        moon_phase=elong / 360.0 if elong is not None else None,
        moon_illumination=moon_illumination(elong) if elong is not None else None,
        moon_rashi=moon_rashi(moon) if moon is not None else None,
        failures=tuple(failures),
    )


def calculate_vedic_time(
    latitude: float = 0.0,
    longitude: float = 0.0,
    instant: Optional[datetime] = None,
    provider: Optional[PositionProvider] = None,
    config: Optional[VedicTimeConfig] = None,
    tz: Optional[pytz.BaseTzInfo] = None,
) -> VedicTime:
    """Snapshot for `instant` (default: now) at an observer location."""
    if instant is None:
        instant = datetime.now(pytz.utc)
    tl = TimeLocation(dt_utc=instant, tz=tz, latitude=latitude, longitude=longitude)
    return compute_vedic_time(tl, provider, config)


# ---------------------------------------------------------------------------
# 5. Batch
# ---------------------------------------------------------------------------


def daily_instants(start: TimeLocation, days: int) -> List[TimeLocation]:
    """The same wall-clock time on `days` consecutive days."""
    out: List[TimeLocation] = []
    for i in range(days):
        step = timedelta(days=i)
        out.append(
            TimeLocation(
                dt_utc=start.dt_utc + step if start.dt_utc is not None else None,
                dt_local=start.dt_local + step if start.dt_local is not None else None,
                tz=start.tz,
                latitude=start.latitude,
                longitude=start.longitude,
            )
        )
    return out


def _timed_compute(
    started: Dict[int, float],
    index: int,
    time_loc: TimeLocation,
    provider: PositionProvider,
    config: VedicTimeConfig,
) -> VedicTime:
    started[index] = time.monotonic()
    return compute_vedic_time(time_loc, provider, config)


def _result_within_budget(
    future: "Future[VedicTime]",
    started: Dict[int, float],
    index: int,
    timeout: Optional[float],
) -> VedicTime:
    """Wait for one instant; its timeout runs from when a worker picked it up."""
    if timeout is None:
        return future.result()
    while index not in started:
        done, _ = wait([future], timeout=_QUEUE_POLL_SECONDS)
        if done:
            return future.result()
    remaining = started[index] + timeout - time.monotonic()
    return future.result(timeout=max(remaining, 0.0))


def compute_vedic_times(
    time_locations: Sequence[TimeLocation],
    provider: Optional[PositionProvider] = None,
    config: Optional[VedicTimeConfig] = None,
) -> List[BatchEntry]:
    """
    Snapshots for many instants, computed in parallel. Results come back in
    input order, one BatchEntry per instant; an instant that fails or runs
    longer than `config.provider_timeout` gets `vedic_time=None` and an error
    message.

    Time spent queued does not count against an instant's timeout. A timed
    out instant keeps its worker busy, so instants still queued at that point
    move to a fresh pool.
    """
    if config is None:
        config = VedicTimeConfig()
    if provider is None:
        provider = get_default_provider()

    started: Dict[int, float] = {}
    pools: List[ThreadPoolExecutor] = []

    def submit_to_new_pool(indices: Sequence[int]) -> Dict[int, "Future[VedicTime]"]:
        pool = ThreadPoolExecutor(max_workers=config.max_workers)
        pools.append(pool)
        return {
            i: pool.submit(_timed_compute, started, i, time_locations[i], provider, config)
            for i in indices
        }

    entries: List[BatchEntry] = []
    try:
        futures = submit_to_new_pool(range(len(time_locations)))
        for i, tl in enumerate(time_locations):
            try:
                vt = _result_within_budget(futures[i], started, i, config.provider_timeout)
                entries.append(BatchEntry(tl, vt))
            except FuturesTimeout:
                futures[i].cancel()
                LOG.warning(
                    "Vedic time for %s timed out after %ss",
                    tl.dt_utc or tl.dt_local,
                    config.provider_timeout,
                    extra={"err_code": "BATCH_TIMEOUT"},
                )
                entries.append(BatchEntry(tl, None, f"timed out after {config.provider_timeout}s"))
                # cancel() only succeeds for instants no worker has picked up
                queued = [j for j in range(i + 1, len(time_locations)) if futures[j].cancel()]
                if queued:
                    futures.update(submit_to_new_pool(queued))
            except ConfigurationError:
                raise
            except (ProviderError, ValueError) as exc:
                LOG.warning(
                    "Vedic time for %s failed: %s",
                    tl.dt_utc or tl.dt_local,
                    exc,
                    extra={"err_code": "BATCH_ITEM_FAILED"},
                )
                entries.append(BatchEntry(tl, None, str(exc)))
    finally:
        for pool in pools:
            pool.shutdown(wait=False, cancel_futures=True)
    return entries

"""
Sun/Moon position providers and time conversion.

The angular-time engine only needs two capabilities from its environment:

    moon_longitude(instant, latitude, longitude) -> degrees in [0, 360)
    sun_longitude(instant, latitude, longitude)  -> degrees in [0, 360)

`SwissEphemerisProvider` answers them with pyswisseph (and can also search
for sunrise); `MeanMotionProvider` answers them with a closed-form
mean-longitude model that needs no ephemeris files.
"""

import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Protocol, Union

import pytz
import swisseph as swe

from kala.angles import checked_longitude
from kala.errors import ProviderError

LOG = logging.getLogger(__name__)

BodyID = str

@dataclass
class TimeLocation:
    dt_utc: Optional[datetime] = None
    dt_local: Optional[datetime] = None
    tz: Optional[pytz.BaseTzInfo] = None
    latitude: float = 0.0
    longitude: float = 0.0

# Only the two luminaries are ever asked for
BODY_IDS: Dict[BodyID, int] = {
    "Sun": swe.SUN,
    "Moon": swe.MOON,
}

BASE_FLAGS = swe.FLG_SWIEPH
SIDEREAL_EXTRA = swe.FLG_SIDEREAL
TOPOCENTRIC_EXTRA = swe.FLG_TOPOCTR
RISE_FLAGS = swe.BIT_HINDU_RISING | swe.FLG_TRUEPOS | swe.FLG_SPEED

AYANAMSA_DEFAULT = "LAHIRI"

# swisseph keeps sidereal mode and topocentric position as process globals
_SWE_LOCK = threading.RLock()

def _resolve_sidm(ayanamsa_name: Optional[str]) -> int:
    if not ayanamsa_name:
        return getattr(swe, f"SIDM_{AYANAMSA_DEFAULT}", swe.SIDM_LAHIRI)
    key = f"SIDM_{ayanamsa_name.upper()}"
    return getattr(swe, key, swe.SIDM_LAHIRI)

def localize_datetime(dt_local: datetime, tz: pytz.BaseTzInfo) -> datetime:
    return tz.localize(dt_local)

def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.utc)
    return dt.astimezone(pytz.utc)

def resolve_instant(time_location: TimeLocation) -> datetime:
    """Return the aware UTC instant a TimeLocation refers to."""
    if time_location.dt_utc is not None:
        return as_utc(time_location.dt_utc)
    if time_location.dt_local is None:
        raise ValueError("Either dt_local or dt_utc must be provided.")
    dt_local = time_location.dt_local
    if dt_local.tzinfo is None and time_location.tz is not None:
        dt_local = localize_datetime(dt_local, time_location.tz)
    return as_utc(dt_local)

def local_datetime(time_location: TimeLocation) -> datetime:
    """The instant as wall-clock time in the observer's zone (UTC without one)."""
    instant = resolve_instant(time_location)
    if time_location.tz is not None:
        return instant.astimezone(time_location.tz)
    if time_location.dt_local is not None and time_location.dt_local.tzinfo is not None:
        return instant.astimezone(time_location.dt_local.tzinfo)
    return instant

def datetime_to_julian(dt: datetime) -> float:
    dt_utc = as_utc(dt)
    # Decimal hour (UT)
    ut = (
        dt_utc.hour
        + dt_utc.minute / 60.0
        + dt_utc.second / 3600.0
        + dt_utc.microsecond / 3.6e9
    )
    return swe.julday(dt_utc.year, dt_utc.month, dt_utc.day, ut)

def julian_to_datetime(jd_utc: float) -> datetime:
    year, month, day, hours = swe.revjul(jd_utc)
    midnight = datetime(year, month, day, tzinfo=pytz.utc)
    return midnight + timedelta(hours=hours)

@contextmanager
def ayanamsa_guard(sidereal: bool, ayanamsa_name: Optional[str]) -> Any:
    if sidereal:
        mode = _resolve_sidm(ayanamsa_name)
        swe.set_sid_mode(mode, 0, 0)
    try:
        yield
    finally:
        if sidereal:
            reset_mode = _resolve_sidm(AYANAMSA_DEFAULT)
            swe.set_sid_mode(reset_mode, 0, 0)


class PositionProvider(Protocol):
    def moon_longitude(self, instant: datetime, latitude: float = 0.0, longitude: float = 0.0) -> float:
        ...

    def sun_longitude(self, instant: datetime, latitude: float = 0.0, longitude: float = 0.0) -> float:
        ...


class SwissEphemerisProvider:
    def __init__(
        self,
        ephe_path: Optional[str] = None,
        *,
        sidereal: bool = False,
        ayanamsa: str = AYANAMSA_DEFAULT,
        topocentric: bool = False,
    ):
        self.sidereal = sidereal
        self.ayanamsa = ayanamsa or AYANAMSA_DEFAULT
        self.topocentric = topocentric

        if ephe_path:
            swe.set_ephe_path(ephe_path)
        self.flags = BASE_FLAGS
        if self.sidereal:
            self.flags |= SIDEREAL_EXTRA
        if self.topocentric:
            self.flags |= TOPOCENTRIC_EXTRA

    def _longitude(self, body_name: BodyID, instant: datetime, latitude: float, longitude: float) -> float:
        jd_utc = datetime_to_julian(instant)
        try:
            with _SWE_LOCK, ayanamsa_guard(self.sidereal, self.ayanamsa):
                if self.topocentric:
                    swe.set_topo(longitude, latitude, 0.0)
                res = swe.calc_ut(jd_utc, BODY_IDS[body_name], self.flags)
        except swe.Error as exc:
            raise ProviderError(f"swisseph failed for {body_name} at JD {jd_utc:.6f}: {exc}") from exc
        return checked_longitude(res[0][0], body_name)

    def moon_longitude(self, instant: datetime, latitude: float = 0.0, longitude: float = 0.0) -> float:
        return self._longitude("Moon", instant, latitude, longitude)

    def sun_longitude(self, instant: datetime, latitude: float = 0.0, longitude: float = 0.0) -> float:
        return self._longitude("Sun", instant, latitude, longitude)

    def _next_sunrise_jd(self, start_jd_utc: float, latitude: float, longitude: float) -> Optional[float]:
        geopos = (longitude, latitude, 0.0)
        try:
            with _SWE_LOCK:
                res_rise = swe.rise_trans(start_jd_utc, swe.SUN, geopos=geopos, rsmi=RISE_FLAGS | swe.CALC_RISE)
        except swe.Error as exc:
            raise ProviderError(f"sunrise search failed at JD {start_jd_utc:.6f}: {exc}") from exc
        # -2: circumpolar, the Sun never crosses the horizon
        if res_rise[0] != 0:
            return None
        return res_rise[1][0]

    def sunrise_before(self, instant: datetime, latitude: float = 0.0, longitude: float = 0.0) -> Optional[datetime]:
        """
        The most recent sunrise at or before `instant`, or None when there was
        none in the preceding day (polar day/night).
        """
        jd_utc = datetime_to_julian(instant)
        found: Optional[float] = None
        search_from = jd_utc - 1.0
        # At most two sunrises fit in the 24h window
        for _ in range(3):
            rise = self._next_sunrise_jd(search_from, latitude, longitude)
            if rise is None or rise > jd_utc:
                break
            found = rise
            search_from = rise + 1e-3
        return julian_to_datetime(found) if found is not None else None


# J2000.0, 2000-01-01 12:00 TT (taken as UTC; the difference is far below
# the model's accuracy)
J2000 = datetime(2000, 1, 1, 12, 0, 0, tzinfo=pytz.utc)

class MeanMotionProvider:
    """
    Closed-form mean longitudes: L(t) = L0 + rate * days since epoch.

    Defaults are the low-precision J2000 mean longitudes of the Sun and Moon
    (good to a degree or so for the Sun, several degrees for the Moon). Tests
    pin `sun_at_epoch`/`moon_at_epoch` to put the bodies anywhere at a known
    instant.
    """

    def __init__(
        self,
        epoch: datetime = J2000,
        *,
        sun_at_epoch: float = 280.46646,
        moon_at_epoch: float = 218.3165,
        sun_rate: float = 0.98564736,
        moon_rate: float = 13.17639648,
    ):
        self.epoch = as_utc(epoch)
        self.sun_at_epoch = sun_at_epoch
        self.moon_at_epoch = moon_at_epoch
        self.sun_rate = sun_rate  # deg/day
        self.moon_rate = moon_rate  # deg/day

    def _days(self, instant: datetime) -> float:
        return (as_utc(instant) - self.epoch).total_seconds() / 86400.0

    def moon_longitude(self, instant: datetime, latitude: float = 0.0, longitude: float = 0.0) -> float:
        return checked_longitude(self.moon_at_epoch + self.moon_rate * self._days(instant), "Moon")

    def sun_longitude(self, instant: datetime, latitude: float = 0.0, longitude: float = 0.0) -> float:
        return checked_longitude(self.sun_at_epoch + self.sun_rate * self._days(instant), "Sun")


def get_default_provider(
    *,
    use_mean_motion: bool = False,
    ephe_path: Optional[str] = None,
    sidereal: bool = False,
    ayanamsa: str = AYANAMSA_DEFAULT,
    topocentric: bool = False,
) -> Union[SwissEphemerisProvider, MeanMotionProvider]:

    if use_mean_motion:
        return MeanMotionProvider()

    if ephe_path is None:
        ephe_path = os.environ.get("SE_EPHE_PATH") or None
    if ephe_path:
        LOG.debug("Using Swiss Ephemeris files from %s", ephe_path)

    return SwissEphemerisProvider(
        ephe_path=ephe_path,
        sidereal=sidereal,
        ayanamsa=ayanamsa,
        topocentric=topocentric,
    )

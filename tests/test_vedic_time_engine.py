import dataclasses
import math
import threading
from datetime import datetime, timedelta

import pytest
import pytz

from kala.errors import ConfigurationError, ProviderError
from kala.tithis import KRISHNA, SHUKLA, calculate_tithi
from kala_ephemeris import MeanMotionProvider, TimeLocation, get_default_provider
from vedic_time_engine import (
    VedicTimeConfig,
    calculate_vedic_time,
    compute_vedic_time,
    compute_vedic_times,
    daily_instants,
    moon_illumination,
)


KOLKATA = pytz.timezone("Asia/Kolkata")
CHENNAI_LAT = 13.0827
CHENNAI_LON = 80.2707

T0 = datetime(2024, 1, 15, 4, 30, 0, tzinfo=pytz.utc)  # 10:00 IST


def fixed_provider():
    # Moon at 200, Sun at 50 exactly at T0
    return MeanMotionProvider(epoch=T0, sun_at_epoch=50.0, moon_at_epoch=200.0)


def chennai(dt_utc=T0):
    return TimeLocation(dt_utc=dt_utc, tz=KOLKATA, latitude=CHENNAI_LAT, longitude=CHENNAI_LON)


class SunOffline(MeanMotionProvider):
    def sun_longitude(self, instant, latitude=0.0, longitude=0.0):
        raise ProviderError("sun ephemeris offline")


class MoonStopsAfterNow(MeanMotionProvider):
    def moon_longitude(self, instant, latitude=0.0, longitude=0.0):
        if instant > T0:
            raise ProviderError("no data after T0")
        return super().moon_longitude(instant, latitude, longitude)


class NanMoon(MeanMotionProvider):
    """Returns raw NaN, with no validation of its own."""

    def moon_longitude(self, instant, latitude=0.0, longitude=0.0):
        return math.nan


class NanMoonAfterNow(MeanMotionProvider):
    def moon_longitude(self, instant, latitude=0.0, longitude=0.0):
        if instant > T0:
            return math.nan
        return super().moon_longitude(instant, latitude, longitude)


class SunriseSearchFails(MeanMotionProvider):
    def sunrise_before(self, instant, latitude=0.0, longitude=0.0):
        raise ProviderError("rise search failed")


def test_end_to_end_fixed_longitudes():
    vt = compute_vedic_time(chennai(), fixed_provider())

    assert vt.moon_longitude == 200.0
    assert vt.sun_longitude == 50.0
    assert vt.elongation == 150.0

    assert vt.tithi.index == 13
    assert vt.paksha == SHUKLA
    assert vt.nakshatra.index == 16
    assert vt.nakshatra.name == "Vishakha"
    assert vt.moon_phase == pytest.approx(150.0 / 360.0)
    assert vt.moon_phase == pytest.approx(0.4167, abs=1e-4)
    assert vt.masa_index == 2
    assert vt.masa_name == "Vaishakha"
    assert vt.moon_rashi == 7
    assert vt.calculated_for == T0
    assert vt.is_complete
    assert vt.failures == ()

    for unit in (vt.tithi, vt.nakshatra, vt.masa, vt.muhurta, vt.prana):
        assert unit.minutes_to_next is not None
        assert unit.minutes_to_next > 0


def test_mean_motion_provider_counts_muhurta_from_midnight():
    # No sunrise search on this provider: 10:00 IST is 36000 s after midnight
    vt = compute_vedic_time(chennai(), fixed_provider())
    assert vt.muhurta.index == 13
    assert vt.muhurta.progress == pytest.approx(50.0)
    assert vt.prana.number == 9000
    assert vt.prana.day_start == KOLKATA.localize(datetime(2024, 1, 15))


def test_midnight_day_start_config():
    config = VedicTimeConfig(day_start="midnight")
    vt = compute_vedic_time(chennai(), fixed_provider(), config)
    assert vt.muhurta.index == 13


def test_sunrise_search_failure_falls_back_to_midnight(caplog):
    provider = SunriseSearchFails(epoch=T0, sun_at_epoch=50.0, moon_at_epoch=200.0)
    with caplog.at_level("WARNING", logger="vedic_time_engine"):
        vt = compute_vedic_time(chennai(), provider)
    assert vt.muhurta.index == 13
    assert vt.is_complete
    assert any(getattr(r, "err_code", None) == "DAY_START_FALLBACK" for r in caplog.records)


def test_paksha_follows_tithi_index():
    provider = MeanMotionProvider(epoch=T0, sun_at_epoch=0.0, moon_at_epoch=180.0)
    vt = compute_vedic_time(chennai(), provider)
    assert vt.tithi.index == 16
    assert vt.paksha == KRISHNA
    assert vt.moon_illumination == pytest.approx(1.0)


def test_idempotent():
    provider = fixed_provider()
    assert compute_vedic_time(chennai(), provider) == compute_vedic_time(chennai(), provider)


def test_snapshot_is_immutable():
    vt = compute_vedic_time(chennai(), fixed_provider())
    with pytest.raises(dataclasses.FrozenInstanceError):
        vt.paksha = KRISHNA
    with pytest.raises(dataclasses.FrozenInstanceError):
        vt.tithi.division.index = 1


def test_sun_failure_marks_only_dependent_units(caplog):
    provider = SunOffline(epoch=T0, sun_at_epoch=50.0, moon_at_epoch=200.0)
    with caplog.at_level("WARNING", logger="vedic_time_engine"):
        vt = compute_vedic_time(chennai(), provider)

    assert set(vt.unavailable_units) == {"sun_longitude", "tithi", "masa"}
    assert not vt.is_complete
    assert vt.tithi is None and vt.masa is None and vt.paksha is None
    assert vt.elongation is None and vt.moon_phase is None
    assert vt.sun_longitude is None

    # Moon-only and clock units are untouched
    assert vt.moon_longitude == 200.0
    assert vt.nakshatra.index == 16
    assert vt.moon_rashi == 7
    assert vt.muhurta is not None and vt.prana is not None
    assert any(getattr(r, "err_code", None) == "UNIT_UNAVAILABLE" for r in caplog.records)


def test_rate_failure_only_blanks_eta():
    provider = MoonStopsAfterNow(epoch=T0, sun_at_epoch=50.0, moon_at_epoch=200.0)
    vt = compute_vedic_time(chennai(), provider)
    assert vt.is_complete
    assert vt.nakshatra.index == 16
    assert vt.nakshatra.minutes_to_next is None
    assert vt.tithi.index == 13
    assert vt.tithi.minutes_to_next is None
    # Masa only needs the Sun
    assert vt.masa.minutes_to_next is not None


def test_non_finite_moon_marks_moon_units_unavailable():
    provider = NanMoon(epoch=T0, sun_at_epoch=50.0, moon_at_epoch=200.0)
    vt = compute_vedic_time(chennai(), provider)

    assert set(vt.unavailable_units) == {"moon_longitude", "tithi", "nakshatra"}
    assert vt.nakshatra is None and vt.tithi is None
    assert vt.moon_longitude is None and vt.moon_rashi is None
    assert vt.masa.index == 2
    assert vt.sun_longitude == 50.0
    assert vt.muhurta is not None and vt.prana is not None


def test_non_finite_second_sample_only_blanks_eta():
    provider = NanMoonAfterNow(epoch=T0, sun_at_epoch=50.0, moon_at_epoch=200.0)

    tithi = calculate_tithi(provider, T0)
    assert tithi.index == 13
    assert tithi.minutes_to_next is None

    vt = compute_vedic_time(chennai(), provider)
    assert vt.is_complete
    assert vt.nakshatra.index == 16
    assert vt.nakshatra.minutes_to_next is None
    assert vt.masa.minutes_to_next is not None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"rate_sample_hours": 0.0},
        {"day_start": "noon"},
        {"breath_cycle_pranas": -1.0},
        {"sub_quarters": 0},
        {"provider_timeout": 0.0},
        {"max_workers": 0},
    ],
)
def test_invalid_config_fails_fast(kwargs):
    with pytest.raises(ConfigurationError):
        VedicTimeConfig(**kwargs)


def test_rate_sample_hours_is_used():
    config = VedicTimeConfig(rate_sample_hours=0.25)
    assert config.rate_estimator().sample_interval == timedelta(minutes=15)


def test_calculate_vedic_time_convenience():
    vt = calculate_vedic_time(CHENNAI_LAT, CHENNAI_LON, T0, provider=fixed_provider(), tz=KOLKATA)
    assert vt.tithi.index == 13
    assert vt.muhurta.index == 13


def test_moon_illumination():
    assert moon_illumination(0.0) == pytest.approx(0.0)
    assert moon_illumination(90.0) == pytest.approx(0.5)
    assert moon_illumination(180.0) == pytest.approx(1.0)


class TestBatch:
    def test_daily_instants(self):
        start = TimeLocation(dt_local=datetime(2024, 1, 15, 6, 0), tz=KOLKATA)
        days = daily_instants(start, 7)
        assert len(days) == 7
        assert [d.dt_local.day for d in days] == list(range(15, 22))
        assert all(d.tz is KOLKATA for d in days)

    def test_results_in_input_order(self):
        provider = MeanMotionProvider()
        tls = daily_instants(chennai(), 10)
        entries = compute_vedic_times(tls, provider, VedicTimeConfig(max_workers=3))
        assert [e.time_location for e in entries] == tls
        assert all(e.error is None for e in entries)
        for tl, entry in zip(tls, entries):
            assert entry.vedic_time == compute_vedic_time(tl, provider)

    def test_bad_instant_does_not_abort_batch(self):
        tls = [chennai(), TimeLocation(), chennai(T0 + timedelta(days=1))]
        entries = compute_vedic_times(tls, fixed_provider())
        assert entries[0].vedic_time is not None
        assert entries[1].vedic_time is None
        assert "dt_local or dt_utc" in entries[1].error
        assert entries[2].vedic_time is not None

    def test_timeout_is_per_instant(self):
        release = threading.Event()
        slow_instant = T0 + timedelta(days=1)

        class Slow(MeanMotionProvider):
            def moon_longitude(self, instant, latitude=0.0, longitude=0.0):
                if instant == slow_instant:
                    release.wait(10.0)
                return super().moon_longitude(instant, latitude, longitude)

        tls = [chennai(), chennai(slow_instant), chennai(T0 + timedelta(days=2))]
        try:
            entries = compute_vedic_times(
                tls, Slow(), VedicTimeConfig(provider_timeout=0.5, max_workers=3)
            )
        finally:
            release.set()

        assert entries[0].vedic_time is not None
        assert entries[1].vedic_time is None
        assert "timed out" in entries[1].error
        assert entries[2].vedic_time is not None

    def test_queued_instants_are_not_charged_for_a_hung_one(self):
        release = threading.Event()

        class HangsOnFirst(MeanMotionProvider):
            def moon_longitude(self, instant, latitude=0.0, longitude=0.0):
                if instant == T0:
                    release.wait(10.0)
                return super().moon_longitude(instant, latitude, longitude)

        tls = [chennai(), chennai(T0 + timedelta(days=1)), chennai(T0 + timedelta(days=2))]
        try:
            entries = compute_vedic_times(
                tls, HangsOnFirst(), VedicTimeConfig(provider_timeout=0.5, max_workers=1)
            )
        finally:
            release.set()

        assert entries[0].vedic_time is None
        assert "timed out" in entries[0].error
        assert entries[1].vedic_time is not None
        assert entries[1].error is None
        assert entries[2].vedic_time is not None


class TestSwissEphemeris:
    @pytest.fixture
    def provider(self):
        return get_default_provider(sidereal=True, ayanamsa="LAHIRI")

    def test_amavasya_2023_is_krishna(self, provider):
        tl = TimeLocation(
            dt_local=datetime(2023, 11, 12, 6, 0, 0),
            tz=KOLKATA,
            latitude=CHENNAI_LAT,
            longitude=CHENNAI_LON,
        )
        vt = compute_vedic_time(tl, provider)
        assert vt.paksha == KRISHNA
        assert vt.tithi.index in (29, 30)

    def test_purnima_2023_is_shukla(self, provider):
        tl = TimeLocation(
            dt_local=datetime(2023, 11, 27, 6, 0, 0),
            tz=KOLKATA,
            latitude=CHENNAI_LAT,
            longitude=CHENNAI_LON,
        )
        vt = compute_vedic_time(tl, provider)
        assert vt.paksha == SHUKLA
        assert vt.tithi.index == 15

    def test_ranges_and_etas(self, provider):
        vt = compute_vedic_time(chennai(), provider)
        assert vt.is_complete
        assert 1 <= vt.tithi.index <= 30
        assert 1 <= vt.nakshatra.index <= 27
        assert 1 <= vt.nakshatra.pada <= 4
        assert 1 <= vt.masa_index <= 12
        assert 1 <= vt.muhurta.index <= 30
        assert 0 <= vt.prana.number < 21600
        # Moon crosses a nakshatra in roughly a day
        assert 0 < vt.nakshatra.minutes_to_next < 30 * 60
        assert 0 < vt.tithi.minutes_to_next < 30 * 60
        # Sunrise anchor: 10:00 IST is a few hours after sunrise
        assert 3 * 3600 < vt.prana.seconds_since_day_start < 4 * 3600

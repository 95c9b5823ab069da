from datetime import datetime, timedelta

import numpy as np
import pytest
import pytz

from kala.nakshatras import NAKSHATRA_SCHEME, RASHI_SCHEME
from kala.tithis import TITHI_SCHEME, elongation
from kala.transits import find_division_changes, sample_series
from kala_ephemeris import MeanMotionProvider


START = datetime(2024, 1, 1, tzinfo=pytz.utc)


def hourly(days: int):
    return [START + timedelta(hours=i) for i in range(days * 24)]


def test_moon_rashi_changes():
    # The Moon moves ~13 degrees/day, so it changes sign every ~2.25 days.
    provider = MeanMotionProvider()
    instants = hourly(10)
    lons = sample_series(provider.moon_longitude, instants)

    changes = find_division_changes(instants, lons, RASHI_SCHEME)

    assert 4 <= len(changes) <= 5
    for when, f, t in changes:
        assert f != t
        assert 1 <= f <= 12
        assert 1 <= t <= 12
        # Each step is to the following sign (wrapping 12 -> 1)
        assert t == f % 12 + 1
        assert when in instants


def test_nakshatra_changes_roughly_daily():
    provider = MeanMotionProvider()
    instants = hourly(10)
    lons = sample_series(provider.moon_longitude, instants)
    changes = find_division_changes(instants, lons, NAKSHATRA_SCHEME)
    assert 9 <= len(changes) <= 10


def test_tithi_changes_across_a_month():
    provider = MeanMotionProvider()
    instants = hourly(30)
    values = sample_series(
        lambda t: elongation(provider.moon_longitude(t), provider.sun_longitude(t)),
        instants,
    )
    changes = find_division_changes(instants, values, TITHI_SCHEME)
    # ~12.19 degrees of elongation per day
    assert 30 <= len(changes) <= 31
    times = [c[0] for c in changes]
    assert times == sorted(times)


def test_first_instant_is_never_a_change():
    instants = [START, START + timedelta(hours=1)]
    assert find_division_changes(instants, np.array([29.0, 29.5]), RASHI_SCHEME) == []
    changes = find_division_changes(instants, np.array([29.5, 30.5]), RASHI_SCHEME)
    assert changes == [(instants[1], 1, 2)]


def test_empty_and_mismatched_input():
    assert find_division_changes([], np.array([]), RASHI_SCHEME) == []
    with pytest.raises(ValueError):
        find_division_changes([START], np.array([1.0, 2.0]), RASHI_SCHEME)

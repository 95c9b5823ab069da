import logging
from datetime import datetime

import pytz

from kala.day_divisions import pranas_to_next_muhurta, prana_to_time_string
from kala.tithis import is_ekadashi, is_purnima, is_amavasya
from kala_ephemeris import TimeLocation, get_default_provider
from vedic_time_engine import VedicTimeConfig, compute_vedic_time, compute_vedic_times, daily_instants


def _eta(minutes):
    if minutes is None:
        return "unknown"
    hours, mins = divmod(int(round(minutes)), 60)
    return f"{hours}h {mins:02d}m"


def print_vedic_time_report() -> None:
    # 1. Setup (Varanasi example)
    tz = pytz.timezone("Asia/Kolkata")
    lat, lon = 25.3176, 82.9739
    now_local = datetime.now(tz)

    print("\n✨ VEDIC TIME REPORT ✨")
    print(f"📅 Date: {now_local.strftime('%Y-%m-%d %H:%M:%S %Z')}")
    print(f"📍 Location: Varanasi ({lat} N, {lon} E)")
    print("-" * 60)

    # 2. Calculate
    provider = get_default_provider()
    config = VedicTimeConfig(day_start="sunrise")
    tl = TimeLocation(dt_local=now_local.replace(tzinfo=None), tz=tz, latitude=lat, longitude=lon)
    vt = compute_vedic_time(tl, provider, config)

    # 3. Celestial
    print("🌙 CELESTIAL")
    for label, value in (
        ("Sun longitude", vt.sun_longitude),
        ("Moon longitude", vt.moon_longitude),
        ("Elongation", vt.elongation),
    ):
        print(f"{label:<18} " + (f"{value:8.3f}°" if value is not None else "unavailable"))
    if vt.moon_phase is not None:
        print(f"{'Moon phase':<18} {vt.moon_phase:8.3f}   (illuminated {vt.moon_illumination * 100:.1f}%)")
    print("-" * 60)

    # 4. Calendar units
    print("🗓️  CALENDAR")
    if vt.tithi:
        t = vt.tithi
        flags = [label for label, hit in (
            ("Purnima", is_purnima(t.index)),
            ("Amavasya", is_amavasya(t.index)),
            ("Ekadashi", is_ekadashi(t.index)),
        ) if hit]
        print(
            f"{'Tithi':<10} {t.index:>2} {t.name:<18} {t.progress:5.1f}%  next in {_eta(t.minutes_to_next)}"
            + (f"  [{', '.join(flags)}]" if flags else "")
        )
        print(f"{'Paksha':<10} {vt.paksha}")
    if vt.nakshatra:
        n = vt.nakshatra
        print(
            f"{'Nakshatra':<10} {n.index:>2} {n.name:<18} {n.progress:5.1f}%  "
            f"pada {n.pada}  next in {_eta(n.minutes_to_next)}"
        )
    if vt.masa:
        print(f"{'Masa':<10} {vt.masa.index:>2} {vt.masa.name}")
    if vt.muhurta:
        m = vt.muhurta
        print(
            f"{'Muhurta':<10} {m.index:>2} {m.name} ({m.name_sanskrit})  "
            f"{m.progress:5.1f}%  next in {_eta(m.minutes_to_next)}"
        )
    if vt.prana:
        p = vt.prana
        print(
            f"{'Prana':<10} {p.number} ({prana_to_time_string(p.number)} since day start)  "
            f"{p.breath_phase} {p.breath_phase_progress:5.1f}%  "
            f"{pranas_to_next_muhurta(p.number)} pranas to next muhurta"
        )
    for failure in vt.failures:
        print(f"⚠️ {failure.unit} unavailable: {failure.reason}")
    print("-" * 60)

    # 5. Next seven days at the same wall-clock time
    print("\n📆 NEXT 7 DAYS")
    print(f"{'Date':<12} {'Tithi':<22} {'Nakshatra':<20} {'Masa'}")
    for entry in compute_vedic_times(daily_instants(tl, 7), provider, config):
        day = entry.time_location.dt_local.strftime("%Y-%m-%d")
        if entry.vedic_time is None:
            print(f"{day:<12} unavailable: {entry.error}")
            continue
        d = entry.vedic_time
        tithi = f"{d.tithi.index} {d.tithi.name}" if d.tithi else "-"
        nak = d.nakshatra.name if d.nakshatra else "-"
        print(f"{day:<12} {tithi:<22} {nak:<20} {d.masa_name or '-'}")

    print("\n✅ Report Generated Successfully.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print_vedic_time_report()

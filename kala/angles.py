import math
from typing import Any, Tuple

from kala.errors import ProviderError

FULL_CIRCLE = 360.0


def normalize(angle: float) -> float:
    """
    Reduce any finite angle into [0, 360).

    Uses floored modulo so negative inputs wrap forward (-10 -> 350).
    """
    if not math.isfinite(angle):
        raise ValueError(f"Cannot normalize non-finite angle {angle!r}")
    lon = angle % FULL_CIRCLE
    # -1e-20 % 360.0 rounds up to 360.0
    if lon >= FULL_CIRCLE:
        return 0.0
    return lon


def circular_difference(a: float, b: float) -> float:
    """
    Signed shortest angular distance from `b` to `a`, in (-180, 180].

    A body moving forward across 360/0 (359.8 -> 0.3) yields +0.5, not -359.5.
    """
    delta = normalize(a) - normalize(b)
    if delta <= -180.0:
        delta += FULL_CIRCLE
    elif delta > 180.0:
        delta -= FULL_CIRCLE
    return delta


def division_index_and_remainder(angle: float, width: float, count: int) -> Tuple[int, float]:
    """
    Return (0-based index, remainder) of `angle` in a `count`-fold division.

    The index is floor(angle / width), so an angle on a boundary belongs to
    the division starting there. The remainder is taken against that index
    and clamped into [0, width), since the float `width` (360/27...) rarely
    divides boundaries exactly.
    """
    quotient = math.floor(angle / width)
    remainder = angle - quotient * width
    if remainder < 0.0:
        remainder = 0.0
    elif remainder >= width:
        quotient += 1
        remainder -= width
    return quotient % count, remainder


def checked_longitude(value: Any, body_name: str) -> float:
    """
    Validate a longitude read from a position provider and wrap it into
    [0, 360). Anything that is not a finite number is a ProviderError.
    """
    try:
        lon = float(value)
    except (TypeError, ValueError) as exc:
        raise ProviderError(f"{body_name} longitude {value!r} is not a number") from exc
    if not math.isfinite(lon):
        raise ProviderError(f"{body_name} longitude is not finite: {lon!r}")
    return normalize(lon)

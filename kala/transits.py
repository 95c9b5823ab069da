import numpy as np
from datetime import datetime
from typing import Callable, List, Sequence, Tuple

from kala.divisions import DivisionScheme, map_divisions_batch


def sample_series(sampler: Callable[[datetime], float], instants: Sequence[datetime]) -> np.ndarray:
    """Evaluate `sampler` at each instant (e.g. a provider's moon_longitude)."""
    return np.array([sampler(t) for t in instants], dtype=np.float64)


def find_division_changes(
    instants: Sequence[datetime],
    values: np.ndarray,
    scheme: DivisionScheme,
) -> List[Tuple[datetime, int, int]]:
    """
    Scans a sampled series to find when it moves into a new division.

    Args:
        instants: Sample times, ascending.
        values: The sampled quantity at each instant (longitude, elongation...).
        scheme: The division to track (nakshatra, tithi, rashi...).

    Returns:
        A list of tuples: (instant, from_index, to_index), 1-based indices.
        The instant returned is the *first* sample inside the new division.
    """
    if len(instants) != len(values):
        raise ValueError(f"{len(instants)} instants but {len(values)} values")
    if len(instants) == 0:
        return []

    indices, _, _ = map_divisions_batch(values, scheme)

    # prepend=indices[0] keeps the shape and makes element 0 never a change
    changes = np.diff(indices, prepend=indices[0]) != 0
    change_positions = np.where(changes)[0]

    events = []
    for pos in change_positions:
        events.append((instants[pos], int(indices[pos - 1]), int(indices[pos])))

    return events

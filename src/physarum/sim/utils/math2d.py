from __future__ import annotations

import math


def _wrap_index(index: int, size: int) -> int:
    return ((index % size) + size) % size


def _wrap_coordinate(value: float, extent: float, origin: float = 0.0) -> float:
    wrapped = math.fmod(value - origin, extent)
    if wrapped < 0.0:
        wrapped += extent
    # fmod of a tiny negative value can round back up to the extent itself.
    if wrapped >= extent:
        wrapped = 0.0
    return wrapped + origin


def _in_range(value: float, extent: float, origin: float = 0.0) -> bool:
    return origin <= value < origin + extent


def _heading_vector(heading: float) -> tuple[float, float]:
    return math.cos(heading), math.sin(heading)

from __future__ import annotations

from typing import Tuple

from ...rng import DeterministicRng

_ANY_TURN = (-1, 0, 1)


def decide_turn(sensed: Tuple[float, float, float], rng: DeterministicRng) -> int:
    """Pick a turn in {-1, 0, +1} from left, center and right readings.

    Random draws only happen when the center is the unique minimum or when
    left and right tie without a unique center maximum.
    """
    left, center, right = sensed
    if center > left and center > right:
        return 0
    if center < left and center < right:
        return rng.next_sign()
    if left > right:
        return -1
    if left < right:
        return 1
    return rng.sample_choice(_ANY_TURN)


def rotation_delta(turn: int, rotation_angle: float, noise: float, rng: DeterministicRng) -> float:
    delta = turn * rotation_angle
    if noise > 0.0:
        delta += rng.next_range(-noise, noise)
    return delta

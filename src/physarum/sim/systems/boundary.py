from __future__ import annotations

import math
from typing import Tuple

from ...rng import DeterministicRng
from ..core.agent import Agent
from ..utils.math2d import _heading_vector, _in_range, _wrap_coordinate


def advance(agent: Agent, step_length: float) -> None:
    dx, dy = _heading_vector(agent.heading)
    agent.position.x += dx * step_length
    agent.position.y += dy * step_length


def is_outside(agent: Agent, extent: Tuple[float, float], origin: Tuple[float, float] = (0.0, 0.0)) -> bool:
    inside_x = _in_range(agent.position.x, extent[0], origin[0])
    inside_y = _in_range(agent.position.y, extent[1], origin[1])
    return not (inside_x and inside_y)


def wrap(agent: Agent, extent: Tuple[float, float], origin: Tuple[float, float] = (0.0, 0.0)) -> None:
    agent.position.x = _wrap_coordinate(agent.position.x, extent[0], origin[0])
    agent.position.y = _wrap_coordinate(agent.position.y, extent[1], origin[1])


def reflect(
    agent: Agent,
    extent: Tuple[float, float],
    step_length: float,
    rng: DeterministicRng,
    origin: Tuple[float, float] = (0.0, 0.0),
) -> bool:
    """Turn an escaped agent around and take a single corrective step.

    The agent is not clamped and is not checked again, so it can remain
    outside the domain until a later step brings it back.
    """
    if not is_outside(agent, extent, origin):
        return False
    agent.heading += math.pi * rng.next_sign()
    advance(agent, step_length)
    agent.corrective_moves += 1
    return True

from __future__ import annotations

import math
from typing import TYPE_CHECKING, List, Tuple

from ..core.agent import Agent

if TYPE_CHECKING:
    from ..core.trail import TrailField


def sensor_offsets(sensor_angle: float) -> Tuple[float, float, float]:
    return (-sensor_angle, 0.0, sensor_angle)


def probe_points(agent: Agent, offsets: Tuple[float, ...], sensor_offset: float) -> List[Tuple[float, float]]:
    x = agent.position.x
    y = agent.position.y
    heading = agent.heading
    return [
        (x + math.cos(heading + offset) * sensor_offset, y + math.sin(heading + offset) * sensor_offset)
        for offset in offsets
    ]


def sense(field: TrailField, agent: Agent, offsets: Tuple[float, float, float], sensor_offset: float) -> Tuple[float, float, float]:
    left, center, right = (field.sample(px, py) for px, py in probe_points(agent, offsets, sensor_offset))
    return (left, center, right)

from __future__ import annotations

from dataclasses import dataclass

from pygame.math import Vector2


@dataclass(slots=True)
class Agent:
    id: int
    position: Vector2
    heading: float = 0.0
    sensed: tuple[float, float, float] = (0.0, 0.0, 0.0)
    last_turn: int = 0
    corrective_moves: int = 0

from __future__ import annotations

import logging
from typing import Iterator, List, Tuple

from pygame.math import Vector2

from ...config import SimulationConfig
from ...rng import DeterministicRng
from ..systems import boundary, sensing, steering
from .agent import Agent
from .trail import TrailField

logger = logging.getLogger(__name__)


class AgentPopulation:
    def __init__(self, config: SimulationConfig, rng: DeterministicRng):
        self._config = config
        self._rng = rng
        self._extent = config.extent
        self._origin = config.origin
        self._periodic = config.periodic
        self._sensor_offsets = sensing.sensor_offsets(config.agent.sensor_angle)
        self._agents: List[Agent] = []
        self.spawn()

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents)

    def spawn(self) -> None:
        width, height = self._extent
        left, bottom = self._origin
        self._agents = []
        for agent_id in range(self._config.agent_count):
            x = self._rng.next_range(left, left + width)
            y = self._rng.next_range(bottom, bottom + height)
            heading = self._rng.next_angle()
            agent = Agent(id=agent_id, position=Vector2(x, y), heading=heading)
            if self._periodic:
                boundary.wrap(agent, self._extent, self._origin)
            self._agents.append(agent)

    def sense(self, field: TrailField, agent: Agent) -> Tuple[float, float, float]:
        agent.sensed = sensing.sense(field, agent, self._sensor_offsets, self._config.agent.sensor_offset)
        return agent.sensed

    def update(self, field: TrailField) -> int:
        """Sense, turn and move every agent against the settled field.

        Returns the number of agents that needed a corrective bounce.
        """
        params = self._config.agent
        rng = self._rng
        reflections = 0
        for agent in self._agents:
            agent.corrective_moves = 0
            sensed = self.sense(field, agent)
            agent.last_turn = steering.decide_turn(sensed, rng)
            agent.heading += steering.rotation_delta(
                agent.last_turn, params.rotation_angle, params.random_rotation_noise, rng
            )
            boundary.advance(agent, params.step_length)
            if self._periodic:
                boundary.wrap(agent, self._extent, self._origin)
            elif boundary.reflect(agent, self._extent, params.step_length, rng, self._origin):
                reflections += 1
                logger.debug("agent %d bounced to (%.5f, %.5f)", agent.id, agent.position.x, agent.position.y)
        return reflections

    def deposit(self, field: TrailField) -> int:
        cells = []
        for agent in self._agents:
            key = field.cell_key(agent.position.x, agent.position.y)
            if key is not None:
                cells.append(key)
        field.deposit_cells(cells, self._config.agent.deposit_increment)
        return len(cells)

from __future__ import annotations

import logging
from time import perf_counter
from typing import Callable, List, Optional

import numpy as np

from ...config import SimulationConfig
from ...rng import DeterministicRng
from ..systems import metrics as metrics_system
from ..types.metrics import StepMetrics
from ..types.snapshot import SnapshotMetadata, TrailSnapshot
from .agent import Agent
from .population import AgentPopulation
from .trail import TrailField

logger = logging.getLogger(__name__)

SnapshotExporter = Callable[[np.ndarray, int], None]


class World:
    """Drives one trail field and its agent population step by step.

    Each step runs sense/turn/move for every agent, then deposits, then
    diffuses and decays the field. Exporters registered with
    :meth:`add_exporter` receive a copy of the settled field on the
    configured cadence.
    """

    def __init__(
        self,
        config: SimulationConfig,
        rng: DeterministicRng | None = None,
        initial_field: np.ndarray | None = None,
    ):
        self._config = config.validate()
        self._rng = rng if rng is not None else DeterministicRng(config.seed)
        self._field = TrailField.from_config(config, initial=initial_field)
        self._population = AgentPopulation(config, self._rng)
        self._exporters: List[SnapshotExporter] = []
        self._step = 0
        self._metrics: StepMetrics | None = None
        logger.info(
            "world ready: %d agents on %dx%d %s grid, %s boundary, seed %d",
            config.agent_count,
            config.width,
            config.height,
            config.units.value,
            config.boundary.value,
            self._rng.seed,
        )

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def field(self) -> TrailField:
        return self._field

    @property
    def population(self) -> AgentPopulation:
        return self._population

    @property
    def agents(self) -> List[Agent]:
        return self._population.agents

    @property
    def steps_taken(self) -> int:
        return self._step

    @property
    def metrics(self) -> StepMetrics | None:
        return self._metrics

    def add_exporter(self, exporter: SnapshotExporter) -> None:
        self._exporters.append(exporter)

    def remove_exporter(self, exporter: SnapshotExporter) -> None:
        self._exporters.remove(exporter)

    def reset(self) -> None:
        self._rng.reset()
        self._field.reset()
        self._population.spawn()
        self._step = 0
        self._metrics = None

    def step(self) -> StepMetrics:
        start = perf_counter()
        step = self._step
        reflections = self._population.update(self._field)
        deposited = self._population.deposit(self._field)
        self._field.update()
        duration_ms = (perf_counter() - start) * 1000.0

        self._metrics = metrics_system.create_metrics(
            step, len(self._population), self._field, reflections, deposited, duration_ms
        )
        self._step += 1

        interval = self._config.export_interval
        if interval > 0 and step % interval == 0:
            self._export(step)
        progress = self._config.progress_interval
        if progress > 0 and step % progress == 0:
            logger.info("step %d: mass %.4f, peak %.4f", step, self._metrics.total_mass, self._metrics.max_concentration)
        return self._metrics

    def run(self, steps: Optional[int] = None, on_step: Callable[[StepMetrics], None] | None = None) -> StepMetrics | None:
        total = self._config.step_count if steps is None else steps
        for _ in range(total):
            metrics = self.step()
            if on_step is not None:
                on_step(metrics)
        return self._metrics

    def snapshot(self) -> TrailSnapshot:
        config = self._config
        return TrailSnapshot(
            step=self._step,
            width=config.width,
            height=config.height,
            values=self._field.copy(),
            metrics=self._metrics,
            metadata=SnapshotMetadata(
                units=config.units.value,
                boundary=config.boundary.value,
                extent=config.extent,
                seed=self._rng.seed,
                config_version=config.config_version,
                origin=config.origin,
            ),
        )

    def _export(self, step: int) -> None:
        if not self._exporters:
            return
        values = self._field.copy()
        values.flags.writeable = False
        for exporter in self._exporters:
            exporter(values, step)

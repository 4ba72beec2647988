from __future__ import annotations

from typing import TYPE_CHECKING

from ..types.metrics import StepMetrics

if TYPE_CHECKING:
    from ..core.trail import TrailField


def create_metrics(
    step: int,
    agents: int,
    field: TrailField,
    reflections: int,
    deposited_cells: int,
    duration_ms: float,
) -> StepMetrics:
    return StepMetrics(
        step=step,
        agents=agents,
        total_mass=field.total(),
        max_concentration=field.peak(),
        reflections=reflections,
        deposited_cells=deposited_cells,
        step_duration_ms=duration_ms,
    )

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class StepMetrics:
    step: int
    agents: int
    total_mass: float
    max_concentration: float
    reflections: int
    deposited_cells: int
    step_duration_ms: float = 0.0

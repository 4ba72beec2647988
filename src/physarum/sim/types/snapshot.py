from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

import numpy as np

from .metrics import StepMetrics


@dataclass(slots=True)
class TrailSnapshot:
    step: int
    width: int
    height: int
    values: np.ndarray
    metrics: StepMetrics | None
    metadata: "SnapshotMetadata"

    def to_rows(self) -> List[List[float]]:
        return self.values.tolist()

    def to_payload(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "width": self.width,
            "height": self.height,
            "values": self.to_rows(),
        }


@dataclass(slots=True)
class SnapshotMetadata:
    units: str
    boundary: str
    extent: tuple[float, float]
    seed: int
    config_version: str
    origin: tuple[float, float] = (0.0, 0.0)

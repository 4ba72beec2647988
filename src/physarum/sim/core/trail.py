from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from ...config import ConfigError, DiffusionKernel, DomainUnits, SimulationConfig
from ..utils.math2d import _wrap_index

_NEIGHBOR_OFFSETS: Tuple[Tuple[int, int], ...] = tuple((dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1))

UNIFORM_KERNEL = np.full((3, 3), 1.0 / 9.0)
PEAKED_KERNEL = np.array(
    [
        [1.0 / 36.0, 1.0 / 18.0, 1.0 / 36.0],
        [1.0 / 18.0, 2.0 / 3.0, 1.0 / 18.0],
        [1.0 / 36.0, 1.0 / 18.0, 1.0 / 36.0],
    ]
)

_KERNELS = {
    DiffusionKernel.UNIFORM: UNIFORM_KERNEL,
    DiffusionKernel.PEAKED: PEAKED_KERNEL,
}


class TrailField:
    """Scalar concentration grid indexed as ``values[x, y]``.

    Periodic fields diffuse with a wrapped 3x3 mean. Bounded fields are
    zero-padded by one cell and convolved with the configured kernel.
    Both passes read only the pre-diffusion buffer.
    """

    def __init__(
        self,
        width: int,
        height: int,
        extent: Tuple[float, float] | None = None,
        units: DomainUnits = DomainUnits.CELLS,
        periodic: bool = True,
        kernel: DiffusionKernel = DiffusionKernel.UNIFORM,
        decay_fraction: float = 0.0,
        max_concentration: Optional[float] = None,
        initial: np.ndarray | None = None,
    ):
        if width <= 0 or height <= 0:
            raise ConfigError(f"trail field dimensions must be positive, got {width}x{height}")
        self._width = width
        self._height = height
        self._extent = extent if extent is not None else (float(width), float(height))
        self._units = units
        self._periodic = periodic
        self._kernel = _KERNELS[kernel]
        self._decay_fraction = decay_fraction
        self._max_concentration = max_concentration
        self._initial = self._check_initial(initial)
        self._values = np.zeros((width, height), dtype=np.float64)
        self.reset()

    @classmethod
    def from_config(cls, config: SimulationConfig, initial: np.ndarray | None = None) -> "TrailField":
        return cls(
            config.width,
            config.height,
            extent=config.extent,
            units=config.units,
            periodic=config.periodic,
            kernel=config.trail.diffusion_kernel,
            decay_fraction=config.trail.decay_fraction,
            max_concentration=config.trail.max_concentration,
            initial=initial,
        )

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def values(self) -> np.ndarray:
        view = self._values.view()
        view.flags.writeable = False
        return view

    def reset(self) -> None:
        if self._initial is None:
            self._values.fill(0.0)
        else:
            np.copyto(self._values, self._initial)

    def copy(self) -> np.ndarray:
        return self._values.copy()

    def total(self) -> float:
        return float(self._values.sum())

    def peak(self) -> float:
        return float(self._values.max())

    def wrap_cell(self, ix: int, iy: int) -> Tuple[int, int]:
        return (_wrap_index(ix, self._width), _wrap_index(iy, self._height))

    def cell_key(self, x: float, y: float) -> Tuple[int, int] | None:
        """Map a domain position to its grid cell.

        Returns ``None`` when a bounded field has no cell at the position.
        """
        if self._units == DomainUnits.CELLS:
            ix = math.floor(x + 0.5)
            iy = math.floor(y + 0.5)
        else:
            ix = math.floor(x / self._extent[0] * self._width)
            iy = math.floor(y / self._extent[1] * self._height)
        if self._periodic:
            return self.wrap_cell(ix, iy)
        if 0 <= ix < self._width and 0 <= iy < self._height:
            return (ix, iy)
        return None

    def sample(self, x: float, y: float) -> float:
        key = self.cell_key(x, y)
        if key is None:
            return 0.0
        return float(self._values[key])

    def deposit(self, x: float, y: float, amount: float) -> bool:
        key = self.cell_key(x, y)
        if key is None:
            return False
        self._values[key] += amount
        return True

    def deposit_cells(self, cells: Sequence[Tuple[int, int]], amount: float) -> None:
        if not cells:
            return
        xs, ys = zip(*cells)
        # Unbuffered so repeated cells accumulate every deposit.
        np.add.at(self._values, (np.asarray(xs), np.asarray(ys)), amount)

    def diffuse(self) -> None:
        source = self._values
        if self._periodic:
            result = np.zeros_like(source)
            for dx, dy in _NEIGHBOR_OFFSETS:
                result += np.roll(source, shift=(dx, dy), axis=(0, 1))
            result /= 9.0
        else:
            padded = np.pad(source, 1, mode="constant", constant_values=0.0)
            result = np.zeros_like(source)
            for dx, dy in _NEIGHBOR_OFFSETS:
                weight = self._kernel[dx + 1, dy + 1]
                result += weight * padded[1 + dx : 1 + dx + self._width, 1 + dy : 1 + dy + self._height]
        self._values = result

    def decay(self) -> None:
        self._values *= 1.0 - self._decay_fraction
        if self._max_concentration is not None:
            np.minimum(self._values, self._max_concentration, out=self._values)

    def update(self) -> None:
        self.diffuse()
        self.decay()

    def _check_initial(self, initial: np.ndarray | None) -> np.ndarray | None:
        if initial is None:
            return None
        array = np.array(initial, dtype=np.float64)
        if array.shape != (self._width, self._height):
            raise ConfigError(f"initial field shape {array.shape} does not match grid {(self._width, self._height)}")
        if np.any(array < 0.0):
            raise ConfigError("initial field concentrations must not be negative")
        return array

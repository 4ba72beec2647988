from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml


class ConfigError(ValueError):
    """Raised when a configuration cannot drive a simulation."""


class BoundaryMode(str, Enum):
    PERIODIC = "periodic"
    REFLECTIVE = "reflective"


class DomainUnits(str, Enum):
    NORMALIZED = "normalized"
    CELLS = "cells"


class DiffusionKernel(str, Enum):
    UNIFORM = "uniform"
    PEAKED = "peaked"


@dataclass(frozen=True)
class AgentConfig:
    sensor_count: int = 3
    sensor_angle: float = math.radians(45.0)
    sensor_offset: float = 38.0 / 300.0
    rotation_angle: float = math.radians(45.0)
    step_length: float = 1.0 / 300.0
    deposit_increment: float = 0.1
    random_rotation_noise: float = 0.0


@dataclass(frozen=True)
class TrailConfig:
    decay_fraction: float = 0.1
    diffusion_kernel: DiffusionKernel = DiffusionKernel.UNIFORM
    # None keeps the field unbounded above.
    max_concentration: Optional[float] = None


@dataclass(frozen=True)
class SimulationConfig:
    units: DomainUnits = DomainUnits.NORMALIZED
    domain_size: float = 1.0
    width: int = 300
    height: int = 300
    step_count: int = 10_000
    agent_count: int = 10_000
    boundary: BoundaryMode = BoundaryMode.PERIODIC
    export_interval: int = 0
    progress_interval: int = 100
    seed: int = 42
    config_version: str = "v1"
    agent: AgentConfig = field(default_factory=AgentConfig)
    trail: TrailConfig = field(default_factory=TrailConfig)

    @property
    def extent(self) -> tuple[float, float]:
        """Domain size along x and y in position units."""
        if self.units == DomainUnits.CELLS:
            return (float(self.width), float(self.height))
        return (self.domain_size, self.domain_size)

    @property
    def origin(self) -> tuple[float, float]:
        """Lower domain corner. Cell units center each cell on its integer index."""
        if self.units == DomainUnits.CELLS:
            return (-0.5, -0.5)
        return (0.0, 0.0)

    @property
    def periodic(self) -> bool:
        return self.boundary == BoundaryMode.PERIODIC

    def validate(self) -> "SimulationConfig":
        if self.width <= 0 or self.height <= 0:
            raise ConfigError(f"grid dimensions must be positive, got {self.width}x{self.height}")
        if self.units == DomainUnits.NORMALIZED and self.domain_size <= 0:
            raise ConfigError(f"domain_size must be positive, got {self.domain_size}")
        if self.step_count < 0:
            raise ConfigError(f"step_count must not be negative, got {self.step_count}")
        if self.agent_count <= 0:
            raise ConfigError(f"agent_count must be positive, got {self.agent_count}")
        if self.export_interval < 0:
            raise ConfigError(f"export_interval must not be negative, got {self.export_interval}")
        if self.progress_interval < 0:
            raise ConfigError(f"progress_interval must not be negative, got {self.progress_interval}")

        agent = self.agent
        if agent.sensor_count != 3:
            raise ConfigError(f"only three sensors (left, center, right) are supported, got {agent.sensor_count}")
        if agent.step_length <= 0:
            raise ConfigError(f"step_length must be positive, got {agent.step_length}")
        if agent.sensor_offset < 0:
            raise ConfigError(f"sensor_offset must not be negative, got {agent.sensor_offset}")
        if agent.random_rotation_noise < 0:
            raise ConfigError(f"random_rotation_noise must not be negative, got {agent.random_rotation_noise}")

        trail = self.trail
        if not 0.0 <= trail.decay_fraction < 1.0:
            raise ConfigError(f"decay_fraction must lie in [0, 1), got {trail.decay_fraction}")
        if trail.max_concentration is not None and trail.max_concentration <= 0:
            raise ConfigError(f"max_concentration must be positive when set, got {trail.max_concentration}")
        return self

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


_ANGLE_KEYS = ("sensor_angle", "rotation_angle", "random_rotation_noise")


def _known_keys(cls: type) -> set[str]:
    return {f.name for f in fields(cls)}


def _check_keys(section: str, raw: dict, allowed: set[str]) -> None:
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise ConfigError(f"unknown {section} option(s): {', '.join(unknown)}")


def _enum(kind: type[Enum], value: object, name: str) -> Enum:
    try:
        return kind(value)
    except ValueError:
        choices = ", ".join(member.value for member in kind)
        raise ConfigError(f"{name} must be one of {choices}, got {value!r}") from None


_NUMERIC_TYPES = {"int": int, "float": float, "Optional[float]": float}


def _coerce(section: str, cls: type, values: dict) -> dict:
    """Convert YAML scalars to the numeric types the dataclass declares."""
    types = {f.name: f.type for f in fields(cls)}
    for key, value in values.items():
        kind = _NUMERIC_TYPES.get(types.get(key))
        if kind is None or (value is None and types[key].startswith("Optional")):
            continue
        if isinstance(value, bool):
            raise ConfigError(f"{section} option {key} must be a number, got {value!r}")
        if kind is int and isinstance(value, int):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{section} option {key} must be a number, got {value!r}") from None
        if kind is int:
            if not number.is_integer():
                raise ConfigError(f"{section} option {key} must be an integer, got {value!r}")
            number = int(number)
        values[key] = number
    return values


def _agent_values(raw: dict) -> dict:
    values = dict(raw)
    for key in _ANGLE_KEYS:
        degrees_key = f"{key}_deg"
        if degrees_key in values:
            if key in values:
                raise ConfigError(f"give either {key} or {degrees_key}, not both")
            degrees = values.pop(degrees_key)
            try:
                values[key] = math.radians(float(degrees))
            except (TypeError, ValueError):
                raise ConfigError(f"agent option {degrees_key} must be a number, got {degrees!r}") from None
    return values


def load_config(raw: dict) -> SimulationConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"configuration must be a mapping, got {type(raw).__name__}")

    agent_raw = _agent_values(raw.get("agent") or {})
    _check_keys("agent", agent_raw, _known_keys(AgentConfig))
    agent = AgentConfig(**_coerce("agent", AgentConfig, agent_raw))

    trail_raw = dict(raw.get("trail") or {})
    _check_keys("trail", trail_raw, _known_keys(TrailConfig))
    if "diffusion_kernel" in trail_raw:
        trail_raw["diffusion_kernel"] = _enum(DiffusionKernel, trail_raw["diffusion_kernel"], "diffusion_kernel")
    trail = TrailConfig(**_coerce("trail", TrailConfig, trail_raw))

    sim_values = {k: v for k, v in raw.items() if k not in {"agent", "trail"}}
    _check_keys("simulation", sim_values, _known_keys(SimulationConfig) - {"agent", "trail"})
    if "units" in sim_values:
        sim_values["units"] = _enum(DomainUnits, sim_values["units"], "units")
    if "boundary" in sim_values:
        sim_values["boundary"] = _enum(BoundaryMode, sim_values["boundary"], "boundary")
    _coerce("simulation", SimulationConfig, sim_values)
    return SimulationConfig(agent=agent, trail=trail, **sim_values).validate()

from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from dataclasses import replace
from pathlib import Path
from typing import Optional

from ..config import ConfigError, SimulationConfig
from ..sim.core.world import World
from ..sim.types.metrics import StepMetrics

logger = logging.getLogger(__name__)

_HEADER = [
    "step",
    "agents",
    "total_mass",
    "max_concentration",
    "reflections",
    "deposited_cells",
    "step_ms",
]


def _format_row(metrics: StepMetrics, step_ms: float) -> list[object]:
    return [
        metrics.step,
        metrics.agents,
        f"{metrics.total_mass:.6f}",
        f"{metrics.max_concentration:.6f}",
        metrics.reflections,
        metrics.deposited_cells,
        f"{step_ms:.3f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p95": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p95": _percentile(sorted_values, 0.95),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: Optional[int],
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    config: Optional[SimulationConfig] = None,
    summary_path: Optional[Path] = None,
    summary_window: int = 5000,
) -> World:
    config = config or SimulationConfig()
    if seed is not None:
        config = replace(config, seed=seed)
    world = World(config)
    total_steps = config.step_count if steps is None else steps

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_HEADER)

    step_ms_series: list[float] = []
    mass_series: list[float] = []
    peak_series: list[float] = []
    reflection_series: list[float] = []
    max_peak = (-1.0, -1)

    try:
        for _ in range(total_steps):
            metrics = world.step()
            step_ms = 0.0 if deterministic_log else metrics.step_duration_ms

            if summary_path:
                step_ms_series.append(step_ms)
                mass_series.append(metrics.total_mass)
                peak_series.append(metrics.max_concentration)
                reflection_series.append(float(metrics.reflections))
                if metrics.max_concentration > max_peak[0]:
                    max_peak = (metrics.max_concentration, metrics.step)

            if writer:
                writer.writerow(_format_row(metrics, step_ms))
    finally:
        if csv_file:
            csv_file.close()

    if summary_path:
        window = max(1, int(summary_window))
        tail_slice = slice(max(0, len(mass_series) - window), len(mass_series))
        summary = {
            "steps": total_steps,
            "seed": config.seed,
            "agents": config.agent_count,
            "grid": [config.width, config.height],
            "boundary": config.boundary.value,
            "deterministic_log": deterministic_log,
            "step_ms": _summary_stats(step_ms_series),
            "total_mass": _summary_stats(mass_series),
            "max_concentration": _summary_stats(peak_series),
            "reflections": _summary_stats(reflection_series),
            "peaks": {
                "max_concentration": {"value": float(max_peak[0]), "step": max_peak[1]},
            },
            "tail_window": {
                "window": window,
                "step_ms": _summary_stats(step_ms_series[tail_slice]),
                "total_mass": _summary_stats(mass_series[tail_slice]),
                "max_concentration": _summary_stats(peak_series[tail_slice]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
        logger.info("summary written to %s", summary_path)

    return world


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Headless physarum trail simulation")
    parser.add_argument("--config", type=Path, default=None, help="YAML file with simulation parameters")
    parser.add_argument("--steps", type=int, default=None, help="Override the configured step count")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write per-step metrics")
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=5000,
        help="Tail window size (steps) for summary stats.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (step_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.steps is not None and args.steps < 0:
        parser.error("--steps must not be negative")
    try:
        config = SimulationConfig.from_yaml(args.config) if args.config else SimulationConfig()
        run_headless(
            args.steps,
            args.seed,
            args.log,
            deterministic_log=args.deterministic_log,
            config=config,
            summary_path=args.summary,
            summary_window=args.summary_window,
        )
    except ConfigError as exc:
        parser.error(str(exc))


if __name__ == "__main__":
    main()

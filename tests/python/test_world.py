from __future__ import annotations

import math
from dataclasses import replace

import numpy as np
import pytest
from pytest import approx

from physarum.config import AgentConfig, BoundaryMode, DiffusionKernel, DomainUnits, SimulationConfig, TrailConfig
from physarum.rng import DeterministicRng
from physarum.sim.core.world import World


def _scenario_config(**overrides) -> SimulationConfig:
    config = SimulationConfig(
        units=DomainUnits.CELLS,
        width=10,
        height=10,
        agent_count=1,
        step_count=1,
        seed=17,
        agent=AgentConfig(sensor_offset=2.0, step_length=1.0, deposit_increment=1.0),
        trail=TrailConfig(decay_fraction=0.5),
    )
    return replace(config, **overrides)


def run_steps(config: SimulationConfig, steps: int):
    world = World(config)
    history = []
    for _ in range(steps):
        metrics = world.step()
        history.append((metrics.step, round(metrics.total_mass, 10), round(metrics.max_concentration, 10)))
    positions = [(agent.position.x, agent.position.y, agent.heading) for agent in world.agents]
    return history, positions, world.field.copy()


def test_single_agent_first_step_spreads_one_ninth_then_halves():
    world = World(_scenario_config())

    metrics = world.step()

    agent = world.agents[0]
    cx, cy = world.field.cell_key(agent.position.x, agent.position.y)
    expected = np.zeros((10, 10))
    for dx in (-1, 0, 1):
        for dy in (-1, 0, 1):
            expected[(cx + dx) % 10, (cy + dy) % 10] = 1.0 / 9.0 * 0.5
    np.testing.assert_allclose(world.field.values, expected, atol=1e-15)
    assert agent.sensed == (0.0, 0.0, 0.0)
    assert metrics.step == 0
    assert metrics.deposited_cells == 1
    assert metrics.total_mass == approx(0.5)


def test_mass_scales_by_decay_without_deposits():
    config = _scenario_config(
        width=16,
        height=12,
        agent_count=20,
        agent=AgentConfig(sensor_offset=2.0, step_length=1.0, deposit_increment=0.0),
        trail=TrailConfig(decay_fraction=0.2),
    )
    world = World(config, initial_field=np.random.default_rng(1).random((16, 12)))

    for _ in range(5):
        before = world.field.total()
        world.step()
        assert world.field.total() == approx(before * 0.8, rel=1e-12)


def test_same_seed_reproduces_run():
    config = _scenario_config(width=24, height=24, agent_count=30)
    assert run_steps(config, 25)[:2] == run_steps(replace(config), 25)[:2]
    np.testing.assert_array_equal(run_steps(config, 25)[2], run_steps(config, 25)[2])


def test_different_seed_changes_run():
    config = _scenario_config(width=24, height=24, agent_count=30)
    assert run_steps(config, 5)[1] != run_steps(replace(config, seed=18), 5)[1]


def test_injected_rng_is_used_and_reset():
    config = _scenario_config(width=24, height=24, agent_count=10)
    rng = DeterministicRng(99)
    world = World(config, rng=rng)
    start = [(a.position.x, a.position.y) for a in world.agents]

    world.run(3)
    assert world.steps_taken == 3

    world.reset()
    assert world.steps_taken == 0
    assert world.metrics is None
    assert world.field.total() == 0.0
    assert [(a.position.x, a.position.y) for a in world.agents] == start
    assert world.snapshot().metadata.seed == 99


def test_exporter_receives_settled_read_only_copies_on_cadence():
    config = _scenario_config(width=12, height=12, agent_count=6, export_interval=3)
    world = World(config)
    exported = []

    def exporter(values: np.ndarray, step: int) -> None:
        assert not values.flags.writeable
        np.testing.assert_array_equal(values, world.field.values)
        exported.append((step, values))

    world.add_exporter(exporter)
    world.run(7)

    assert [step for step, _ in exported] == [0, 3, 6]
    assert exported[0][1] is not exported[1][1]
    assert exported[0][1].sum() == approx(6 * 0.5)


def test_export_disabled_by_default():
    world = World(_scenario_config())
    calls = []
    world.add_exporter(lambda values, step: calls.append(step))
    world.run(4)
    assert calls == []


def test_remove_exporter_stops_delivery():
    world = World(_scenario_config(export_interval=1))
    calls = []

    def exporter(values, step):
        calls.append(step)

    world.add_exporter(exporter)
    world.step()
    world.remove_exporter(exporter)
    world.step()
    assert calls == [0]


def test_run_defaults_to_configured_step_count():
    world = World(_scenario_config(step_count=4))
    seen = []
    final = world.run(on_step=lambda metrics: seen.append(metrics.step))
    assert seen == [0, 1, 2, 3]
    assert final is world.metrics


def test_snapshot_reflects_field_without_sharing_memory():
    world = World(_scenario_config(width=8, height=6, agent_count=3))
    world.step()

    snapshot = world.snapshot()
    snapshot.values[:] = 100.0

    assert snapshot.step == 1
    assert (snapshot.width, snapshot.height) == (8, 6)
    assert snapshot.metadata.units == "cells"
    assert snapshot.metadata.boundary == "periodic"
    assert snapshot.metadata.extent == (8.0, 6.0)
    assert snapshot.metadata.origin == (-0.5, -0.5)
    assert world.field.total() == approx(3 * 0.5)
    assert len(snapshot.to_payload()["values"]) == 8


def test_reflective_agents_stay_near_domain():
    config = _scenario_config(
        width=20,
        height=20,
        agent_count=50,
        boundary=BoundaryMode.REFLECTIVE,
        agent=AgentConfig(
            sensor_angle=math.pi / 4,
            sensor_offset=3.0,
            rotation_angle=math.pi / 4,
            step_length=1.0,
            deposit_increment=1.0,
        ),
        trail=TrailConfig(decay_fraction=0.1),
    )
    world = World(config)
    total_reflections = 0
    for _ in range(60):
        total_reflections += world.step().reflections
        for agent in world.agents:
            assert -2.0 <= agent.position.x <= 22.0
            assert -2.0 <= agent.position.y <= 22.0
    assert total_reflections > 0


def test_normalized_domain_run_keeps_agents_in_unit_square():
    config = SimulationConfig(width=50, height=50, agent_count=40, seed=3)
    world = World(config)
    world.run(20)
    for agent in world.agents:
        assert 0.0 <= agent.position.x < 1.0
        assert 0.0 <= agent.position.y < 1.0
    assert world.field.total() > 0.0


def test_invalid_config_fails_before_running():
    with pytest.raises(ValueError):
        World(_scenario_config(agent_count=0))


@pytest.mark.slow
def test_long_run_forms_concentrated_network():
    config = SimulationConfig(width=100, height=100, agent_count=2000, seed=5)
    world = World(config)
    world.run(400)

    values = world.field.values
    # Aggregation concentrates trail well above the mean.
    assert values.max() > 5 * values.mean()


def test_reflective_world_diffuses_with_peaked_kernel():
    config = _scenario_config(
        width=5,
        height=5,
        boundary=BoundaryMode.REFLECTIVE,
        agent=AgentConfig(sensor_offset=1.0, step_length=0.1, deposit_increment=0.0),
        trail=TrailConfig(decay_fraction=0.0, diffusion_kernel=DiffusionKernel.PEAKED),
    )
    initial = np.zeros((5, 5))
    initial[2, 2] = 36.0
    world = World(config, initial_field=initial)

    metrics = world.step()

    values = world.field.values
    assert values[2, 2] == approx(24.0)
    assert values[1, 2] == approx(2.0)
    assert values[2, 3] == approx(2.0)
    assert values[1, 1] == approx(1.0)
    assert values[3, 3] == approx(1.0)
    assert values[0, 0] == 0.0
    assert metrics.total_mass == approx(36.0)
    assert metrics.max_concentration == approx(24.0)


def test_reflective_world_peaked_kernel_loses_mass_at_edges():
    config = _scenario_config(
        width=5,
        height=5,
        boundary=BoundaryMode.REFLECTIVE,
        agent=AgentConfig(sensor_offset=1.0, step_length=0.1, deposit_increment=0.0),
        trail=TrailConfig(decay_fraction=0.0, diffusion_kernel=DiffusionKernel.PEAKED),
    )
    initial = np.zeros((5, 5))
    initial[0, 0] = 36.0
    world = World(config, initial_field=initial)

    world.step()

    # Only the in-grid quarter of the kernel survives the zero padding.
    assert world.field.total() == approx(36.0 * (2 / 3 + 2 / 18 + 1 / 36))
    assert world.field.values[0, 0] == approx(24.0)

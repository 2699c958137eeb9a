#!/usr/bin/env python3
"""
Test Suite for Directional Radar Detection

Tests cover:
1. Shortest-arc angle differences and the beam gate (edges, wraparound)
2. DetectionGate insertion, overwrite and timestamp monotonicity
3. Afterimage persistence, opacity and the purge pass
4. Read-only snapshots
"""

import numpy as np
import pytest

from gunnery.config import SensorConfig
from gunnery.physics import Vector3D
from gunnery.sensors import (
    DetectionGate,
    afterimage_opacity,
    angular_difference,
    is_within_beam,
)
from gunnery.targeting import Target, TargetClass, observe


def observation_at(position, target_id="t1", target_class=TargetClass.MOVING_FAST,
                   velocity=Vector3D(0.0, 0.0, 0.0)):
    target = Target(target_id, target_class, position, velocity)
    return observe(target, Vector3D.zero(), 20000.0)


# =============================================================================
# BEAM GATE
# =============================================================================

class TestAngularDifference:

    @pytest.mark.parametrize(
        "a,b,expected",
        [(10.0, 20.0, 10.0), (350.0, 10.0, 20.0), (0.0, 180.0, 180.0), (-30.0, 30.0, 60.0), (720.0, 0.0, 0.0)],
        ids=["simple", "wraparound", "opposite", "negative", "multiple-turns"],
    )
    def test_shortest_arc(self, a, b, expected):
        assert angular_difference(a, b) == pytest.approx(expected)


class TestIsWithinBeam:

    @pytest.mark.parametrize(
        "bearing,elevation,expected",
        [
            (0.0, 0.0, True),
            (2.5, 0.0, True),
            (2.6, 0.0, False),
            (0.0, -2.5, True),
            (0.0, 2.6, False),
            (358.0, 1.0, True),
        ],
        ids=["center", "azimuth-edge", "azimuth-outside", "elevation-edge", "elevation-outside", "north-wrap"],
    )
    def test_five_degree_beam(self, bearing, elevation, expected):
        assert is_within_beam(bearing, elevation, 0.0, 0.0, 5.0) is expected

    def test_zero_width_only_exact_match(self):
        assert is_within_beam(45.0, 10.0, 45.0, 10.0, 0.0)
        assert not is_within_beam(45.1, 10.0, 45.0, 10.0, 0.0)

    def test_wraparound_across_north(self):
        assert is_within_beam(359.0, 0.0, 1.0, 0.0, 10.0)
        assert is_within_beam(1.0, 0.0, 359.0, 0.0, 10.0)

    def test_own_direction_always_in_beam_randomized(self):
        rng = np.random.default_rng(1234)
        bearings = rng.uniform(-720.0, 720.0, size=200)
        elevations = rng.uniform(-90.0, 90.0, size=200)
        widths = rng.uniform(0.0, 30.0, size=200)

        for bearing, elevation, width in zip(bearings, elevations, widths):
            assert is_within_beam(float(bearing), float(elevation), float(bearing), float(elevation), float(width))

    def test_gate_is_symmetric_randomized(self):
        rng = np.random.default_rng(99)
        angles = rng.uniform(0.0, 360.0, size=(200, 2))
        elevations = rng.uniform(-20.0, 20.0, size=(200, 2))
        widths = rng.uniform(0.0, 20.0, size=200)

        for (b1, b2), (e1, e2), width in zip(angles, elevations, widths):
            forward = is_within_beam(float(b1), float(e1), float(b2), float(e2), float(width))
            backward = is_within_beam(float(b2), float(e2), float(b1), float(e1), float(width))
            assert forward is backward

    def test_negative_width_raises(self):
        with pytest.raises(ValueError):
            is_within_beam(0.0, 0.0, 0.0, 0.0, -1.0)


# =============================================================================
# DETECTION GATE
# =============================================================================

class TestDetectionGate:

    @pytest.fixture
    def gate(self):
        return DetectionGate(SensorConfig())

    def test_records_observation_in_beam(self, gate):
        obs = observation_at(Vector3D(0.0, 5000.0, 0.0))
        assert gate.update(obs, 0.0, 0.0, 100.0)
        record = gate.get("t1")
        assert record is not None
        assert record.timestamp_ms == 100.0
        assert record.range_m == pytest.approx(5000.0)
        assert record.target_class is TargetClass.MOVING_FAST
        assert "t1" in gate
        assert len(gate) == 1

    def test_ignores_observation_outside_beam(self, gate):
        obs = observation_at(Vector3D(5000.0, 0.0, 0.0))
        assert not gate.update(obs, 0.0, 0.0, 100.0)
        assert gate.get("t1") is None

    def test_outside_beam_leaves_existing_record(self, gate):
        obs = observation_at(Vector3D(0.0, 5000.0, 0.0))
        gate.update(obs, 0.0, 0.0, 100.0)
        gate.update(obs, 90.0, 0.0, 200.0)
        assert gate.get("t1").timestamp_ms == 100.0

    def test_ignores_weak_returns(self, gate):
        # Static target near maximum range: strength below the 0.1 floor
        obs = observation_at(Vector3D(0.0, 19000.0, 0.0), target_class=TargetClass.STATIC)
        assert obs.strength < 0.1
        assert not gate.update(obs, 0.0, 0.0, 0.0)

    def test_ignores_out_of_range(self):
        gate = DetectionGate(SensorConfig(max_range_m=3000.0))
        obs = observation_at(Vector3D(0.0, 5000.0, 0.0))
        assert not gate.update(obs, 0.0, 0.0, 0.0)

    def test_overwrite_keeps_one_record_per_target(self, gate):
        gate.update(observation_at(Vector3D(0.0, 5000.0, 0.0)), 0.0, 0.0, 100.0)
        gate.update(observation_at(Vector3D(10.0, 5100.0, 0.0)), 0.0, 0.0, 200.0)
        assert len(gate) == 1
        assert gate.get("t1").timestamp_ms == 200.0
        assert gate.get("t1").position == Vector3D(10.0, 5100.0, 0.0)

    def test_timestamp_never_moves_backwards(self, gate):
        obs = observation_at(Vector3D(0.0, 5000.0, 0.0))
        gate.update(obs, 0.0, 0.0, 1000.0)
        gate.update(obs, 0.0, 0.0, 500.0)
        assert gate.get("t1").timestamp_ms == 1000.0

    def test_iteration_yields_records(self, gate):
        gate.update(observation_at(Vector3D(0.0, 5000.0, 0.0), "a"), 0.0, 0.0, 0.0)
        gate.update(observation_at(Vector3D(0.0, 6000.0, 0.0), "b"), 0.0, 0.0, 0.0)
        assert sorted(r.target_id for r in gate) == ["a", "b"]


class TestPersistence:

    @pytest.fixture
    def gate(self):
        gate = DetectionGate(SensorConfig(persistence_ms=2500.0))
        gate.update(observation_at(Vector3D(0.0, 5000.0, 0.0)), 0.0, 0.0, 1000.0)
        return gate

    def test_visible_through_persistence_window(self, gate):
        assert gate.is_visible("t1", 1000.0)
        assert gate.is_visible("t1", 3500.0)
        assert not gate.is_visible("t1", 3501.0)

    def test_afterimage_lifetime(self, gate):
        # Detected at t0 = 1000 ms with a 2500 ms window
        assert [v.target_id for v in gate.currently_visible(1000.0 + 2000.0)] == ["t1"]
        assert gate.currently_visible(1000.0 + 3000.0) == []

    def test_unknown_target_not_visible(self, gate):
        assert not gate.is_visible("nope", 1000.0)

    def test_currently_visible_is_side_effect_free(self, gate):
        assert gate.currently_visible(10000.0) == []
        assert len(gate) == 1

    def test_currently_visible_reports_age_and_opacity(self, gate):
        visible = gate.currently_visible(2250.0)
        assert len(visible) == 1
        assert visible[0].target_id == "t1"
        assert visible[0].age_ms == pytest.approx(1250.0)
        strength = gate.get("t1").strength
        assert visible[0].opacity == pytest.approx(0.5 * (0.3 + 0.7 * strength))

    def test_purge_removes_expired(self, gate):
        assert gate.purge(3500.0) == []
        assert gate.purge(3600.0) == ["t1"]
        assert len(gate) == 0

    def test_redetection_restarts_window(self, gate):
        gate.update(observation_at(Vector3D(0.0, 5000.0, 0.0)), 0.0, 0.0, 3000.0)
        assert gate.is_visible("t1", 5000.0)
        assert gate.purge(5000.0) == []

    def test_forget(self, gate):
        gate.forget("t1")
        gate.forget("t1")
        assert gate.get("t1") is None

    def test_clear(self, gate):
        gate.clear()
        assert len(gate) == 0


class TestAfterimageOpacity:

    @pytest.mark.parametrize(
        "age,strength,expected",
        [(0.0, 1.0, 1.0), (0.0, 0.0, 0.3), (1250.0, 1.0, 0.5), (2500.0, 1.0, 0.0), (5000.0, 1.0, 0.0)],
        ids=["fresh-strong", "fresh-weak", "half-faded", "fully-faded", "past-window"],
    )
    def test_fade(self, age, strength, expected):
        assert afterimage_opacity(age, 2500.0, strength) == pytest.approx(expected)


class TestSnapshot:

    def test_snapshot_is_read_only_copy(self):
        gate = DetectionGate()
        gate.update(observation_at(Vector3D(0.0, 5000.0, 0.0)), 0.0, 0.0, 0.0)
        snapshot = gate.snapshot()

        with pytest.raises(TypeError):
            snapshot["t2"] = snapshot["t1"]

        gate.forget("t1")
        assert "t1" in snapshot

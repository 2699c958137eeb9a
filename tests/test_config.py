#!/usr/bin/env python3
"""
Test Suite for Configuration

Tests cover:
1. Default values of every configuration group
2. Validation errors
3. Loading from dictionaries, JSON files and GUNNERY_* environment variables
"""

import json

import pytest

from gunnery.config import (
    BallisticConstants,
    ConfigurationError,
    GunneryConfig,
    GunneryError,
    SensorConfig,
    SolverConfig,
)
from gunnery.physics import Vector3D


class TestDefaults:

    def test_ballistic_constants(self):
        c = BallisticConstants()
        assert c.mass_kg == 43.5
        assert c.area_m2 == 0.0189
        assert c.drag_coefficient == 0.295
        assert c.muzzle_velocity_ms == 827.0
        assert c.gravity_ms2 == 9.81
        assert c.gravity_direction == Vector3D(0.0, 0.0, -1.0)
        assert c.air_density == 1.225
        assert c.timestep_s == pytest.approx(1.0 / 60.0)
        assert c.max_lifetime_s == 60.0
        assert c.max_range_m == 20000.0
        assert c.earth_angular_velocity == Vector3D(0.0, 0.0, 7.2921159e-5)
        assert not c.coriolis_enabled

    def test_sensor_config(self):
        s = SensorConfig()
        assert s.beam_width_deg == 5.0
        assert s.persistence_ms == 2500.0
        assert s.max_range_m == 20000.0

    def test_solver_config(self):
        s = SolverConfig()
        assert s.max_iterations == 20
        assert s.flight_time_epsilon_s == 0.01
        assert (s.high_accuracy_m, s.high_max_iterations) == (5.0, 8)
        assert (s.medium_accuracy_m, s.medium_max_iterations) == (15.0, 12)

    def test_drag_factor(self):
        c = BallisticConstants()
        assert c.drag_factor == pytest.approx(0.5 * 1.225 * 0.295 * 0.0189 / 43.5)
        assert c.without_drag().drag_factor == 0.0

    def test_overrides_return_copies(self):
        c = BallisticConstants()
        faster = c.with_overrides(muzzle_velocity_ms=900.0)
        assert faster.muzzle_velocity_ms == 900.0
        assert c.muzzle_velocity_ms == 827.0


class TestValidation:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"mass_kg": 0.0},
            {"muzzle_velocity_ms": -1.0},
            {"timestep_s": 0.0},
            {"drag_coefficient": -0.1},
            {"air_density": -1.0},
        ],
        ids=["zero-mass", "negative-velocity", "zero-timestep", "negative-cd", "negative-density"],
    )
    def test_invalid_ballistics(self, overrides):
        with pytest.raises(ConfigurationError):
            BallisticConstants(**overrides)

    def test_configuration_error_hierarchy(self):
        with pytest.raises(ValueError):
            SensorConfig(beam_width_deg=-5.0)
        assert issubclass(ConfigurationError, GunneryError)

    def test_invalid_solver(self):
        with pytest.raises(ConfigurationError):
            SolverConfig(max_iterations=0)
        with pytest.raises(ConfigurationError):
            SolverConfig(min_elevation_deg=50.0, max_elevation_deg=40.0)


class TestFromDict:

    def test_partial_sections_keep_defaults(self):
        config = GunneryConfig.from_dict({"sensor": {"beam_width_deg": 3.0}})
        assert config.sensor.beam_width_deg == 3.0
        assert config.sensor.persistence_ms == 2500.0
        assert config.ballistics == BallisticConstants()

    def test_vector_fields_from_lists(self):
        config = GunneryConfig.from_dict({"ballistics": {"gravity_direction": [0, 0, -2]}})
        assert config.ballistics.gravity_direction == Vector3D(0.0, 0.0, -2.0)

    def test_unknown_section(self):
        with pytest.raises(ConfigurationError):
            GunneryConfig.from_dict({"radar": {}})

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError):
            GunneryConfig.from_dict({"solver": {"max_iters": 5}})

    def test_bad_vector(self):
        with pytest.raises(ConfigurationError):
            GunneryConfig.from_dict({"ballistics": {"gravity_direction": [0, -1]}})
        with pytest.raises(ConfigurationError):
            GunneryConfig.from_dict({"ballistics": {"gravity_direction": ["a", 0, -1]}})


    @pytest.mark.parametrize(
        "section,key,value",
        [
            ("sensor", "min_signal_strength", "high"),
            ("sensor", "stale_record_ms", None),
            ("sensor", "min_reliable_strength", [0.2]),
            ("solver", "high_accuracy_m", "5"),
            ("solver", "aim_tolerance_m", True),
            ("solver", "max_aim_iterations", 40.5),
            ("solver", "medium_max_iterations", "12"),
            ("ballistics", "coriolis_enabled", "yes"),
            ("ballistics", "ground_level_m", {"z": 0}),
            ("ballistics", "earth_angular_velocity", 7.29e-5),
        ],
        ids=[
            "string-float", "null-float", "list-float", "numeric-string", "bool-as-float",
            "float-as-int", "string-int", "string-bool", "object-float", "scalar-vector",
        ],
    )
    def test_wrong_value_types(self, section, key, value):
        with pytest.raises(ConfigurationError):
            GunneryConfig.from_dict({section: {key: value}})

    def test_integers_accepted_for_floats(self):
        config = GunneryConfig.from_dict({"sensor": {"stale_record_ms": 800}})
        assert config.sensor.stale_record_ms == 800.0
        assert isinstance(config.sensor.stale_record_ms, float)

    def test_section_must_be_object(self):
        with pytest.raises(ConfigurationError):
            GunneryConfig.from_dict({"solver": [1, 2]})


class TestFromJson:

    def test_load(self, tmp_path):
        path = tmp_path / "gunnery.json"
        path.write_text(json.dumps({
            "ballistics": {"muzzle_velocity_ms": 700.0, "coriolis_enabled": True},
            "solver": {"max_iterations": 10},
        }))
        config = GunneryConfig.from_json(path)
        assert config.ballistics.muzzle_velocity_ms == 700.0
        assert config.ballistics.coriolis_enabled
        assert config.solver.max_iterations == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            GunneryConfig.from_json(tmp_path / "missing.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            GunneryConfig.from_json(path)

    def test_root_must_be_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(ConfigurationError):
            GunneryConfig.from_json(path)


class TestFromEnv:

    def test_defaults_without_variables(self, clean_env, tmp_path):
        config = GunneryConfig.from_env(tmp_path / "absent.env")
        assert config == GunneryConfig()

    def test_reads_variables(self, clean_env, tmp_path):
        clean_env.setenv("GUNNERY_MUZZLE_VELOCITY", "900")
        clean_env.setenv("GUNNERY_CORIOLIS", "yes")
        clean_env.setenv("GUNNERY_BEAM_WIDTH_DEG", "2.5")
        clean_env.setenv("GUNNERY_MAX_ITERATIONS", "15")

        config = GunneryConfig.from_env(tmp_path / "absent.env")
        assert config.ballistics.muzzle_velocity_ms == 900.0
        assert config.ballistics.coriolis_enabled
        assert config.sensor.beam_width_deg == 2.5
        assert config.solver.max_iterations == 15

    def test_reads_dotenv_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("GUNNERY_PERSISTENCE_MS=4000\nGUNNERY_DRAG_COEFFICIENT=0.3\n")

        config = GunneryConfig.from_env(env_file)
        assert config.sensor.persistence_ms == 4000.0
        assert config.ballistics.drag_coefficient == 0.3

    def test_environment_wins_over_dotenv(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("GUNNERY_PERSISTENCE_MS=4000\n")
        clean_env.setenv("GUNNERY_PERSISTENCE_MS", "1500")

        assert GunneryConfig.from_env(env_file).sensor.persistence_ms == 1500.0

    @pytest.mark.parametrize(
        "var,value",
        [
            ("GUNNERY_MUZZLE_VELOCITY", "fast"),
            ("GUNNERY_CORIOLIS", "maybe"),
            ("GUNNERY_MAX_ITERATIONS", "2.5"),
        ],
        ids=["bad-number", "bad-bool", "bad-int"],
    )
    def test_malformed_values(self, clean_env, tmp_path, var, value):
        clean_env.setenv(var, value)
        with pytest.raises(ConfigurationError):
            GunneryConfig.from_env(tmp_path / "absent.env")

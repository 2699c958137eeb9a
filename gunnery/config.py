"""
Configuration for the gunnery fire-control core.

Three groups of named constants, each set once at startup and read-only
afterwards:
- BallisticConstants: projectile, environment and integration parameters
- SensorConfig: beam gate and afterimage persistence
- SolverConfig: lead-angle solver iteration caps and confidence thresholds

Values come from the defaults below, a JSON file (``GunneryConfig.from_json``)
or ``GUNNERY_*`` environment variables (``GunneryConfig.from_env``, which
also reads a ``.env`` file when present).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .physics import (
    AIR_DENSITY_SEA_LEVEL,
    EARTH_ROTATION_RATE,
    G_STANDARD,
    MUZZLE_VELOCITY_MS,
    PROJECTILE_AREA_M2,
    PROJECTILE_DIAMETER_M,
    PROJECTILE_DRAG_COEFFICIENT,
    PROJECTILE_MASS_KG,
    Vector3D,
)


# =============================================================================
# DEFAULTS
# =============================================================================

PHYSICS_TIMESTEP_S = 1.0 / 60.0
MAX_PROJECTILE_LIFETIME_S = 60.0
GROUND_LEVEL_M = 0.0
MAX_RADAR_RANGE_M = 20_000.0

DEFAULT_BEAM_WIDTH_DEG = 5.0
PERSISTENCE_DURATION_MS = 2500.0


class GunneryError(Exception):
    """Base class for errors raised by the gunnery package."""


class ConfigurationError(GunneryError, ValueError):
    """Invalid or unreadable configuration."""


# =============================================================================
# CONFIGURATION GROUPS
# =============================================================================

@dataclass(frozen=True)
class BallisticConstants:
    """
    Projectile and environment parameters for the integrator.

    Attributes:
        mass_kg: Projectile mass
        diameter_m: Projectile caliber
        area_m2: Drag reference area
        drag_coefficient: Dimensionless Cd
        muzzle_velocity_ms: Launch speed relative to the gun
        gravity_ms2: Gravity magnitude
        gravity_direction: Gravity direction (normalized when used)
        air_density: Air density at the gun site
        timestep_s: Fixed integration step
        max_lifetime_s: Projectile expires after this flight time
        ground_level_m: Altitude at which a shell is grounded
        max_range_m: Horizontal distance at which a shell leaves sensor coverage
        earth_angular_velocity: Frame rotation vector for Coriolis (rad/s)
        coriolis_enabled: Include Coriolis force in the net force
    """
    mass_kg: float = PROJECTILE_MASS_KG
    diameter_m: float = PROJECTILE_DIAMETER_M
    area_m2: float = PROJECTILE_AREA_M2
    drag_coefficient: float = PROJECTILE_DRAG_COEFFICIENT
    muzzle_velocity_ms: float = MUZZLE_VELOCITY_MS
    gravity_ms2: float = G_STANDARD
    gravity_direction: Vector3D = field(default_factory=Vector3D.down)
    air_density: float = AIR_DENSITY_SEA_LEVEL
    timestep_s: float = PHYSICS_TIMESTEP_S
    max_lifetime_s: float = MAX_PROJECTILE_LIFETIME_S
    ground_level_m: float = GROUND_LEVEL_M
    max_range_m: float = MAX_RADAR_RANGE_M
    earth_angular_velocity: Vector3D = field(
        default_factory=lambda: Vector3D(0.0, 0.0, EARTH_ROTATION_RATE)
    )
    coriolis_enabled: bool = False

    def __post_init__(self) -> None:
        for name in ("mass_kg", "muzzle_velocity_ms", "timestep_s", "max_lifetime_s"):
            if not getattr(self, name) > 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("drag_coefficient", "area_m2", "air_density", "gravity_ms2", "max_range_m"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {getattr(self, name)}")

    @property
    def drag_factor(self) -> float:
        """k in a_drag = -k |v| v (1/m)."""
        return 0.5 * self.air_density * self.drag_coefficient * self.area_m2 / self.mass_kg

    def without_drag(self) -> BallisticConstants:
        """Copy of these constants in vacuum (Cd = 0)."""
        return replace(self, drag_coefficient=0.0)

    def with_overrides(self, **overrides: Any) -> BallisticConstants:
        """Copy with selected fields replaced."""
        return replace(self, **overrides)


@dataclass(frozen=True)
class SensorConfig:
    """
    Directional radar parameters.

    Attributes:
        beam_width_deg: Full beam width, applied to azimuth and elevation
        persistence_ms: Afterimage lifetime of a detection
        max_range_m: Targets beyond this range are never gated in
        min_signal_strength: Weaker returns are ignored
        stale_record_ms: Older records make a solution untrustworthy
        min_reliable_strength: Weaker records make a solution untrustworthy
    """
    beam_width_deg: float = DEFAULT_BEAM_WIDTH_DEG
    persistence_ms: float = PERSISTENCE_DURATION_MS
    max_range_m: float = MAX_RADAR_RANGE_M
    min_signal_strength: float = 0.1
    stale_record_ms: float = 1000.0
    min_reliable_strength: float = 0.2

    def __post_init__(self) -> None:
        if self.beam_width_deg < 0:
            raise ConfigurationError("beam_width_deg must be non-negative")
        if not self.persistence_ms > 0:
            raise ConfigurationError("persistence_ms must be positive")


@dataclass(frozen=True)
class SolverConfig:
    """
    Intercept solver iteration limits and confidence thresholds.

    Attributes:
        max_iterations: Cap on flight-time fixed-point iterations
        flight_time_epsilon_s: Convergence threshold on successive flight times
        min_elevation_deg: Lowest gun elevation
        max_elevation_deg: Highest gun elevation
        max_engagement_range_m: Farther targets get an unconverged result
        min_engagement_range_m: Closer targets are degenerate
        high_accuracy_m: Residual below this (with few iterations) is HIGH
        high_max_iterations: Iteration limit for HIGH
        medium_accuracy_m: Residual below this (with moderate iterations) is MEDIUM
        medium_max_iterations: Iteration limit for MEDIUM
        aim_tolerance_m: Altitude error accepted by the elevation search
        max_aim_iterations: Cap on elevation search evaluations
        time_of_flight_tolerance_m: Closest-approach window for time of flight
    """
    max_iterations: int = 20
    flight_time_epsilon_s: float = 0.01
    min_elevation_deg: float = -10.0
    max_elevation_deg: float = 85.0
    max_engagement_range_m: float = MAX_RADAR_RANGE_M
    min_engagement_range_m: float = 1.0
    high_accuracy_m: float = 5.0
    high_max_iterations: int = 8
    medium_accuracy_m: float = 15.0
    medium_max_iterations: int = 12
    aim_tolerance_m: float = 0.05
    max_aim_iterations: int = 40
    time_of_flight_tolerance_m: float = 25.0

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1")
        if not self.flight_time_epsilon_s > 0:
            raise ConfigurationError("flight_time_epsilon_s must be positive")
        if self.min_elevation_deg >= self.max_elevation_deg:
            raise ConfigurationError("min_elevation_deg must be below max_elevation_deg")


@dataclass(frozen=True)
class GunneryConfig:
    """Complete static configuration for one simulator instance."""
    ballistics: BallisticConstants = field(default_factory=BallisticConstants)
    sensor: SensorConfig = field(default_factory=SensorConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GunneryConfig:
        """
        Build a configuration from nested dictionaries.

        Vector fields accept ``[x, y, z]`` lists. Missing keys keep defaults.

        Raises:
            ConfigurationError: On unknown sections, unknown keys or bad values.
        """
        unknown = set(data) - {"ballistics", "sensor", "solver"}
        if unknown:
            raise ConfigurationError(f"Unknown configuration sections: {sorted(unknown)}")
        return cls(
            ballistics=_build(BallisticConstants, data.get("ballistics", {})),
            sensor=_build(SensorConfig, data.get("sensor", {})),
            solver=_build(SolverConfig, data.get("solver", {})),
        )

    @classmethod
    def from_json(cls, path: Path | str) -> GunneryConfig:
        """Load configuration from a JSON file."""
        path = Path(path)
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root in {path} must be an object")
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, env_file: Optional[Path | str] = None) -> GunneryConfig:
        """
        Load configuration from ``GUNNERY_*`` environment variables.

        A ``.env`` file is read first (without overriding variables that
        are already set).
        """
        load_dotenv(env_file)
        data: Dict[str, Dict[str, Any]] = {"ballistics": {}, "sensor": {}, "solver": {}}
        for var, (section, key) in ENV_VARIABLES.items():
            raw = os.getenv(var)
            if raw is None or raw == "":
                continue
            data[section][key] = _parse_env_value(var, raw)
        return cls.from_dict(data)


# Environment variable -> (section, field)
ENV_VARIABLES: Dict[str, tuple[str, str]] = {
    "GUNNERY_MASS_KG": ("ballistics", "mass_kg"),
    "GUNNERY_AREA_M2": ("ballistics", "area_m2"),
    "GUNNERY_DRAG_COEFFICIENT": ("ballistics", "drag_coefficient"),
    "GUNNERY_MUZZLE_VELOCITY": ("ballistics", "muzzle_velocity_ms"),
    "GUNNERY_GRAVITY": ("ballistics", "gravity_ms2"),
    "GUNNERY_AIR_DENSITY": ("ballistics", "air_density"),
    "GUNNERY_TIMESTEP": ("ballistics", "timestep_s"),
    "GUNNERY_MAX_RANGE_M": ("ballistics", "max_range_m"),
    "GUNNERY_CORIOLIS": ("ballistics", "coriolis_enabled"),
    "GUNNERY_BEAM_WIDTH_DEG": ("sensor", "beam_width_deg"),
    "GUNNERY_PERSISTENCE_MS": ("sensor", "persistence_ms"),
    "GUNNERY_SENSOR_RANGE_M": ("sensor", "max_range_m"),
    "GUNNERY_MAX_ITERATIONS": ("solver", "max_iterations"),
    "GUNNERY_FLIGHT_TIME_EPSILON": ("solver", "flight_time_epsilon_s"),
}


def _parse_env_value(var: str, raw: str) -> Any:
    if var == "GUNNERY_CORIOLIS":
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ConfigurationError(f"{var} must be a boolean, got {raw!r}")
    if var == "GUNNERY_MAX_ITERATIONS":
        try:
            return int(raw)
        except ValueError as e:
            raise ConfigurationError(f"{var} must be an integer, got {raw!r}") from e
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{var} must be a number, got {raw!r}") from e


def _coerce(owner: str, key: str, type_name: str, value: Any) -> Any:
    """Check a raw value against a field's declared type."""
    where = f"{owner}.{key}"
    if type_name == "Vector3D":
        if isinstance(value, Vector3D):
            return value
        if not isinstance(value, (list, tuple)) or len(value) != 3:
            raise ConfigurationError(f"{where} must have 3 components, got {value!r}")
        if not all(_is_number(component) for component in value):
            raise ConfigurationError(f"{where} components must be numbers, got {value!r}")
        return Vector3D.from_tuple(tuple(float(component) for component in value))
    if type_name == "bool":
        if not isinstance(value, bool):
            raise ConfigurationError(f"{where} must be a boolean, got {value!r}")
        return value
    if type_name == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"{where} must be an integer, got {value!r}")
        return value
    if type_name == "float":
        if not _is_number(value):
            raise ConfigurationError(f"{where} must be a number, got {value!r}")
        return float(value)
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _build(cls: type, values: Dict[str, Any]) -> Any:
    if not isinstance(values, dict):
        raise ConfigurationError(f"{cls.__name__} section must be an object, got {values!r}")
    known = {f.name: f for f in fields(cls)}
    unknown = set(values) - set(known)
    if unknown:
        raise ConfigurationError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    kwargs = {
        key: _coerce(cls.__name__, key, str(known[key].type), value)
        for key, value in values.items()
    }
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ConfigurationError(f"Invalid {cls.__name__}: {e}") from e

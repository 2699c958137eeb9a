#!/usr/bin/env python3
"""
Physics Module for the Gunnery Fire-Control Core

Implements the point-mass force model for an artillery shell:
- 3D vector operations
- Gravity, quadratic aerodynamic drag and Coriolis force
- Force summation into a net force
- Compass-style angle helpers (bearing 0 = north, clockwise)

Coordinate frame (right-handed, ground fixed at the gun site):
- X: east
- Y: north
- Z: up

Reference projectile: 155 mm howitzer shell, 43.5 kg, Cd 0.295,
muzzle velocity 827 m/s.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import reduce


# =============================================================================
# PHYSICAL CONSTANTS
# =============================================================================

# Standard gravity (m/s^2)
G_STANDARD = 9.81

# Sea-level air density (kg/m^3)
AIR_DENSITY_SEA_LEVEL = 1.225

# Earth rotation rate (rad/s)
EARTH_ROTATION_RATE = 7.2921159e-5

# 155 mm shell
PROJECTILE_MASS_KG = 43.5
PROJECTILE_DIAMETER_M = 0.155
PROJECTILE_AREA_M2 = 0.0189  # pi * (0.155 / 2)^2
PROJECTILE_DRAG_COEFFICIENT = 0.295
MUZZLE_VELOCITY_MS = 827.0


# =============================================================================
# VECTOR3D CLASS
# =============================================================================

@dataclass(frozen=True)
class Vector3D:
    """
    Immutable 3D vector for positions, velocities, forces and directions.

    Uses the ground frame described in the module docstring:
    - X: east
    - Y: north
    - Z: up

    All units in SI (meters, m/s, newtons) unless otherwise specified.
    """
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: Vector3D) -> Vector3D:
        """Vector addition."""
        return Vector3D(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vector3D) -> Vector3D:
        """Vector subtraction."""
        return Vector3D(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, scalar: float) -> Vector3D:
        """Scalar multiplication."""
        return Vector3D(self.x * scalar, self.y * scalar, self.z * scalar)

    def __rmul__(self, scalar: float) -> Vector3D:
        """Right scalar multiplication."""
        return self.__mul__(scalar)

    def __truediv__(self, scalar: float) -> Vector3D:
        """Scalar division."""
        if scalar == 0:
            raise ValueError("Cannot divide vector by zero")
        return Vector3D(self.x / scalar, self.y / scalar, self.z / scalar)

    def __neg__(self) -> Vector3D:
        """Negation."""
        return Vector3D(-self.x, -self.y, -self.z)

    def __eq__(self, other: object) -> bool:
        """Equality check with tolerance."""
        if not isinstance(other, Vector3D):
            return False
        eps = 1e-10
        return (abs(self.x - other.x) < eps and
                abs(self.y - other.y) < eps and
                abs(self.z - other.z) < eps)

    def dot(self, other: Vector3D) -> float:
        """Dot product."""
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: Vector3D) -> Vector3D:
        """Cross product."""
        return Vector3D(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x
        )

    @property
    def magnitude(self) -> float:
        """Vector magnitude (length)."""
        return math.sqrt(self.x**2 + self.y**2 + self.z**2)

    @property
    def magnitude_squared(self) -> float:
        """Squared magnitude (avoids sqrt for comparisons)."""
        return self.x**2 + self.y**2 + self.z**2

    @property
    def horizontal_magnitude(self) -> float:
        """Length of the projection onto the ground plane."""
        return math.hypot(self.x, self.y)

    def normalized(self) -> Vector3D:
        """Return unit vector in same direction (zero stays zero)."""
        mag = self.magnitude
        if mag == 0:
            return Vector3D(0.0, 0.0, 0.0)
        return self / mag

    def distance_to(self, other: Vector3D) -> float:
        """Distance to another point."""
        return (self - other).magnitude

    def is_finite(self) -> bool:
        """True when no component is NaN or infinite."""
        return (math.isfinite(self.x) and
                math.isfinite(self.y) and
                math.isfinite(self.z))

    def to_tuple(self) -> tuple[float, float, float]:
        """Convert to tuple."""
        return (self.x, self.y, self.z)

    @classmethod
    def from_tuple(cls, t: tuple[float, float, float]) -> Vector3D:
        """Create from tuple."""
        return cls(float(t[0]), float(t[1]), float(t[2]))

    @classmethod
    def zero(cls) -> Vector3D:
        """Zero vector."""
        return cls(0.0, 0.0, 0.0)

    @classmethod
    def down(cls) -> Vector3D:
        """Unit vector pointing at the ground."""
        return cls(0.0, 0.0, -1.0)

    @classmethod
    def unit_z(cls) -> Vector3D:
        """Unit vector in Z direction (up)."""
        return cls(0.0, 0.0, 1.0)

    def __repr__(self) -> str:
        return f"Vector3D({self.x:.6g}, {self.y:.6g}, {self.z:.6g})"


# =============================================================================
# FORCE MODEL
# =============================================================================

def gravity(
    mass_kg: float,
    g: float = G_STANDARD,
    direction: Vector3D = Vector3D(0.0, 0.0, -1.0)
) -> Vector3D:
    """
    Gravitational force F = m * g along ``direction``.

    Args:
        mass_kg: Projectile mass (kg)
        g: Gravitational acceleration magnitude (m/s^2)
        direction: Direction of gravity, normalized here (default: down)

    Returns:
        Force vector in Newtons
    """
    return direction.normalized() * (mass_kg * g)


def drag(
    velocity: Vector3D,
    air_density: float,
    drag_coefficient: float,
    area_m2: float
) -> Vector3D:
    """
    Quadratic aerodynamic drag F_d = -0.5 * rho * Cd * A * |v| * v.

    Args:
        velocity: Velocity relative to the air mass (m/s)
        air_density: Air density (kg/m^3)
        drag_coefficient: Dimensionless drag coefficient
        area_m2: Reference cross-sectional area (m^2)

    Returns:
        Force vector in Newtons, opposite to velocity. Zero at zero speed.
    """
    speed = velocity.magnitude
    if speed == 0:
        return Vector3D.zero()
    magnitude = 0.5 * air_density * drag_coefficient * area_m2 * speed * speed
    return velocity.normalized() * -magnitude


def coriolis(
    mass_kg: float,
    angular_velocity: Vector3D,
    velocity: Vector3D
) -> Vector3D:
    """Coriolis force in the rotating ground frame: F_c = -2m (omega x v)."""
    return angular_velocity.cross(velocity) * (-2.0 * mass_kg)


def sum_forces(*forces: Vector3D) -> Vector3D:
    """Vector sum of any number of forces (zero when none are given)."""
    return reduce(lambda acc, f: acc + f, forces, Vector3D.zero())


# =============================================================================
# ANGLE HELPERS
# =============================================================================

def normalize_azimuth(degrees: float) -> float:
    """Wrap an angle into [0, 360)."""
    wrapped = degrees % 360.0
    # -1e-15 % 360 rounds to 360.0
    return 0.0 if wrapped >= 360.0 else wrapped


def bearing_deg(offset: Vector3D) -> float:
    """Compass bearing of a ground-frame offset (0 = north, 90 = east)."""
    if offset.x == 0 and offset.y == 0:
        return 0.0
    return normalize_azimuth(math.degrees(math.atan2(offset.x, offset.y)))


def elevation_deg(offset: Vector3D) -> float:
    """Angle of an offset above the horizon, in degrees."""
    horizontal = offset.horizontal_magnitude
    if horizontal == 0 and offset.z == 0:
        return 0.0
    return math.degrees(math.atan2(offset.z, horizontal))


def direction_from_angles(azimuth_deg: float, elevation_deg_: float) -> Vector3D:
    """Unit vector pointing along a compass azimuth and elevation."""
    az = math.radians(azimuth_deg)
    el = math.radians(elevation_deg_)
    return Vector3D(
        math.cos(el) * math.sin(az),  # East
        math.cos(el) * math.cos(az),  # North
        math.sin(el)                  # Up
    )

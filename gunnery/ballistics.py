#!/usr/bin/env python3
"""
Ballistic Integrator for the Gunnery Fire-Control Core

Advances a shell through the atmosphere with a fixed 60 Hz timestep:
- Net force from gravity, quadratic drag and (optionally) Coriolis
- Semi-implicit (symplectic) Euler: velocity first, then position
- Terminal conditions: grounded, expired (60 s), out of sensor range

Trajectories are lazy and restartable: iterating a Trajectory twice
re-runs the integration from the launch state, so no global state is
carried between calls and the integrator can be shared freely between
solver invocations.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, List, Optional

from .config import BallisticConstants
from .physics import (
    Vector3D,
    coriolis,
    direction_from_angles,
    drag,
    gravity,
    sum_forces,
)


# =============================================================================
# PROJECTILE STATE
# =============================================================================

class FlightStatus(Enum):
    """Flight phase of a projectile. Every state except FLYING is terminal."""
    FLYING = "flying"
    GROUNDED = "grounded"
    EXPIRED = "expired"
    OUT_OF_RANGE = "out_of_range"

    @property
    def is_terminal(self) -> bool:
        return self is not FlightStatus.FLYING


@dataclass(frozen=True)
class ProjectileState:
    """
    Kinematic state of a shell at one integration step.

    Attributes:
        position: World position (meters)
        velocity: World velocity (m/s)
        flight_time_s: Time since launch (seconds)
        status: Flight phase
        origin: Launch position, used for horizontal range checks
    """
    position: Vector3D
    velocity: Vector3D
    flight_time_s: float = 0.0
    status: FlightStatus = FlightStatus.FLYING
    origin: Vector3D = field(default_factory=Vector3D.zero)

    @property
    def is_active(self) -> bool:
        """True while the shell is still flying."""
        return self.status is FlightStatus.FLYING

    @property
    def horizontal_range_m(self) -> float:
        """Ground distance from the launch position."""
        return (self.position - self.origin).horizontal_magnitude

    @property
    def altitude_m(self) -> float:
        return self.position.z

    @property
    def speed_ms(self) -> float:
        return self.velocity.magnitude


def interpolate_states(
    start: ProjectileState,
    end: ProjectileState,
    fraction: float
) -> ProjectileState:
    """Linear blend between two consecutive states (fraction in [0, 1])."""
    return ProjectileState(
        position=start.position + (end.position - start.position) * fraction,
        velocity=start.velocity + (end.velocity - start.velocity) * fraction,
        flight_time_s=start.flight_time_s + (end.flight_time_s - start.flight_time_s) * fraction,
        status=end.status if fraction >= 1.0 else start.status,
        origin=start.origin,
    )


def launch_velocity(azimuth_deg: float, elevation_deg: float, speed_ms: float) -> Vector3D:
    """Muzzle velocity vector for a gun laid at the given azimuth and elevation."""
    return direction_from_angles(azimuth_deg, elevation_deg) * speed_ms


# =============================================================================
# TRAJECTORY
# =============================================================================

class Trajectory:
    """
    Lazy, finite, restartable sequence of ProjectileStates.

    The first state is the launch state; the last is either terminal or
    the first state at or past ``max_time_s``.
    """

    def __init__(
        self,
        integrator: BallisticIntegrator,
        initial: ProjectileState,
        max_time_s: Optional[float] = None
    ) -> None:
        self._integrator = integrator
        self._initial = initial
        self._max_time_s = max_time_s

    @property
    def initial_state(self) -> ProjectileState:
        return self._initial

    def __iter__(self) -> Iterator[ProjectileState]:
        state = self._initial
        yield state
        while not state.status.is_terminal:
            if self._max_time_s is not None and state.flight_time_s >= self._max_time_s:
                return
            state = self._integrator.step(state)
            yield state

    def states(self) -> List[ProjectileState]:
        """Run the whole flight and return every state."""
        return list(self)

    def final_state(self) -> ProjectileState:
        """Last state of the flight."""
        state = self._initial
        for state in self:
            pass
        return state


# =============================================================================
# INTEGRATOR
# =============================================================================

class BallisticIntegrator:
    """
    Fixed-step point-mass integrator for artillery shells.

    Pure given its constants: ``step`` never mutates its input and the
    integrator holds no per-flight state.
    """

    def __init__(self, constants: Optional[BallisticConstants] = None) -> None:
        self.constants = constants or BallisticConstants()
        c = self.constants
        self._gravity_force = gravity(c.mass_kg, c.gravity_ms2, c.gravity_direction)

    def acceleration(self, velocity: Vector3D) -> Vector3D:
        """
        Acceleration of the shell at the given velocity.

        Args:
            velocity: Shell velocity (m/s)

        Returns:
            Net force divided by mass (m/s^2)
        """
        c = self.constants
        forces = [
            self._gravity_force,
            drag(velocity, c.air_density, c.drag_coefficient, c.area_m2),
        ]
        if c.coriolis_enabled:
            forces.append(coriolis(c.mass_kg, c.earth_angular_velocity, velocity))
        return sum_forces(*forces) / c.mass_kg

    def step(self, state: ProjectileState) -> ProjectileState:
        """
        Advance one fixed timestep with semi-implicit Euler.

        Terminal states are returned unchanged.

        Args:
            state: Current state

        Returns:
            New state one timestep later, classified for terminal conditions
        """
        if state.status.is_terminal:
            return state

        dt = self.constants.timestep_s
        accel = self.acceleration(state.velocity)

        # Velocity first, then position with the new velocity
        velocity = state.velocity + accel * dt
        position = state.position + velocity * dt
        flight_time = state.flight_time_s + dt

        if not (position.is_finite() and velocity.is_finite()):
            return ProjectileState(
                position=state.position,
                velocity=state.velocity,
                flight_time_s=flight_time,
                status=FlightStatus.EXPIRED,
                origin=state.origin,
            )

        return ProjectileState(
            position=position,
            velocity=velocity,
            flight_time_s=flight_time,
            status=self._classify(position, flight_time, state.origin),
            origin=state.origin,
        )

    def _classify(self, position: Vector3D, flight_time: float, origin: Vector3D) -> FlightStatus:
        c = self.constants
        if position.z <= c.ground_level_m:
            return FlightStatus.GROUNDED
        if flight_time > c.max_lifetime_s:
            return FlightStatus.EXPIRED
        if (position - origin).horizontal_magnitude > c.max_range_m:
            return FlightStatus.OUT_OF_RANGE
        return FlightStatus.FLYING

    def simulate(
        self,
        initial_velocity: Vector3D,
        max_time_s: Optional[float] = None,
        origin: Vector3D = Vector3D(0.0, 0.0, 0.0)
    ) -> Trajectory:
        """
        Trajectory of a shell launched from ``origin``.

        Args:
            initial_velocity: Launch velocity vector (m/s)
            max_time_s: Optional cut-off before the natural terminal state
            origin: Launch position (meters)

        Returns:
            Restartable Trajectory
        """
        initial = ProjectileState(
            position=origin,
            velocity=initial_velocity,
            flight_time_s=0.0,
            status=FlightStatus.FLYING,
            origin=origin,
        )
        return Trajectory(self, initial, max_time_s)

    def fire(
        self,
        azimuth_deg: float,
        elevation_deg: float,
        origin: Vector3D = Vector3D(0.0, 0.0, 0.0),
        max_time_s: Optional[float] = None
    ) -> Trajectory:
        """Trajectory for a gun laid at azimuth/elevation, at muzzle velocity."""
        velocity = launch_velocity(azimuth_deg, elevation_deg, self.constants.muzzle_velocity_ms)
        return self.simulate(velocity, max_time_s=max_time_s, origin=origin)

    def time_of_flight_to(
        self,
        target_range_m: float,
        target_altitude_m: float,
        azimuth_deg: float,
        elevation_deg: float,
        origin: Vector3D = Vector3D(0.0, 0.0, 0.0),
        tolerance_m: float = 25.0
    ) -> Optional[float]:
        """
        Flight time for the shell to reach a point given by range and altitude.

        Works in the (horizontal range, altitude) plane. Segments between
        consecutive states are interpolated; the time of closest approach
        during the first pass within ``tolerance_m`` is returned.

        Args:
            target_range_m: Horizontal distance from ``origin``
            target_altitude_m: World altitude of the point
            azimuth_deg: Gun azimuth
            elevation_deg: Gun elevation
            origin: Gun position
            tolerance_m: Largest accepted miss in the range/altitude plane

        Returns:
            Seconds of flight, or None if the shell never comes within tolerance.
        """
        best_distance = math.inf
        best_time: Optional[float] = None
        previous: Optional[ProjectileState] = None

        for state in self.fire(azimuth_deg, elevation_deg, origin=origin):
            if previous is not None:
                distance, fraction = _segment_approach_2d(
                    (previous.horizontal_range_m, previous.altitude_m),
                    (state.horizontal_range_m, state.altitude_m),
                    (target_range_m, target_altitude_m),
                )
                if distance <= tolerance_m:
                    if distance < best_distance:
                        best_distance = distance
                        best_time = previous.flight_time_s + fraction * (
                            state.flight_time_s - previous.flight_time_s
                        )
                elif best_time is not None:
                    break
            previous = state

        return best_time

    def state_at_range(
        self,
        target_range_m: float,
        azimuth_deg: float,
        elevation_deg: float,
        origin: Vector3D = Vector3D(0.0, 0.0, 0.0)
    ) -> Optional[ProjectileState]:
        """
        Interpolated state where the shell first reaches a horizontal range.

        Returns None if the flight ends before reaching it.
        """
        previous: Optional[ProjectileState] = None
        for state in self.fire(azimuth_deg, elevation_deg, origin=origin):
            if state.horizontal_range_m >= target_range_m:
                if previous is None:
                    return state
                span = state.horizontal_range_m - previous.horizontal_range_m
                fraction = 1.0 if span <= 0 else (
                    (target_range_m - previous.horizontal_range_m) / span
                )
                return interpolate_states(previous, state, fraction)
            previous = state
        return None

    def altitude_at_range(
        self,
        target_range_m: float,
        azimuth_deg: float,
        elevation_deg: float,
        origin: Vector3D = Vector3D(0.0, 0.0, 0.0)
    ) -> Optional[float]:
        """Shell altitude where it first reaches a horizontal range, or None."""
        state = self.state_at_range(target_range_m, azimuth_deg, elevation_deg, origin)
        return None if state is None else state.altitude_m


# =============================================================================
# TRAJECTORY ANALYSIS
# =============================================================================

@dataclass(frozen=True)
class Approach:
    """Closest approach of a trajectory to a point."""
    distance_m: float
    time_s: float
    position: Vector3D


def _segment_approach_2d(
    p0: tuple[float, float],
    p1: tuple[float, float],
    q: tuple[float, float]
) -> tuple[float, float]:
    dx, dy = p1[0] - p0[0], p1[1] - p0[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        fraction = 0.0
    else:
        fraction = ((q[0] - p0[0]) * dx + (q[1] - p0[1]) * dy) / length_sq
        fraction = max(0.0, min(1.0, fraction))
    px, py = p0[0] + dx * fraction, p0[1] + dy * fraction
    return math.hypot(q[0] - px, q[1] - py), fraction


def closest_approach(states: Iterable[ProjectileState], point: Vector3D) -> Optional[Approach]:
    """
    Smallest 3D distance between a trajectory and a fixed point.

    Each segment between consecutive states is treated as a straight line.
    Returns None for an empty trajectory.
    """
    best: Optional[Approach] = None
    previous: Optional[ProjectileState] = None
    for state in states:
        if previous is None:
            candidate = Approach(state.position.distance_to(point), state.flight_time_s, state.position)
        else:
            segment = state.position - previous.position
            length_sq = segment.magnitude_squared
            fraction = 0.0
            if length_sq > 0:
                fraction = max(0.0, min(1.0, (point - previous.position).dot(segment) / length_sq))
            position = previous.position + segment * fraction
            candidate = Approach(
                distance_m=position.distance_to(point),
                time_s=previous.flight_time_s + fraction * (state.flight_time_s - previous.flight_time_s),
                position=position,
            )
        if best is None or candidate.distance_m < best.distance_m:
            best = candidate
        previous = state
    return best


def impact_point(states: Iterable[ProjectileState], ground_level_m: float = 0.0) -> Optional[Vector3D]:
    """
    Interpolated ground-crossing point of a grounded trajectory.

    Returns None when the trajectory never reaches the ground.
    """
    previous: Optional[ProjectileState] = None
    for state in states:
        if state.status is FlightStatus.GROUNDED:
            if previous is None:
                return state.position
            drop = previous.position.z - state.position.z
            fraction = 1.0 if drop <= 0 else (previous.position.z - ground_level_m) / drop
            fraction = max(0.0, min(1.0, fraction))
            return previous.position + (state.position - previous.position) * fraction
        previous = state
    return None


def trajectory_points(states: Iterable[ProjectileState], stride: int = 1) -> List[Vector3D]:
    """Positions for display, keeping every ``stride``-th state and the last one."""
    stride = max(1, stride)
    points: List[Vector3D] = []
    last: Optional[Vector3D] = None
    for index, state in enumerate(states):
        last = state.position
        if index % stride == 0:
            points.append(state.position)
    if last is not None and (not points or points[-1] is not last):
        points.append(last)
    return points


def max_range(
    integrator: BallisticIntegrator,
    azimuth_deg: float = 0.0,
    origin: Vector3D = Vector3D(0.0, 0.0, 0.0),
    step_deg: float = 1.0
) -> tuple[float, float]:
    """
    Greatest ground range of the gun and the elevation that achieves it.

    Scans elevations from 1 to 89 degrees, then refines around the best
    sample at a tenth of the step.

    Returns:
        (range in meters, elevation in degrees)
    """
    def ground_range(elevation: float) -> float:
        states = integrator.fire(azimuth_deg, elevation, origin=origin).states()
        impact = impact_point(states, integrator.constants.ground_level_m)
        if impact is None:
            return states[-1].horizontal_range_m
        return (impact - origin).horizontal_magnitude

    best_range, best_elevation = -1.0, 0.0
    elevation = 1.0
    while elevation < 90.0:
        distance = ground_range(elevation)
        if distance > best_range:
            best_range, best_elevation = distance, elevation
        elevation += step_deg

    fine = step_deg / 10.0
    elevation = max(0.5, best_elevation - step_deg)
    upper = min(89.5, best_elevation + step_deg)
    while elevation <= upper:
        distance = ground_range(elevation)
        if distance > best_range:
            best_range, best_elevation = distance, elevation
        elevation += fine
    return best_range, best_elevation

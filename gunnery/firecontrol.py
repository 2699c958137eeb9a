#!/usr/bin/env python3
"""
Fire Control System for the Gunnery Fire-Control Core.

This module implements:
- Lead-angle (intercept) solution against a moving target, by fixed-point
  iteration over flight time against the full drag-aware integrator
- Gun laying: azimuth to the predicted point and elevation found by a
  bracketed search seeded with the vacuum ballistic solution
- Confidence classification of every solution as a tagged result type
- A lead-angle tracker that refreshes the solution for a locked target

The solver never raises for numeric trouble. Degenerate geometry, targets
out of reach and non-convergence come back as ``Unconverged`` results and
the caller decides whether to permit firing.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional, Tuple, Type

from .ballistics import BallisticIntegrator, closest_approach
from .config import SensorConfig, SolverConfig
from .physics import Vector3D, bearing_deg, elevation_deg, normalize_azimuth
from .sensors import DetectionRecord
from .targeting import TargetObservation

logger = logging.getLogger(__name__)

# Coriolis drift is corrected by re-laying azimuth at most this many times
MAX_DRIFT_CORRECTIONS = 4

# Elevation search bracket growth (degrees)
BRACKET_INITIAL_STEP_DEG = 0.5
BRACKET_MAX_STEP_DEG = 4.0
BRACKET_MIN_WIDTH_DEG = 1e-7

# The accuracy pass stops this many timesteps after the solved flight time
ACCURACY_WINDOW_STEPS = 10


# =============================================================================
# RESULT TYPES
# =============================================================================

class Confidence(Enum):
    """How far a lead-angle solution can be trusted."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class LeadAngleResult:
    """
    Gun laying produced by one solver invocation.

    Attributes:
        azimuth_deg: Gun azimuth, compass degrees in [0, 360)
        elevation_deg: Gun elevation above the horizon
        iterations: Flight-time iterations performed
    """
    azimuth_deg: float
    elevation_deg: float
    iterations: int

    confidence: ClassVar[Confidence] = Confidence.LOW
    converged: ClassVar[bool] = False

    @property
    def lead_angle(self) -> Tuple[float, float]:
        """(azimuth, elevation) in degrees."""
        return (self.azimuth_deg, self.elevation_deg)


@dataclass(frozen=True)
class Unconverged(LeadAngleResult):
    """
    No trustworthy solution.

    Attributes:
        reason: Why the solver gave up
        flight_time_s: Last flight-time estimate, if any
        accuracy_m: Residual miss of the last laying, if it was simulated
    """
    reason: str = "iteration cap reached"
    flight_time_s: Optional[float] = None
    accuracy_m: Optional[float] = None


@dataclass(frozen=True)
class Converged(LeadAngleResult):
    """
    Solution whose flight time settled within epsilon.

    Attributes:
        flight_time_s: Time for the shell to reach the aim point
        accuracy_m: Closest approach of the simulated shell to the aim point
        aim_point: Predicted target position at flight_time_s
    """
    flight_time_s: float = 0.0
    accuracy_m: float = 0.0
    aim_point: Vector3D = field(default_factory=Vector3D.zero)

    converged: ClassVar[bool] = True


@dataclass(frozen=True)
class ConvergedHigh(Converged):
    """Small residual, fast convergence."""
    confidence: ClassVar[Confidence] = Confidence.HIGH


@dataclass(frozen=True)
class ConvergedMedium(Converged):
    """Acceptable residual or slower convergence."""
    confidence: ClassVar[Confidence] = Confidence.MEDIUM


@dataclass(frozen=True)
class ConvergedLow(Converged):
    """Converged, but with a large residual or from an unreliable track."""
    confidence: ClassVar[Confidence] = Confidence.LOW


def vacuum_elevation(
    horizontal_range_m: float,
    height_m: float,
    muzzle_velocity_ms: float,
    gravity_ms2: float
) -> Optional[float]:
    """
    Low-angle elevation that reaches a point in vacuum.

    tan(theta) = (v^2 - sqrt(v^4 - g (g x^2 + 2 h v^2))) / (g x)

    Returns:
        Elevation in degrees, or None if the point is out of reach.
    """
    if horizontal_range_m <= 0 or muzzle_velocity_ms <= 0:
        return None
    if gravity_ms2 == 0:
        return math.degrees(math.atan2(height_m, horizontal_range_m))
    v2 = muzzle_velocity_ms ** 2
    g = gravity_ms2
    x = horizontal_range_m
    discriminant = v2 * v2 - g * (g * x * x + 2.0 * height_m * v2)
    if discriminant < 0:
        return None
    return math.degrees(math.atan((v2 - math.sqrt(discriminant)) / (g * x)))


# =============================================================================
# INTERCEPT SOLVER
# =============================================================================

class InterceptSolver:
    """
    Iterative lead-angle solver.

    Each iteration predicts the target at the trial flight time, lays the
    gun on that point against the integrator, and takes the simulated
    flight time as the next trial, until successive times agree within
    ``flight_time_epsilon_s`` or ``max_iterations`` is reached.

    The solver keeps no state between calls; concurrent solves only need
    their own target snapshots.
    """

    def __init__(
        self,
        integrator: Optional[BallisticIntegrator] = None,
        config: Optional[SolverConfig] = None,
        sensor_config: Optional[SensorConfig] = None
    ) -> None:
        self.integrator = integrator or BallisticIntegrator()
        self.config = config or SolverConfig()
        self.sensor_config = sensor_config or SensorConfig()

    # -------------------------------------------------------------------------
    # Public entry points
    # -------------------------------------------------------------------------

    def solve(
        self,
        gun_position: Vector3D,
        target_position: Vector3D,
        target_velocity: Vector3D,
        record: Optional[DetectionRecord] = None,
        now_ms: Optional[float] = None,
        elevation_hint: Optional[float] = None
    ) -> LeadAngleResult:
        """
        Lead angle to hit a target moving with constant velocity.

        Args:
            gun_position: Gun (and launch) position
            target_position: Current target position
            target_velocity: Current target velocity
            record: Detection record the target state came from, used to
                judge track reliability
            now_ms: Current simulation time, for the record's age
            elevation_hint: Elevation of a previous solution, to start the
                elevation search near it

        Returns:
            A LeadAngleResult variant; never raises for numeric reasons.
        """
        cfg = self.config
        offset = target_position - gun_position
        los_azimuth = bearing_deg(offset) if offset.is_finite() else 0.0
        los_elevation = elevation_deg(offset) if offset.is_finite() else 0.0

        if not (gun_position.is_finite() and target_position.is_finite()
                and target_velocity.is_finite()):
            return Unconverged(los_azimuth, los_elevation, 0, reason="non-finite input")

        distance = offset.magnitude
        if distance < cfg.min_engagement_range_m:
            return Unconverged(los_azimuth, los_elevation, 0, reason="target at gun position")
        if offset.horizontal_magnitude > cfg.max_engagement_range_m:
            logger.info("Target beyond engagement range (%.0f m)", offset.horizontal_magnitude)
            return Unconverged(los_azimuth, los_elevation, 0,
                               reason="target beyond maximum engagement range")

        muzzle_velocity = self.integrator.constants.muzzle_velocity_ms
        trial_time = distance / muzzle_velocity
        azimuth, elevation = los_azimuth, los_elevation
        if elevation_hint is not None and not math.isfinite(elevation_hint):
            elevation_hint = None
        converged = False
        iterations = 0

        for iteration in range(1, cfg.max_iterations + 1):
            iterations = iteration
            predicted = target_position + target_velocity * trial_time

            laying = self.lay_gun(gun_position, predicted, elevation_hint)
            if laying is None:
                logger.info("No gun laying reaches %s", predicted)
                return Unconverged(azimuth, elevation, iterations,
                                   reason="aim point unreachable", flight_time_s=trial_time)
            azimuth, elevation = laying
            elevation_hint = elevation

            relative = predicted - gun_position
            next_time = self.integrator.time_of_flight_to(
                relative.horizontal_magnitude,
                predicted.z,
                azimuth,
                elevation,
                origin=gun_position,
                tolerance_m=cfg.time_of_flight_tolerance_m,
            )
            if next_time is None:
                logger.info("Shell never passes the aim point at az %.2f el %.2f", azimuth, elevation)
                return Unconverged(azimuth, elevation, iterations,
                                   reason="shell does not reach aim point", flight_time_s=trial_time)

            logger.debug(
                "Iteration %d: T=%.3fs az=%.3f el=%.3f -> T'=%.3fs",
                iteration, trial_time, azimuth, elevation, next_time,
            )

            settled = abs(next_time - trial_time) < cfg.flight_time_epsilon_s
            trial_time = next_time
            if settled:
                converged = True
                break

        aim_point = target_position + target_velocity * trial_time
        window = ACCURACY_WINDOW_STEPS * self.integrator.constants.timestep_s
        trajectory = self.integrator.fire(azimuth, elevation, origin=gun_position,
                                          max_time_s=trial_time + window)
        approach = closest_approach(trajectory, aim_point)
        accuracy = approach.distance_m if approach is not None else math.inf

        if not converged:
            logger.info("Lead solution did not converge in %d iterations", iterations)
            return Unconverged(
                azimuth, elevation, iterations,
                reason="iteration cap reached",
                flight_time_s=trial_time,
                accuracy_m=accuracy if math.isfinite(accuracy) else None,
            )

        result_type = self._classify(accuracy, iterations)
        if record is not None and self.is_unreliable(record, now_ms):
            result_type = ConvergedLow

        return result_type(
            azimuth_deg=azimuth,
            elevation_deg=elevation,
            iterations=iterations,
            flight_time_s=trial_time,
            accuracy_m=accuracy,
            aim_point=aim_point,
        )

    def solve_record(
        self,
        gun_position: Vector3D,
        record: DetectionRecord,
        now_ms: float,
        elevation_hint: Optional[float] = None
    ) -> LeadAngleResult:
        """Solve against a persisted detection, dead-reckoned to ``now_ms``."""
        return self.solve(
            gun_position,
            record.extrapolated_position(now_ms),
            record.velocity,
            record=record,
            now_ms=now_ms,
            elevation_hint=elevation_hint,
        )

    def solve_observation(
        self,
        gun_position: Vector3D,
        observation: TargetObservation
    ) -> LeadAngleResult:
        """Solve against a live observation."""
        return self.solve(gun_position, observation.position, observation.velocity)

    def is_unreliable(self, record: DetectionRecord, now_ms: Optional[float]) -> bool:
        """True when a record is too old or too weak to trust."""
        age = 0.0 if now_ms is None else record.age_ms(now_ms)
        return (age > self.sensor_config.stale_record_ms or
                record.strength < self.sensor_config.min_reliable_strength)

    def _classify(self, accuracy_m: float, iterations: int) -> Type[Converged]:
        cfg = self.config
        if accuracy_m < cfg.high_accuracy_m and iterations < cfg.high_max_iterations:
            return ConvergedHigh
        if accuracy_m < cfg.medium_accuracy_m and iterations < cfg.medium_max_iterations:
            return ConvergedMedium
        return ConvergedLow

    # -------------------------------------------------------------------------
    # Gun laying
    # -------------------------------------------------------------------------

    def lay_gun(
        self,
        gun_position: Vector3D,
        aim_point: Vector3D,
        elevation_hint: Optional[float] = None
    ) -> Optional[Tuple[float, float]]:
        """
        Azimuth and low-arc elevation that put the shell through a point.

        Args:
            gun_position: Launch position
            aim_point: Point the shell must pass through
            elevation_hint: Starting elevation (e.g. the previous solution)

        Returns:
            (azimuth, elevation) in degrees, or None if out of reach.
        """
        relative = aim_point - gun_position
        horizontal = relative.horizontal_magnitude
        if horizontal < self.config.min_engagement_range_m:
            return None

        azimuth = bearing_deg(relative)
        elevation = self.find_elevation(gun_position, azimuth, horizontal, aim_point.z, elevation_hint)
        if elevation is None:
            return None

        if not self.integrator.constants.coriolis_enabled:
            return azimuth, elevation

        # Cross-track drift: positive when the shell lands right of the aim line
        right_x = relative.y / horizontal
        right_y = -relative.x / horizontal
        for _ in range(MAX_DRIFT_CORRECTIONS):
            state = self.integrator.state_at_range(horizontal, azimuth, elevation, origin=gun_position)
            if state is None:
                break
            landed = state.position - gun_position
            cross_track = landed.x * right_x + landed.y * right_y
            if abs(cross_track) <= self.config.aim_tolerance_m:
                break
            azimuth = normalize_azimuth(azimuth - math.degrees(math.atan2(cross_track, horizontal)))
            corrected = self.find_elevation(gun_position, azimuth, horizontal, aim_point.z, elevation)
            if corrected is None:
                return None
            elevation = corrected
        return azimuth, elevation

    def find_elevation(
        self,
        gun_position: Vector3D,
        azimuth_deg: float,
        horizontal_range_m: float,
        altitude_m: float,
        elevation_hint: Optional[float] = None
    ) -> Optional[float]:
        """
        Low-arc elevation at which the shell crosses ``horizontal_range_m``
        at ``altitude_m``, found against the integrator.

        The vacuum solution (or the hint) seeds an upward bracket search
        starting from the line of sight, which always falls short under
        gravity; the bracket is then closed by false position with the
        Illinois modification, falling back to bisection where a side
        never reaches the range.
        """
        cfg = self.config
        constants = self.integrator.constants
        tolerance = cfg.aim_tolerance_m
        height = altitude_m - gun_position.z

        def miss(elevation: float) -> Optional[float]:
            altitude = self.integrator.altitude_at_range(
                horizontal_range_m, azimuth_deg, elevation, origin=gun_position
            )
            return None if altitude is None else altitude - altitude_m

        low = max(cfg.min_elevation_deg, math.degrees(math.atan2(height, horizontal_range_m)))
        if low >= cfg.max_elevation_deg:
            return None
        f_low = miss(low)
        if f_low is not None:
            if abs(f_low) <= tolerance:
                return low
            if f_low > 0:
                # Over the point even at the lowest elevation
                return None

        start = elevation_hint
        if start is None:
            start = vacuum_elevation(horizontal_range_m, height,
                                     constants.muzzle_velocity_ms, constants.gravity_ms2)
        if start is None or not math.isfinite(start):
            start = low
        start = max(low, min(cfg.max_elevation_deg, start))

        # Bracket: march upward until the shell passes over the point
        high: Optional[float] = None
        f_high: Optional[float] = None
        candidate = start
        step = BRACKET_INITIAL_STEP_DEG
        evaluations = 0
        while evaluations < cfg.max_aim_iterations:
            f_candidate = miss(candidate)
            evaluations += 1
            if f_candidate is not None and abs(f_candidate) <= tolerance:
                return candidate
            if f_candidate is not None and f_candidate > 0:
                high, f_high = candidate, f_candidate
                break
            if candidate > low:
                low, f_low = candidate, f_candidate
            if candidate >= cfg.max_elevation_deg:
                return None
            candidate = min(cfg.max_elevation_deg, candidate + step)
            step = min(step * 2.0, BRACKET_MAX_STEP_DEG)

        if high is None or f_high is None:
            return None

        if evaluations == 1 and high - low > BRACKET_INITIAL_STEP_DEG:
            # Seed already over the point: look for the short side just below it
            below = high - BRACKET_INITIAL_STEP_DEG
            f_below = miss(below)
            evaluations += 1
            if f_below is not None and abs(f_below) <= tolerance:
                return below
            if f_below is not None and f_below > 0:
                high, f_high = below, f_below
            else:
                low, f_low = below, f_below

        # Close the bracket [low (short), high (over)]
        replaced = None
        while evaluations < cfg.max_aim_iterations and high - low > BRACKET_MIN_WIDTH_DEG:
            if f_low is not None and f_high != f_low:
                middle = high - f_high * (high - low) / (f_high - f_low)
                if not low < middle < high:
                    middle = 0.5 * (low + high)
            else:
                middle = 0.5 * (low + high)

            f_middle = miss(middle)
            evaluations += 1
            if f_middle is not None and abs(f_middle) <= tolerance:
                return middle

            if f_middle is not None and f_middle > 0:
                high, f_high = middle, f_middle
                if replaced == "high" and f_low is not None:
                    f_low *= 0.5
                replaced = "high"
            else:
                low, f_low = middle, f_middle
                if replaced == "low":
                    f_high *= 0.5
                replaced = "low"

        return high


# =============================================================================
# LEAD-ANGLE TRACKER
# =============================================================================

class LeadAngleTracker:
    """
    Keeps a lead-angle solution current for the locked target.

    Moving targets are re-solved at about 30 Hz, static ones at 5 Hz. A
    change of target triggers an immediate solve. Refreshes for the same
    target start the elevation search from the previous solution.
    """

    UPDATE_INTERVAL_MOVING_S = 0.033
    UPDATE_INTERVAL_STATIC_S = 0.2
    MOVING_SPEED_THRESHOLD_MS = 0.1

    def __init__(self, solver: InterceptSolver, gun_position: Vector3D) -> None:
        self.solver = solver
        self.gun_position = gun_position
        self._result: Optional[LeadAngleResult] = None
        self._target_id: Optional[str] = None
        self._timer_s = 0.0

    @property
    def lead_angle(self) -> Optional[LeadAngleResult]:
        return self._result

    @property
    def target_id(self) -> Optional[str]:
        return self._target_id

    def update(self, dt_seconds: float, record: Optional[DetectionRecord], now_ms: float) -> bool:
        """
        Refresh the solution if the update interval has elapsed.

        Args:
            dt_seconds: Time since the previous call
            record: Record of the locked target, or None when nothing is locked
            now_ms: Current simulation time

        Returns:
            True if a new solution was computed.
        """
        if record is None:
            self.clear()
            return False

        self._timer_s += dt_seconds
        moving = record.velocity.magnitude > self.MOVING_SPEED_THRESHOLD_MS
        interval = self.UPDATE_INTERVAL_MOVING_S if moving else self.UPDATE_INTERVAL_STATIC_S

        same_target = record.target_id == self._target_id
        if not same_target or self._timer_s >= interval:
            hint = None
            if same_target and self._result is not None and self._result.converged:
                hint = self._result.elevation_deg
            self._target_id = record.target_id
            self._result = self.solver.solve_record(self.gun_position, record, now_ms, elevation_hint=hint)
            self._timer_s = 0.0
            return True
        return False

    def clear(self) -> None:
        self._result = None
        self._target_id = None
        self._timer_s = 0.0

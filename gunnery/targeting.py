"""
Targets, Observations and Lock-On for the Gunnery Fire-Control Core.

This module implements:
- Target entities moving with constant velocity
- Observation geometry (bearing, elevation, range) from the radar site
- Signal-strength model by range, target class and Doppler speed
- Lock-on tracking over the detection gate's persisted records

Bearings are compass bearings: 0 = north (+Y), 90 = east (+X).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional

from .physics import Vector3D, bearing_deg, elevation_deg

if TYPE_CHECKING:
    from .sensors import DetectionGate, DetectionRecord

logger = logging.getLogger(__name__)


# =============================================================================
# TARGET CLASSES
# =============================================================================

class TargetClass(Enum):
    """Target category, from low-threat static to high-threat fast movers."""
    STATIC = "static"
    MOVING_SLOW = "moving_slow"
    MOVING_FAST = "moving_fast"

    @property
    def detection_factor(self) -> float:
        """Relative ease of detection (larger returns, Doppler)."""
        return _DETECTION_FACTORS[self]

    @property
    def cross_section_m2(self) -> float:
        """Nominal radar cross-section."""
        return _CROSS_SECTIONS_M2[self]

    @property
    def threat_level(self) -> int:
        return _THREAT_LEVELS[self]


_DETECTION_FACTORS: Dict[TargetClass, float] = {
    TargetClass.STATIC: 0.3,
    TargetClass.MOVING_SLOW: 0.7,
    TargetClass.MOVING_FAST: 1.0,
}

_CROSS_SECTIONS_M2: Dict[TargetClass, float] = {
    TargetClass.STATIC: 10.0,
    TargetClass.MOVING_SLOW: 5.0,
    TargetClass.MOVING_FAST: 2.0,
}

_THREAT_LEVELS: Dict[TargetClass, int] = {
    TargetClass.STATIC: 1,
    TargetClass.MOVING_SLOW: 2,
    TargetClass.MOVING_FAST: 3,
}

# Speed at which the Doppler bonus saturates (m/s)
DOPPLER_REFERENCE_SPEED_MS = 200.0
MAX_DOPPLER_BONUS = 0.5


# =============================================================================
# TARGET ENTITY
# =============================================================================

@dataclass
class Target:
    """
    A target moving in a straight line at constant velocity.

    Attributes:
        target_id: Unique identifier
        target_class: Category of the target
        position: World position (meters)
        velocity: World velocity (m/s); ignored for STATIC targets
        destroyed: Set once a shell hits the target
    """
    target_id: str
    target_class: TargetClass
    position: Vector3D = field(default_factory=Vector3D.zero)
    velocity: Vector3D = field(default_factory=Vector3D.zero)
    destroyed: bool = False

    @property
    def ground_velocity(self) -> Vector3D:
        """Velocity the target actually moves with (zero for STATIC)."""
        if self.target_class is TargetClass.STATIC:
            return Vector3D.zero()
        return self.velocity

    @property
    def speed_ms(self) -> float:
        return self.ground_velocity.magnitude

    @property
    def altitude_m(self) -> float:
        return self.position.z

    def update(self, dt_seconds: float) -> None:
        """Move the target forward in time."""
        if self.destroyed:
            return
        self.position = self.position + self.ground_velocity * dt_seconds

    def predicted_position(self, seconds_ahead: float) -> Vector3D:
        """Linear extrapolation of the current position."""
        return self.position + self.ground_velocity * seconds_ahead

    def destroy(self) -> None:
        self.destroyed = True


# =============================================================================
# OBSERVATIONS
# =============================================================================

@dataclass(frozen=True)
class TargetObservation:
    """
    One tick's view of a target from the radar site.

    Attributes:
        target_id: Target identifier
        position: World position (meters)
        velocity: World velocity (m/s)
        bearing_deg: Compass bearing from the radar (0 = north)
        elevation_deg: Angle above the horizon
        range_m: Slant range
        strength: Signal strength (0.0 - 1.0)
        target_class: Category of the target
    """
    target_id: str
    position: Vector3D
    velocity: Vector3D
    bearing_deg: float
    elevation_deg: float
    range_m: float
    strength: float
    target_class: TargetClass


def signal_strength(
    target_class: TargetClass,
    range_m: float,
    speed_ms: float,
    max_range_m: float
) -> float:
    """
    Radar return strength for a target.

    Strength falls off linearly with range, scales with the target class
    and gains up to 50% from Doppler for moving targets.

    Args:
        target_class: Category of the target
        range_m: Slant range
        speed_ms: Target speed
        max_range_m: Range at which the return vanishes

    Returns:
        Strength clipped to [0, 1].
    """
    if max_range_m <= 0:
        return 0.0
    distance_factor = max(0.0, 1.0 - range_m / max_range_m)
    doppler = 1.0 + min(speed_ms / DOPPLER_REFERENCE_SPEED_MS, MAX_DOPPLER_BONUS)
    return max(0.0, min(1.0, distance_factor * target_class.detection_factor * doppler))


def observe(target: Target, sensor_position: Vector3D, max_range_m: float) -> TargetObservation:
    """Build the observation of a target as seen from the radar site."""
    offset = target.position - sensor_position
    range_m = offset.magnitude
    return TargetObservation(
        target_id=target.target_id,
        position=target.position,
        velocity=target.ground_velocity,
        bearing_deg=bearing_deg(offset),
        elevation_deg=elevation_deg(offset),
        range_m=range_m,
        strength=signal_strength(target.target_class, range_m, target.speed_ms, max_range_m),
        target_class=target.target_class,
    )


# =============================================================================
# LOCK-ON
# =============================================================================

class LockState(Enum):
    """Progress of the lock-on sequence."""
    IDLE = "idle"
    TRACKING = "tracking"
    LOCKED = "locked"


class TargetTracker:
    """
    Lock-on over the detection gate's persisted records.

    A lock starts on a visible record within the lock distance band and
    builds linearly to full strength over ``lock_time_ms``. It is released
    as soon as the record leaves the persistence window.
    """

    def __init__(
        self,
        gate: DetectionGate,
        lock_time_ms: float = 2000.0,
        min_lock_distance_m: float = 1000.0,
        max_lock_distance_m: float = 12000.0
    ) -> None:
        self.gate = gate
        self.lock_time_ms = max(1.0, lock_time_ms)
        self.min_lock_distance_m = min_lock_distance_m
        self.max_lock_distance_m = max_lock_distance_m
        self._target_id: Optional[str] = None
        self._lock_start_ms: Optional[float] = None
        self._lock_strength = 0.0

    @property
    def target_id(self) -> Optional[str]:
        return self._target_id

    @property
    def lock_strength(self) -> float:
        return self._lock_strength

    @property
    def state(self) -> LockState:
        if self._target_id is None:
            return LockState.IDLE
        if self._lock_strength >= 1.0:
            return LockState.LOCKED
        return LockState.TRACKING

    @property
    def is_locked(self) -> bool:
        return self.state is LockState.LOCKED

    def _in_lock_band(self, record: DetectionRecord) -> bool:
        return self.min_lock_distance_m <= record.range_m <= self.max_lock_distance_m

    def start_tracking(self, target_id: str, now_ms: float) -> bool:
        """
        Begin locking onto a visible target.

        Returns:
            False if the target is not visible or outside the lock band.
        """
        record = self.gate.get(target_id)
        if record is None or not self.gate.is_visible(target_id, now_ms):
            return False
        if not self._in_lock_band(record):
            return False
        self._target_id = target_id
        self._lock_start_ms = now_ms
        self._lock_strength = 0.0
        return True

    def release(self) -> None:
        if self._target_id is not None:
            logger.debug("Lock released on %s", self._target_id)
        self._target_id = None
        self._lock_start_ms = None
        self._lock_strength = 0.0

    def update(self, now_ms: float) -> LockState:
        """Advance the lock timer; drop the lock when the target fades out."""
        if self._target_id is None or self._lock_start_ms is None:
            return LockState.IDLE
        if not self.gate.is_visible(self._target_id, now_ms):
            self.release()
            return LockState.IDLE
        was_locked = self.is_locked
        elapsed = max(0.0, now_ms - self._lock_start_ms)
        self._lock_strength = min(elapsed / self.lock_time_ms, 1.0)
        if self.is_locked and not was_locked:
            logger.debug("Lock acquired on %s", self._target_id)
        return self.state

    def locked_record(self) -> Optional[DetectionRecord]:
        """Record of the tracked target, locked or not."""
        if self._target_id is None:
            return None
        return self.gate.get(self._target_id)

    def best_target(self, now_ms: float) -> Optional[DetectionRecord]:
        """
        Best visible candidate for automatic lock-on.

        Closer, stronger and faster targets score higher.
        """
        best: Optional[DetectionRecord] = None
        best_score = 0.0
        for visible in self.gate.currently_visible(now_ms):
            record = visible.record
            if not self._in_lock_band(record):
                continue
            distance_score = 1.0 - record.range_m / self.max_lock_distance_m
            velocity_score = min(record.velocity.magnitude / 100.0, 1.0)
            score = distance_score * 0.4 + record.strength * 0.4 + velocity_score * 0.2
            if score > best_score:
                best_score = score
                best = record
        return best

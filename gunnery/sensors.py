"""
Directional radar detection for the gunnery fire-control core.

The sensor beam is a narrow azimuth x elevation window. A target is
detected only while the beam covers it; the last confirmed detection is
kept as an afterimage that fades over the persistence duration, so a
sweeping beam still shows everything it has recently painted.

Writes happen once per tick (``update`` for each observation, then
``purge``); reads (``currently_visible``, ``snapshot``) never modify the
store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional

from .config import SensorConfig
from .physics import Vector3D
from .targeting import TargetClass, TargetObservation

logger = logging.getLogger(__name__)


# =============================================================================
# BEAM GATE
# =============================================================================

def angular_difference(a_deg: float, b_deg: float) -> float:
    """Shortest arc between two angles, in [0, 180]."""
    diff = abs(a_deg - b_deg) % 360.0
    return 360.0 - diff if diff > 180.0 else diff


def is_within_beam(
    target_bearing_deg: float,
    target_elevation_deg: float,
    sensor_azimuth_deg: float,
    sensor_elevation_deg: float,
    beam_width_deg: float
) -> bool:
    """
    Whether a target bearing/elevation falls inside the sensor beam.

    Both the azimuth and the elevation difference (shortest arc) must be
    within half the beam width.

    Raises:
        ValueError: If beam_width_deg is negative.
    """
    if beam_width_deg < 0:
        raise ValueError(f"beam width must be non-negative, got {beam_width_deg}")
    half_width = beam_width_deg / 2.0
    return (angular_difference(target_bearing_deg, sensor_azimuth_deg) <= half_width and
            angular_difference(target_elevation_deg, sensor_elevation_deg) <= half_width)


# =============================================================================
# DETECTION RECORDS
# =============================================================================

@dataclass(frozen=True)
class DetectionRecord:
    """
    Last confirmed detection of one target.

    Attributes:
        target_id: Target identifier
        bearing_deg: Bearing at detection (0 = north)
        elevation_deg: Elevation at detection
        range_m: Slant range at detection
        strength: Signal strength at detection (0.0 - 1.0)
        timestamp_ms: Simulation time of the detection
        position: Target position at detection
        velocity: Target velocity at detection
        target_class: Reported target class
    """
    target_id: str
    bearing_deg: float
    elevation_deg: float
    range_m: float
    strength: float
    timestamp_ms: float
    position: Vector3D = field(default_factory=Vector3D.zero)
    velocity: Vector3D = field(default_factory=Vector3D.zero)
    target_class: TargetClass = TargetClass.STATIC

    def age_ms(self, now_ms: float) -> float:
        return max(0.0, now_ms - self.timestamp_ms)

    def extrapolated_position(self, now_ms: float) -> Vector3D:
        """Position dead-reckoned from the detection to ``now_ms``."""
        return self.position + self.velocity * (self.age_ms(now_ms) / 1000.0)


@dataclass(frozen=True)
class VisibleDetection:
    """A record that is still within its persistence window."""
    record: DetectionRecord
    age_ms: float
    opacity: float

    @property
    def target_id(self) -> str:
        return self.record.target_id


def afterimage_opacity(age_ms: float, persistence_ms: float, strength: float) -> float:
    """Display weight of a fading detection: (1 - age/persistence) * (0.3 + 0.7 * strength)."""
    fade = max(0.0, 1.0 - age_ms / persistence_ms)
    return fade * (0.3 + 0.7 * max(0.0, min(1.0, strength)))


# =============================================================================
# DETECTION GATE
# =============================================================================

class DetectionGate:
    """
    Beam-gated detection with time-decayed persistence.

    Owns the only mutable store in the core: target id -> DetectionRecord.
    A target id appears at most once, and a record's timestamp never moves
    backwards while the target keeps being detected.
    """

    def __init__(self, config: Optional[SensorConfig] = None) -> None:
        self.config = config or SensorConfig()
        self._records: Dict[str, DetectionRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._records

    def __iter__(self) -> Iterator[DetectionRecord]:
        return iter(list(self._records.values()))

    def get(self, target_id: str) -> Optional[DetectionRecord]:
        """Stored record for a target, regardless of age."""
        return self._records.get(target_id)

    def in_beam(
        self,
        observation: TargetObservation,
        sensor_azimuth_deg: float,
        sensor_elevation_deg: float
    ) -> bool:
        """Instantaneous gate: beam coverage, range and minimum strength."""
        if observation.range_m > self.config.max_range_m:
            return False
        if observation.strength < self.config.min_signal_strength:
            return False
        return is_within_beam(
            observation.bearing_deg,
            observation.elevation_deg,
            sensor_azimuth_deg,
            sensor_elevation_deg,
            self.config.beam_width_deg,
        )

    def update(
        self,
        observation: TargetObservation,
        sensor_azimuth_deg: float,
        sensor_elevation_deg: float,
        now_ms: float
    ) -> bool:
        """
        Record an observation if the beam currently covers it.

        Records outside the beam are left untouched; decay is applied when
        reading.

        Returns:
            True if the observation was gated in.
        """
        if not self.in_beam(observation, sensor_azimuth_deg, sensor_elevation_deg):
            return False

        previous = self._records.get(observation.target_id)
        timestamp = now_ms if previous is None else max(previous.timestamp_ms, now_ms)
        self._records[observation.target_id] = DetectionRecord(
            target_id=observation.target_id,
            bearing_deg=observation.bearing_deg,
            elevation_deg=observation.elevation_deg,
            range_m=observation.range_m,
            strength=observation.strength,
            timestamp_ms=timestamp,
            position=observation.position,
            velocity=observation.velocity,
            target_class=observation.target_class,
        )
        if previous is None:
            logger.debug("Detected %s at %.0f m, bearing %.1f", observation.target_id,
                         observation.range_m, observation.bearing_deg)
        return True

    def is_visible(self, target_id: str, now_ms: float) -> bool:
        record = self._records.get(target_id)
        return record is not None and self._is_fresh(record, now_ms)

    def _is_fresh(self, record: DetectionRecord, now_ms: float) -> bool:
        return (record.age_ms(now_ms) <= self.config.persistence_ms and
                record.range_m <= self.config.max_range_m)

    def currently_visible(self, now_ms: float) -> List[VisibleDetection]:
        """
        Records still inside the persistence window, with display opacity.

        Side-effect free: expired records are skipped here and deleted by
        ``purge``.
        """
        visible = []
        for record in self._records.values():
            if not self._is_fresh(record, now_ms):
                continue
            age = record.age_ms(now_ms)
            visible.append(VisibleDetection(
                record=record,
                age_ms=age,
                opacity=afterimage_opacity(age, self.config.persistence_ms, record.strength),
            ))
        return visible

    def purge(self, now_ms: float) -> List[str]:
        """
        Delete records older than the persistence duration.

        Run once per tick after all updates.

        Returns:
            Ids of the purged records.
        """
        expired = [
            target_id for target_id, record in self._records.items()
            if not self._is_fresh(record, now_ms)
        ]
        for target_id in expired:
            del self._records[target_id]
            logger.debug("Detection of %s expired", target_id)
        return expired

    def forget(self, target_id: str) -> None:
        """Drop a record immediately (e.g. the target was destroyed)."""
        self._records.pop(target_id, None)

    def snapshot(self) -> Mapping[str, DetectionRecord]:
        """Read-only copy of the store for concurrent solver passes."""
        return MappingProxyType(dict(self._records))

    def clear(self) -> None:
        self._records.clear()


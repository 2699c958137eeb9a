#!/usr/bin/env python3
"""
Engagement Simulation for the Gunnery Fire-Control Core.

This module implements the fixed-rate tick that wires the core together:
- Moves targets and builds their observations from the radar site
- Gates observations through the directional beam and purges old records
- Advances the lock-on sequence and keeps the lead angle current
- Steps shells in flight and scores hits

Time only advances through ``tick``; nothing reads a wall clock, so a
run is fully determined by its inputs. Every notable occurrence is
recorded as a SimulationEvent for analysis and replay.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Deque, Dict, List, Optional

from .ballistics import BallisticIntegrator, FlightStatus
from .config import GunneryConfig
from .firecontrol import InterceptSolver, LeadAngleResult, LeadAngleTracker
from .physics import Vector3D, normalize_azimuth
from .projectile import Gun, Impact, ProjectileManager, Shell
from .sensors import DetectionGate, VisibleDetection
from .targeting import LockState, Target, TargetTracker, observe

logger = logging.getLogger(__name__)


# =============================================================================
# EVENTS
# =============================================================================

class SimulationEventType(Enum):
    """Types of events that can occur during an engagement."""
    # Sensor events
    TARGET_DETECTED = auto()
    DETECTION_EXPIRED = auto()

    # Lock events
    LOCK_STARTED = auto()
    LOCK_ACQUIRED = auto()
    LOCK_LOST = auto()

    # Projectile events
    SHELL_FIRED = auto()
    GUN_READY = auto()
    SHELL_GROUNDED = auto()
    SHELL_EXPIRED = auto()
    SHELL_OUT_OF_RANGE = auto()
    TARGET_HIT = auto()

    # Flow events
    SIMULATION_STARTED = auto()
    SIMULATION_ENDED = auto()


_TERMINAL_EVENTS = {
    FlightStatus.GROUNDED: SimulationEventType.SHELL_GROUNDED,
    FlightStatus.EXPIRED: SimulationEventType.SHELL_EXPIRED,
    FlightStatus.OUT_OF_RANGE: SimulationEventType.SHELL_OUT_OF_RANGE,
}


@dataclass
class SimulationEvent:
    """
    An event that occurred during the engagement.

    Attributes:
        event_type: The type of event
        timestamp_ms: Simulation time of the event
        target_id: Target involved, if any
        shell_id: Shell involved, if any
        data: Additional event-specific data
    """
    event_type: SimulationEventType
    timestamp_ms: float
    target_id: Optional[str] = None
    shell_id: Optional[str] = None
    data: dict = field(default_factory=dict)

    def __str__(self) -> str:
        target_str = f" -> {self.target_id}" if self.target_id else ""
        shell_str = f" [{self.shell_id}]" if self.shell_id else ""
        return f"T+{self.timestamp_ms / 1000.0:.2f}s {self.event_type.name}{shell_str}{target_str}"


@dataclass(frozen=True)
class TickReport:
    """What one tick produced, for the presentation layer."""
    time_ms: float
    detections: List[VisibleDetection]
    lock_state: LockState
    lock_strength: float
    locked_target_id: Optional[str]
    lead_angle: Optional[LeadAngleResult]
    impacts: List[Impact]
    events: List[SimulationEvent]


# =============================================================================
# ENGAGEMENT SIMULATION
# =============================================================================

class EngagementSimulation:
    """
    One gun and its co-located radar against a set of targets.

    Usage:
        sim = EngagementSimulation()
        sim.add_target(Target("t1", TargetClass.MOVING_SLOW, position, velocity))
        sim.point_sensor(azimuth, elevation)
        report = sim.tick()
        sim.lock("t1")
        ...
        sim.fire()

    Attributes:
        config: Static configuration
        gun_position: Gun and radar position
        gun: Reload and ammunition state of the gun
        current_time_ms: Simulation clock
        targets: Target id -> Target
        events: Events so far (the most recent ``max_events`` when bounded)
    """

    def __init__(
        self,
        config: Optional[GunneryConfig] = None,
        gun_position: Vector3D = Vector3D(0.0, 0.0, 0.0),
        gun: Optional[Gun] = None,
        max_events: Optional[int] = None
    ) -> None:
        self.config = config or GunneryConfig()
        self.gun_position = gun_position
        self.gun = gun or Gun()
        self.current_time_ms = 0.0

        self.integrator = BallisticIntegrator(self.config.ballistics)
        self.gate = DetectionGate(self.config.sensor)
        self.tracker = TargetTracker(self.gate)
        self.solver = InterceptSolver(self.integrator, self.config.solver, self.config.sensor)
        self.lead_tracker = LeadAngleTracker(self.solver, gun_position)
        self.projectiles = ProjectileManager(self.integrator, gun_position)

        self.targets: Dict[str, Target] = {}
        self.sensor_azimuth_deg = 0.0
        self.sensor_elevation_deg = 0.0

        self.events: Deque[SimulationEvent] = deque(maxlen=max_events)
        self._event_callbacks: List[Callable[[SimulationEvent], None]] = []
        self._tick_events: List[SimulationEvent] = []
        self._impacts: List[Impact] = []

    # -------------------------------------------------------------------------
    # Setup and commands
    # -------------------------------------------------------------------------

    def add_target(self, target: Target) -> None:
        self.targets[target.target_id] = target

    def add_event_callback(self, callback: Callable[[SimulationEvent], None]) -> None:
        self._event_callbacks.append(callback)

    def point_sensor(self, azimuth_deg: float, elevation_deg: float) -> None:
        """Steer the radar beam."""
        self.sensor_azimuth_deg = normalize_azimuth(azimuth_deg)
        self.sensor_elevation_deg = elevation_deg

    def lock(self, target_id: Optional[str] = None) -> bool:
        """
        Start locking onto a target, or onto the best candidate if no id is given.

        Returns:
            True if tracking started.
        """
        if target_id is None:
            best = self.tracker.best_target(self.current_time_ms)
            if best is None:
                return False
            target_id = best.target_id
        if not self.tracker.start_tracking(target_id, self.current_time_ms):
            return False
        self.lead_tracker.clear()
        self._log_event(SimulationEventType.LOCK_STARTED, target_id=target_id)
        return True

    def unlock(self) -> None:
        target_id = self.tracker.target_id
        self.tracker.release()
        self.lead_tracker.clear()
        if target_id is not None:
            self._log_event(SimulationEventType.LOCK_LOST, target_id=target_id,
                            data={"reason": "released"})

    def fire(
        self,
        azimuth_deg: Optional[float] = None,
        elevation_deg: Optional[float] = None
    ) -> Optional[Shell]:
        """
        Fire one shell.

        Without explicit angles the current lead angle is used, and only
        if it converged.

        Returns:
            The fired shell, or None if there is nothing to fire at, the
            gun is reloading or out of ammunition, or the projectile cap
            is reached.
        """
        if azimuth_deg is None or elevation_deg is None:
            lead = self.lead_tracker.lead_angle
            if lead is None or not lead.converged:
                return None
            azimuth_deg, elevation_deg = lead.lead_angle

        if not self.gun.can_fire():
            logger.debug("Gun %s, not firing", self.gun.state.value)
            return None

        shell = self.projectiles.fire(azimuth_deg, elevation_deg, self.current_time_ms)
        if shell is None:
            return None
        self.gun.fire()
        logger.info("Shell %s fired at az %.2f el %.2f", shell.shell_id, azimuth_deg, elevation_deg)
        self._log_event(
            SimulationEventType.SHELL_FIRED,
            target_id=self.tracker.target_id,
            shell_id=shell.shell_id,
            data={"azimuth_deg": azimuth_deg, "elevation_deg": elevation_deg,
                  "ammunition": self.gun.ammunition},
        )
        return shell

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self, dt_seconds: Optional[float] = None) -> TickReport:
        """
        Advance the engagement by one timestep.

        Args:
            dt_seconds: Step length; defaults to the integrator timestep.
                Shells always advance one integrator step per tick.

        Returns:
            TickReport for this tick.

        Raises:
            ValueError: If dt_seconds is negative.
        """
        dt = self.config.ballistics.timestep_s if dt_seconds is None else dt_seconds
        if dt < 0:
            raise ValueError(f"dt_seconds must be non-negative, got {dt}")

        self._tick_events = []
        self._impacts = []
        self.current_time_ms += dt * 1000.0
        now = self.current_time_ms

        self._update_targets(dt)
        if self.gun.update(dt):
            self._log_event(SimulationEventType.GUN_READY, data={"ammunition": self.gun.ammunition})
        self._update_sensor(now)
        self._update_lock(now)

        locked = self.tracker.locked_record() if self.tracker.is_locked else None
        self.lead_tracker.update(dt, locked, now)

        self._update_projectiles()

        return TickReport(
            time_ms=now,
            detections=self.gate.currently_visible(now),
            lock_state=self.tracker.state,
            lock_strength=self.tracker.lock_strength,
            locked_target_id=self.tracker.target_id,
            lead_angle=self.lead_tracker.lead_angle,
            impacts=list(self._impacts),
            events=list(self._tick_events),
        )

    def run(self, duration_s: float) -> List[SimulationEvent]:
        """Tick for ``duration_s`` of simulated time and return all events."""
        self._log_event(SimulationEventType.SIMULATION_STARTED)
        end_ms = self.current_time_ms + duration_s * 1000.0
        while self.current_time_ms < end_ms:
            self.tick()
        self._log_event(SimulationEventType.SIMULATION_ENDED, data={
            "duration_ms": self.current_time_ms,
            "targets_destroyed": sum(1 for t in self.targets.values() if t.destroyed),
            "shells_in_flight": len(self.projectiles),
            "ammunition": self.gun.ammunition,
        })
        return list(self.events)

    def _update_targets(self, dt: float) -> None:
        for target in self.targets.values():
            target.update(dt)

    def _update_sensor(self, now: float) -> None:
        max_range = self.config.sensor.max_range_m
        for target in self.targets.values():
            if target.destroyed:
                continue
            known = target.target_id in self.gate
            observation = observe(target, self.gun_position, max_range)
            gated = self.gate.update(observation, self.sensor_azimuth_deg,
                                     self.sensor_elevation_deg, now)
            if gated and not known:
                self._log_event(SimulationEventType.TARGET_DETECTED, target_id=target.target_id,
                                data={"range_m": observation.range_m,
                                      "strength": observation.strength})

        for target_id in self.gate.purge(now):
            self._log_event(SimulationEventType.DETECTION_EXPIRED, target_id=target_id)

    def _update_lock(self, now: float) -> None:
        previous_state = self.tracker.state
        target_id = self.tracker.target_id
        state = self.tracker.update(now)
        if state is LockState.LOCKED and previous_state is not LockState.LOCKED:
            logger.info("Lock acquired on %s", target_id)
            self._log_event(SimulationEventType.LOCK_ACQUIRED, target_id=target_id)
        elif state is LockState.IDLE and previous_state is not LockState.IDLE:
            logger.info("Lock lost on %s", target_id)
            self.lead_tracker.clear()
            self._log_event(SimulationEventType.LOCK_LOST, target_id=target_id,
                            data={"reason": "target faded"})

    def _update_projectiles(self) -> None:
        finished = self.projectiles.advance()
        impacts = self.projectiles.check_collisions(self.targets.values())

        for impact in impacts:
            self._impacts.append(impact)
            self.gate.forget(impact.target_id)
            self._log_event(SimulationEventType.TARGET_HIT, target_id=impact.target_id,
                            shell_id=impact.shell_id,
                            data={"miss_distance_m": impact.miss_distance_m})
            if impact.target_id == self.tracker.target_id:
                self.unlock()

        for shell in finished:
            if shell.hit_target_id is not None:
                continue
            self._log_event(_TERMINAL_EVENTS[shell.status], shell_id=shell.shell_id,
                            data={"position": shell.position.to_tuple(),
                                  "flight_time_s": shell.state.flight_time_s})

    def _log_event(
        self,
        event_type: SimulationEventType,
        target_id: Optional[str] = None,
        shell_id: Optional[str] = None,
        data: Optional[dict] = None
    ) -> SimulationEvent:
        """Record an event and notify callbacks."""
        event = SimulationEvent(
            event_type=event_type,
            timestamp_ms=self.current_time_ms,
            target_id=target_id,
            shell_id=shell_id,
            data=data or {},
        )
        self.events.append(event)
        self._tick_events.append(event)
        for callback in self._event_callbacks:
            callback(event)
        return event

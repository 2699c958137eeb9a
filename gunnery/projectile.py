#!/usr/bin/env python3
"""
Projectile Management for the Gunnery Fire-Control Core

Tracks the shells currently in flight:
- Shell: one fired projectile, stepped by the shared integrator
- Gun: reload timer and ammunition count gating each shot
- ProjectileManager: launch, per-tick advance, impact checks, trails

The gun is stationary, so a shell's launch velocity is the muzzle
velocity along the gun's azimuth and elevation; nothing is inherited.
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, Iterable, List, Optional

from .ballistics import (
    BallisticIntegrator,
    FlightStatus,
    ProjectileState,
    launch_velocity,
)
from .physics import Vector3D
from .targeting import Target

logger = logging.getLogger(__name__)

MAX_ACTIVE_PROJECTILES = 10
COLLISION_DISTANCE_M = 5.0
MAX_TRAIL_POINTS = 200


# =============================================================================
# SHELL
# =============================================================================

@dataclass
class Shell:
    """
    A fired shell.

    Attributes:
        shell_id: Identifier, unique within a manager
        state: Current integrator state
        fired_at_ms: Simulation time of launch
        azimuth_deg: Gun azimuth at launch
        elevation_deg: Gun elevation at launch
        trail: Recent positions for display, oldest first
        hit_target_id: Target the shell struck, if any
    """
    shell_id: str
    state: ProjectileState
    fired_at_ms: float
    azimuth_deg: float
    elevation_deg: float
    trail: Deque[Vector3D] = field(default_factory=lambda: deque(maxlen=MAX_TRAIL_POINTS))
    hit_target_id: Optional[str] = None

    @property
    def position(self) -> Vector3D:
        return self.state.position

    @property
    def is_active(self) -> bool:
        return self.hit_target_id is None and self.state.is_active

    @property
    def status(self) -> FlightStatus:
        return self.state.status


@dataclass(frozen=True)
class Impact:
    """A shell that passed within collision distance of a target."""
    shell_id: str
    target_id: str
    position: Vector3D
    miss_distance_m: float


# =============================================================================
# GUN
# =============================================================================

class GunType(Enum):
    """Gun size, which sets the reload time and magazine depth."""
    LIGHT = "light"
    STANDARD = "standard"
    HEAVY = "heavy"

    @property
    def reload_time_s(self) -> float:
        return _RELOAD_TIMES_S[self]

    @property
    def magazine(self) -> int:
        return _MAGAZINES[self]


_RELOAD_TIMES_S: Dict[GunType, float] = {
    GunType.LIGHT: 3.0,
    GunType.STANDARD: 5.0,
    GunType.HEAVY: 8.0,
}

_MAGAZINES: Dict[GunType, int] = {
    GunType.LIGHT: 80,
    GunType.STANDARD: 50,
    GunType.HEAVY: 30,
}


class GunState(Enum):
    READY = "ready"
    RELOADING = "reloading"
    EMPTY = "empty"


@dataclass
class Gun:
    """
    Breech and magazine of the gun.

    Each shot uses one round and starts a reload; the gun cannot fire
    again until ``update`` has run the reload timer down.

    Attributes:
        gun_type: Size of the gun
        ammunition: Rounds left (defaults to a full magazine)
        reload_time_s: Time between shots (defaults to the gun type's)
        reload_remaining_s: Time until the breech is closed again
    """
    gun_type: GunType = GunType.STANDARD
    ammunition: Optional[int] = None
    reload_time_s: Optional[float] = None
    reload_remaining_s: float = 0.0

    def __post_init__(self) -> None:
        if self.ammunition is None:
            self.ammunition = self.gun_type.magazine
        if self.reload_time_s is None:
            self.reload_time_s = self.gun_type.reload_time_s
        if self.ammunition < 0 or self.reload_time_s < 0:
            raise ValueError("ammunition and reload time must be non-negative")

    @property
    def state(self) -> GunState:
        if self.reload_remaining_s > 0:
            return GunState.RELOADING
        if self.ammunition <= 0:
            return GunState.EMPTY
        return GunState.READY

    @property
    def reload_progress(self) -> float:
        """Fraction of the current reload completed (1.0 when not reloading)."""
        if self.reload_remaining_s <= 0 or not self.reload_time_s:
            return 1.0
        return 1.0 - self.reload_remaining_s / self.reload_time_s

    def can_fire(self) -> bool:
        return self.state is GunState.READY

    def fire(self) -> bool:
        """Use one round and start reloading. Returns False if the gun is not ready."""
        if not self.can_fire():
            return False
        self.ammunition -= 1
        self.reload_remaining_s = self.reload_time_s
        return True

    def update(self, dt_seconds: float) -> bool:
        """
        Run the reload timer.

        Returns:
            True on the update that finishes a reload.
        """
        if self.reload_remaining_s <= 0:
            return False
        self.reload_remaining_s = max(0.0, self.reload_remaining_s - dt_seconds)
        return self.reload_remaining_s == 0.0

    def restock(self, rounds: int) -> None:
        """Add rounds, up to a full magazine."""
        self.ammunition = min(self.gun_type.magazine, self.ammunition + max(0, rounds))


# =============================================================================
# MANAGER
# =============================================================================

class ProjectileManager:
    """
    Lifecycle of the shells fired by one gun.

    At most ``max_active`` shells are in flight at once. Each call to
    ``advance`` steps every shell one integrator timestep; shells that
    stop flying are handed back once and dropped.
    """

    def __init__(
        self,
        integrator: BallisticIntegrator,
        gun_position: Vector3D = Vector3D(0.0, 0.0, 0.0),
        max_active: int = MAX_ACTIVE_PROJECTILES,
        collision_distance_m: float = COLLISION_DISTANCE_M
    ) -> None:
        self.integrator = integrator
        self.gun_position = gun_position
        self.max_active = max_active
        self.collision_distance_m = collision_distance_m
        self._shells: List[Shell] = []
        self._ids = itertools.count(1)
        # Positions before the latest step, for swept collision checks
        self._previous: dict[str, Vector3D] = {}
        self._stepped: List[Shell] = []

    def __len__(self) -> int:
        return len(self._shells)

    @property
    def active_shells(self) -> List[Shell]:
        return list(self._shells)

    def fire(self, azimuth_deg: float, elevation_deg: float, now_ms: float) -> Optional[Shell]:
        """
        Launch a shell from the gun position.

        Returns:
            The new shell, or None when the active-projectile cap is reached.
        """
        if len(self._shells) >= self.max_active:
            logger.debug("Projectile cap reached (%d), not firing", self.max_active)
            return None

        velocity = launch_velocity(azimuth_deg, elevation_deg, self.integrator.constants.muzzle_velocity_ms)
        shell = Shell(
            shell_id=f"shell-{next(self._ids)}",
            state=ProjectileState(
                position=self.gun_position,
                velocity=velocity,
                origin=self.gun_position,
            ),
            fired_at_ms=now_ms,
            azimuth_deg=azimuth_deg,
            elevation_deg=elevation_deg,
        )
        shell.trail.append(self.gun_position)
        self._shells.append(shell)
        logger.debug("Fired %s at az %.2f el %.2f", shell.shell_id, azimuth_deg, elevation_deg)
        return shell

    def advance(self) -> List[Shell]:
        """
        Step every active shell by one integrator timestep.

        Returns:
            Shells that reached a terminal state during this step.
        """
        finished: List[Shell] = []
        self._previous = {}
        self._stepped = list(self._shells)
        for shell in self._stepped:
            self._previous[shell.shell_id] = shell.state.position
            shell.state = self.integrator.step(shell.state)
            shell.trail.append(shell.state.position)
            if shell.state.status.is_terminal:
                logger.debug("%s %s after %.2fs", shell.shell_id, shell.state.status.value,
                             shell.state.flight_time_s)
                finished.append(shell)
        self._shells = [s for s in self._shells if s.is_active]
        return finished

    def check_collisions(self, targets: Iterable[Target]) -> List[Impact]:
        """
        Shells whose last step passed within collision distance of a target.

        The path between the previous and current position is tested, so
        fast shells cannot skip over a target between ticks. Shells that
        went terminal in the last ``advance`` are included, so a shell
        grounding on a ground target still scores. Each hit destroys the
        target and removes the shell.
        """
        impacts: List[Impact] = []
        live_targets = [t for t in targets if not t.destroyed]
        for shell in self._stepped:
            if shell.hit_target_id is not None:
                continue
            start = self._previous.get(shell.shell_id, shell.position)
            for target in live_targets:
                if target.destroyed:
                    continue
                distance, point = _segment_distance(start, shell.position, target.position)
                if distance <= self.collision_distance_m:
                    target.destroy()
                    shell.hit_target_id = target.target_id
                    impacts.append(Impact(shell.shell_id, target.target_id, point, distance))
                    logger.info("%s hit %s (miss %.1f m)", shell.shell_id, target.target_id, distance)
                    break
        self._shells = [s for s in self._shells if s.is_active]
        return impacts

    def trajectories(self) -> List[List[Vector3D]]:
        """Trail of every shell in flight, for display."""
        return [list(shell.trail) for shell in self._shells]

    def clear(self) -> None:
        self._shells = []
        self._previous = {}
        self._stepped = []


def _segment_distance(start: Vector3D, end: Vector3D, point: Vector3D) -> tuple[float, Vector3D]:
    segment = end - start
    length_sq = segment.magnitude_squared
    if length_sq == 0:
        return start.distance_to(point), start
    fraction = max(0.0, min(1.0, (point - start).dot(segment) / length_sq))
    closest = start + segment * fraction
    return closest.distance_to(point), closest

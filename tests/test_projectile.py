#!/usr/bin/env python3
"""
Test Suite for Projectile Management

Tests cover:
1. Firing and the active-projectile cap
2. Per-tick advance and terminal hand-back
3. Swept collision checks against targets
4. Trail history
5. Gun reload timer and ammunition
"""

import pytest

from gunnery.ballistics import FlightStatus, launch_velocity
from gunnery.physics import Vector3D
from gunnery.projectile import (
    MAX_ACTIVE_PROJECTILES,
    MAX_TRAIL_POINTS,
    Gun,
    GunState,
    GunType,
    ProjectileManager,
)
from gunnery.targeting import Target, TargetClass


@pytest.fixture
def manager(slow_vacuum_integrator):
    return ProjectileManager(slow_vacuum_integrator, Vector3D.zero())


def run_until_done(manager, max_ticks=2000):
    finished = []
    for _ in range(max_ticks):
        finished.extend(manager.advance())
        if not len(manager):
            break
    return finished


class TestFiring:

    def test_fire_creates_shell(self, manager):
        shell = manager.fire(30.0, 45.0, now_ms=500.0)
        assert shell is not None
        assert shell.is_active
        assert shell.fired_at_ms == 500.0
        assert shell.position == Vector3D.zero()
        assert shell.state.velocity == launch_velocity(30.0, 45.0, 100.0)
        assert len(manager) == 1

    def test_shell_ids_are_unique(self, manager):
        ids = {manager.fire(0.0, 45.0, 0.0).shell_id for _ in range(5)}
        assert len(ids) == 5

    def test_active_cap(self, manager):
        for _ in range(MAX_ACTIVE_PROJECTILES):
            assert manager.fire(0.0, 45.0, 0.0) is not None
        assert manager.fire(0.0, 45.0, 0.0) is None
        assert len(manager) == MAX_ACTIVE_PROJECTILES

    def test_cap_frees_after_landing(self, slow_vacuum_integrator):
        manager = ProjectileManager(slow_vacuum_integrator, max_active=1)
        manager.fire(0.0, 10.0, 0.0)
        assert manager.fire(0.0, 10.0, 0.0) is None
        run_until_done(manager)
        assert manager.fire(0.0, 10.0, 0.0) is not None


class TestAdvance:

    def test_advance_moves_shells(self, manager):
        shell = manager.fire(0.0, 45.0, 0.0)
        manager.advance()
        assert shell.position.y > 0
        assert shell.state.flight_time_s == pytest.approx(1.0 / 60.0)

    def test_terminal_shell_returned_once(self, manager):
        shell = manager.fire(0.0, 30.0, 0.0)
        finished = run_until_done(manager)
        assert finished == [shell]
        assert shell.status is FlightStatus.GROUNDED
        assert not shell.is_active
        assert manager.advance() == []

    def test_clear(self, manager):
        manager.fire(0.0, 30.0, 0.0)
        manager.clear()
        assert len(manager) == 0
        assert manager.trajectories() == []


class TestCollisions:

    def test_hit_in_flight(self, manager, slow_vacuum_integrator):
        # Park a target on the shell's path, 30 ticks after launch
        path = slow_vacuum_integrator.fire(0.0, 45.0).states()
        target = Target("t1", TargetClass.STATIC, path[30].position)

        shell = manager.fire(0.0, 45.0, 0.0)
        impacts = []
        for _ in range(40):
            manager.advance()
            impacts.extend(manager.check_collisions([target]))
            if impacts:
                break

        assert len(impacts) == 1
        assert impacts[0].shell_id == shell.shell_id
        assert impacts[0].target_id == "t1"
        assert impacts[0].miss_distance_m <= 5.0
        assert target.destroyed
        assert shell.hit_target_id == "t1"
        assert len(manager) == 0

    def test_swept_check_catches_fast_shell(self, vacuum_integrator):
        # 827 m/s covers ~14 m per tick; a target between samples is still hit
        manager = ProjectileManager(vacuum_integrator)
        path = vacuum_integrator.fire(0.0, 5.0).states()
        between = path[10].position + (path[11].position - path[10].position) * 0.5
        target = Target("t1", TargetClass.STATIC, between)

        manager.fire(0.0, 5.0, 0.0)
        hits = []
        for _ in range(12):
            manager.advance()
            hits.extend(manager.check_collisions([target]))
        assert [impact.target_id for impact in hits] == ["t1"]

    def test_grounding_shell_hits_ground_target(self, manager, slow_vacuum_integrator):
        path = slow_vacuum_integrator.fire(0.0, 20.0).states()
        landing = path[-1].position
        target = Target("t1", TargetClass.STATIC, Vector3D(landing.x, landing.y, 0.0))

        manager.fire(0.0, 20.0, 0.0)
        impacts = []
        while len(manager):
            manager.advance()
            impacts.extend(manager.check_collisions([target]))
        assert len(impacts) == 1
        assert target.destroyed

    def test_miss(self, manager):
        target = Target("t1", TargetClass.STATIC, Vector3D(500.0, 0.0, 0.0))
        manager.fire(0.0, 45.0, 0.0)
        impacts = []
        while len(manager):
            manager.advance()
            impacts.extend(manager.check_collisions([target]))
        assert impacts == []
        assert not target.destroyed

    def test_destroyed_targets_ignored(self, manager, slow_vacuum_integrator):
        path = slow_vacuum_integrator.fire(0.0, 45.0).states()
        target = Target("t1", TargetClass.STATIC, path[5].position, destroyed=True)
        manager.fire(0.0, 45.0, 0.0)
        for _ in range(10):
            manager.advance()
            assert manager.check_collisions([target]) == []


class TestTrail:

    def test_trail_starts_at_gun(self, manager):
        shell = manager.fire(0.0, 45.0, 0.0)
        manager.advance()
        trail = manager.trajectories()[0]
        assert trail[0] == Vector3D.zero()
        assert trail[-1] == shell.position

    def test_trail_capped(self, manager):
        shell = manager.fire(0.0, 45.0, 0.0)
        for _ in range(MAX_TRAIL_POINTS + 50):
            manager.advance()
        assert len(shell.trail) == MAX_TRAIL_POINTS
        assert shell.trail[-1] == shell.position


# =============================================================================
# GUN
# =============================================================================

class TestGun:

    @pytest.mark.parametrize(
        "gun_type,reload_s,magazine",
        [
            (GunType.LIGHT, 3.0, 80),
            (GunType.STANDARD, 5.0, 50),
            (GunType.HEAVY, 8.0, 30),
        ],
        ids=["light", "standard", "heavy"],
    )
    def test_type_defaults(self, gun_type, reload_s, magazine):
        gun = Gun(gun_type)
        assert gun.reload_time_s == reload_s
        assert gun.ammunition == magazine
        assert gun.state is GunState.READY

    def test_fire_starts_reload(self):
        gun = Gun(GunType.LIGHT)
        assert gun.fire()
        assert gun.ammunition == 79
        assert gun.state is GunState.RELOADING
        assert not gun.fire()
        assert gun.ammunition == 79

    def test_reload_completes(self):
        gun = Gun(GunType.LIGHT)
        gun.fire()
        assert not gun.update(1.5)
        assert gun.reload_progress == pytest.approx(0.5)
        assert gun.update(1.5)
        assert gun.state is GunState.READY
        assert not gun.update(1.0)
        assert gun.fire()

    def test_empty_gun_refuses(self):
        gun = Gun(ammunition=1, reload_time_s=0.5)
        assert gun.fire()
        gun.update(0.5)
        assert gun.state is GunState.EMPTY
        assert not gun.fire()

    def test_restock_caps_at_magazine(self):
        gun = Gun(GunType.HEAVY, ammunition=0)
        gun.restock(100)
        assert gun.ammunition == 30
        assert gun.can_fire()

    def test_negative_ammunition_rejected(self):
        with pytest.raises(ValueError):
            Gun(ammunition=-1)

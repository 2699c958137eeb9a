#!/usr/bin/env python3
"""
Run a scripted artillery engagement and print fire-control readouts.

The radar is pointed at a single target, locks on, and the gun fires on
the lead angle once the solution has converged.

Usage:
    python scripts/run_engagement.py --verbose
    python scripts/run_engagement.py --range 12000 --bearing 45 --speed 60
    python scripts/run_engagement.py --config gunnery.json --coriolis
"""

import argparse
import logging
import math
import sys
from pathlib import Path

# Add the project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gunnery.config import ConfigurationError, GunneryConfig
from gunnery.physics import Vector3D, direction_from_angles
from gunnery.simulation import EngagementSimulation
from gunnery.targeting import LockState, Target, TargetClass


def build_simulation(args: argparse.Namespace) -> EngagementSimulation:
    if args.config:
        config = GunneryConfig.from_json(args.config)
    else:
        config = GunneryConfig.from_env()
    if args.coriolis:
        config = GunneryConfig(
            ballistics=config.ballistics.with_overrides(coriolis_enabled=True),
            sensor=config.sensor,
            solver=config.solver,
        )

    sim = EngagementSimulation(config)
    bearing = math.radians(args.bearing)
    position = Vector3D(args.range * math.sin(bearing), args.range * math.cos(bearing), args.altitude)
    velocity = direction_from_angles(args.heading, 0.0) * args.speed
    target_class = TargetClass.STATIC if args.speed == 0 else (
        TargetClass.MOVING_FAST if args.speed > 100 else TargetClass.MOVING_SLOW
    )
    sim.add_target(Target("target-1", target_class, position, velocity))
    sim.point_sensor(args.bearing, math.degrees(math.atan2(args.altitude, args.range)))
    return sim


def main():
    parser = argparse.ArgumentParser(
        description="Run a scripted artillery engagement",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python scripts/run_engagement.py --verbose
    python scripts/run_engagement.py --range 12000 --bearing 45 --speed 60 --heading 270
        """,
    )

    # Target geometry
    parser.add_argument("--range", type=float, default=8000.0,
                        help="Initial horizontal range to target in meters (default: 8000)")
    parser.add_argument("--bearing", type=float, default=30.0,
                        help="Initial compass bearing to target in degrees (default: 30)")
    parser.add_argument("--altitude", type=float, default=0.0,
                        help="Target altitude in meters (default: 0)")
    parser.add_argument("--speed", type=float, default=15.0,
                        help="Target speed in m/s (default: 15)")
    parser.add_argument("--heading", type=float, default=90.0,
                        help="Target compass heading in degrees (default: 90)")

    # Simulation settings
    parser.add_argument("--duration", type=float, default=40.0,
                        help="Simulated seconds to run (default: 40)")
    parser.add_argument("--config", type=Path, default=None,
                        help="JSON configuration file (default: GUNNERY_* environment)")
    parser.add_argument("--coriolis", action="store_true",
                        help="Enable the Coriolis force")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    try:
        sim = build_simulation(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    print("=" * 60)
    print("GUNNERY ENGAGEMENT")
    print("=" * 60)
    print(f"Target: {args.range:.0f} m @ {args.bearing:.1f} deg, alt {args.altitude:.0f} m, "
          f"{args.speed:.1f} m/s heading {args.heading:.0f}")
    print()

    end_ms = args.duration * 1000.0
    shot_fired = False
    last_print_ms = -1000.0
    while sim.current_time_ms < end_ms:
        report = sim.tick()

        if not shot_fired and report.lock_state is LockState.IDLE and report.detections:
            sim.lock(report.detections[0].target_id)

        lead = report.lead_angle
        if not shot_fired and report.lock_state is LockState.LOCKED and lead is not None and lead.converged:
            shell = sim.fire()
            if shell is not None:
                shot_fired = True
                print(f"T+{report.time_ms / 1000.0:6.2f}s FIRE az {lead.azimuth_deg:7.3f} "
                      f"el {lead.elevation_deg:6.3f} ToF {lead.flight_time_s:5.2f}s "
                      f"[{lead.confidence.value}]")
                # One shot per run; stop re-solving while it flies
                sim.unlock()

        if report.time_ms - last_print_ms >= 1000.0:
            last_print_ms = report.time_ms
            lead_str = "--"
            if lead is not None:
                lead_str = (f"az {lead.azimuth_deg:7.3f} el {lead.elevation_deg:6.3f} "
                            f"{lead.confidence.value}")
            print(f"T+{report.time_ms / 1000.0:6.2f}s lock {report.lock_state.value:8s} "
                  f"{report.lock_strength:4.0%} lead {lead_str}")

        for impact in report.impacts:
            print(f"T+{report.time_ms / 1000.0:6.2f}s HIT {impact.target_id} "
                  f"(miss {impact.miss_distance_m:.2f} m)")

        if shot_fired and not len(sim.projectiles):
            break

    print()
    print("Events:")
    for event in sim.events:
        print(f"  {event}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

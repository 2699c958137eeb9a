"""Artillery fire-control core: ballistics, radar gating and intercept solving."""

from .physics import (
    # Vector math
    Vector3D,
    # Forces
    gravity,
    drag,
    coriolis,
    sum_forces,
    # Angles
    bearing_deg,
    elevation_deg,
    direction_from_angles,
    normalize_azimuth,
)

from .config import (
    BallisticConstants,
    ConfigurationError,
    GunneryConfig,
    GunneryError,
    SensorConfig,
    SolverConfig,
)

from .ballistics import (
    Approach,
    BallisticIntegrator,
    FlightStatus,
    ProjectileState,
    Trajectory,
    closest_approach,
    impact_point,
    launch_velocity,
    max_range,
    trajectory_points,
)

from .targeting import (
    LockState,
    Target,
    TargetClass,
    TargetObservation,
    TargetTracker,
    observe,
    signal_strength,
)

from .sensors import (
    DetectionGate,
    DetectionRecord,
    VisibleDetection,
    angular_difference,
    is_within_beam,
)

from .firecontrol import (
    # Result types
    Confidence,
    LeadAngleResult,
    Unconverged,
    Converged,
    ConvergedHigh,
    ConvergedMedium,
    ConvergedLow,
    # Solvers
    InterceptSolver,
    LeadAngleTracker,
    vacuum_elevation,
)

from .projectile import (
    Gun,
    GunState,
    GunType,
    Impact,
    ProjectileManager,
    Shell,
)

from .simulation import (
    EngagementSimulation,
    SimulationEvent,
    SimulationEventType,
    TickReport,
)

__all__ = [
    # Physics
    "Vector3D",
    "gravity",
    "drag",
    "coriolis",
    "sum_forces",
    "bearing_deg",
    "elevation_deg",
    "direction_from_angles",
    "normalize_azimuth",
    # Configuration
    "BallisticConstants",
    "ConfigurationError",
    "GunneryConfig",
    "GunneryError",
    "SensorConfig",
    "SolverConfig",
    # Ballistics
    "Approach",
    "BallisticIntegrator",
    "FlightStatus",
    "ProjectileState",
    "Trajectory",
    "closest_approach",
    "impact_point",
    "launch_velocity",
    "max_range",
    "trajectory_points",
    # Targeting
    "LockState",
    "Target",
    "TargetClass",
    "TargetObservation",
    "TargetTracker",
    "observe",
    "signal_strength",
    # Sensors
    "DetectionGate",
    "DetectionRecord",
    "VisibleDetection",
    "angular_difference",
    "is_within_beam",
    # Fire control
    "Confidence",
    "LeadAngleResult",
    "Unconverged",
    "Converged",
    "ConvergedHigh",
    "ConvergedMedium",
    "ConvergedLow",
    "InterceptSolver",
    "LeadAngleTracker",
    "vacuum_elevation",
    # Projectiles
    "Gun",
    "GunState",
    "GunType",
    "Impact",
    "ProjectileManager",
    "Shell",
    # Simulation
    "EngagementSimulation",
    "SimulationEvent",
    "SimulationEventType",
    "TickReport",
]

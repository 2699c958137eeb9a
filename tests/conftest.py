"""Shared fixtures for the gunnery test suite."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from gunnery.ballistics import BallisticIntegrator
from gunnery.config import ENV_VARIABLES, BallisticConstants


@pytest.fixture
def constants():
    """Default 155 mm shell with drag."""
    return BallisticConstants()


@pytest.fixture
def vacuum_constants():
    """Default shell without drag."""
    return BallisticConstants().without_drag()


@pytest.fixture
def integrator(constants):
    return BallisticIntegrator(constants)


@pytest.fixture
def vacuum_integrator(vacuum_constants):
    return BallisticIntegrator(vacuum_constants)


@pytest.fixture
def slow_vacuum_integrator():
    """Vacuum shell at 100 m/s, for short flights with closed-form answers."""
    return BallisticIntegrator(BallisticConstants(muzzle_velocity_ms=100.0).without_drag())


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every GUNNERY_* variable for the duration of a test."""
    for var in ENV_VARIABLES:
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    return monkeypatch

"""
Pytest Configuration and Shared Fixtures for the NF Simulator Test Suite

This module provides fixtures for:
- Settings with a tiny time scale so simulated delays take milliseconds
- Fully wired Simulation instances with a fixed random seed
- Topology fixture files written to a temporary directory
"""

import json
import pytest
from pathlib import Path

from nfsim.config.settings import BUNDLED_FIXTURE, SimulationSettings
from nfsim.simulation import Simulation


# =============================================================================
# Simulation Configuration
# =============================================================================

# Real seconds per simulated second: a 5 second stabilization takes 5ms
TEST_TIME_SCALE = 0.001
TEST_SEED = 42


def make_settings(**overrides) -> SimulationSettings:
    """Fast, seeded settings; keyword arguments override any field."""
    values = {
        "time_scale": TEST_TIME_SCALE,
        "random_seed": TEST_SEED,
        "fixture_source": BUNDLED_FIXTURE,
    }
    values.update(overrides)
    return SimulationSettings(**values)


# =============================================================================
# Simulation Fixtures
# =============================================================================

@pytest.fixture
def settings() -> SimulationSettings:
    return make_settings()


@pytest.fixture
def sim_factory():
    """Builds simulators from overridden settings."""
    def create(**overrides) -> Simulation:
        return Simulation(make_settings(**overrides))
    return create


@pytest.fixture
def sim(settings) -> Simulation:
    """A fully wired simulator using the bundled topology fixture."""
    return Simulation(settings)


@pytest.fixture
def missing_fixture_path(tmp_path) -> str:
    return str(tmp_path / "does-not-exist.json")


@pytest.fixture
def offline_sim(missing_fixture_path) -> Simulation:
    """A simulator whose topology fixture cannot be loaded."""
    return Simulation(make_settings(fixture_source=missing_fixture_path))


@pytest.fixture
def bundled_fixture_data() -> dict:
    return json.loads(Path(BUNDLED_FIXTURE).read_text(encoding="utf-8"))


@pytest.fixture
def fixture_file(tmp_path):
    """Writes a topology document to a temporary file and returns its path."""
    def write(document, name: str = "topology.json") -> str:
        path = tmp_path / name
        if isinstance(document, str):
            path.write_text(document, encoding="utf-8")
        else:
            path.write_text(json.dumps(document), encoding="utf-8")
        return str(path)
    return write


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "statistical: Tests asserting on sampled probabilities"
    )
    config.addinivalue_line(
        "markers", "integration: Tests driving several simulator components together"
    )

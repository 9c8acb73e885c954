"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import date, timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from practica.core import dates  # noqa: E402
from practica.core.feature_flags import FeatureFlagRegistry, FeatureFlagSet  # noqa: E402
from practica.core.models import MusicPiece  # noqa: E402
from practica.delivery.scheduler import PracticeScheduler  # noqa: E402
from practica.delivery.session_manager import ScheduledSessionManager  # noqa: E402
from practica.delivery.session_store import SessionStore  # noqa: E402

TODAY = date(2025, 3, 14)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (profile stores on disk)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(autouse=True)
def reference_zone():
    """Every test starts and ends on the default calendar zone."""
    dates.set_reference_zone(None)
    yield
    dates.set_reference_zone(None)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def today():
    """Fixed 'today' used by clock-injected components."""
    return TODAY


@pytest.fixture
def default_flags():
    return FeatureFlagSet()


@pytest.fixture
def registry():
    return FeatureFlagRegistry(clock=lambda: TODAY)


@pytest.fixture
def piece():
    """A piece with two bar sections."""
    p = MusicPiece(title="Prelude in C", composer="J.S. Bach", creation_date=TODAY - timedelta(days=30))
    p.add_section("1-8", target_repetitions=6)
    p.add_section("9-16", target_repetitions=8)
    return p


@pytest.fixture
def manager(tmp_path):
    store = SessionStore(tmp_path / "scheduled_sessions.json")
    return ScheduledSessionManager(store, clock=lambda: TODAY)


@pytest.fixture
def settings(tmp_path):
    return Settings(_env_file=None, data_dir=tmp_path, profile="test")


@pytest.fixture
def scheduler(settings):
    return PracticeScheduler.from_settings(settings, clock=lambda: TODAY)

"""
Main conftest.py that imports and exposes all fixtures.
Fixtures are organized by module but available globally.
"""

# Import all fixtures from their respective modules
pytest_plugins = [
    # App and core setup
    "tests.unit.fixtures.app",
    "tests.unit.fixtures.database",
    # Services
    "tests.unit.fixtures.services.billing",
    "tests.unit.fixtures.services.gateway",
    # Models
    "tests.unit.fixtures.models.tenant",
    "tests.unit.fixtures.models.bill",
]


def pytest_configure(config):
    """Configure pytest for the test suite"""
    config.addinivalue_line("markers", "unit: fast tests against in-memory MongoDB")

import pytest
from unittest.mock import patch

from app.app import create_app
from config.test import TestConfig


@pytest.fixture
def app():
    """
    Create the application with the test config.
    The session-level mongomock connection stays in place of connect_db.
    """
    with patch("app.app.connect_db") as mock_connect_db:
        app = create_app(TestConfig)
    mock_connect_db.assert_called_once_with(app)

    yield app


@pytest.fixture
def cli_runner(app):
    """Click runner bound to the test app"""
    return app.test_cli_runner()


@pytest.fixture
def services(app):
    """The app's service registry"""
    return app.extensions["services"]


__all__ = ["app", "cli_runner", "services"]

"""
Shared pytest fixtures for backend tests.

Settings are read from the environment, so the test run pins the ones
that would otherwise reach out to a camera, a token service or Redis.
"""
import os

import pytest

os.environ.setdefault("QRSCAN_TOKEN_SERVICE_URL", "http://token-service.test")
os.environ.setdefault("QRSCAN_LEDGER_BACKEND", "none")


@pytest.fixture
def restaurant_id():
    """Restaurant the station under test serves."""
    return "rest-42"


@pytest.fixture
def other_restaurant_id():
    return "rest-99"

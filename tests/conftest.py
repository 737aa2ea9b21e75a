"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any craftgate import so the settings
singleton picks them up.
"""

import os

os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("APP_IMAGE_GENERATION_LIMIT", "5")
os.environ.setdefault("APP_IMAGE_GENERATION_WINDOW_SECONDS", "300")

import pytest

from craftgate.core.rate_limit import get_image_rate_limiter


@pytest.fixture(autouse=True)
def clear_image_rate_limits():
    """Start and finish every test with an empty process-wide limiter."""
    get_image_rate_limiter().limiter.clear_all()
    yield
    get_image_rate_limiter().limiter.clear_all()

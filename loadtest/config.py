"""
Load-test configuration module.

This module defines configuration classes for the different kinds of
run (full load, smoke, unit testing).  Values are loaded from
environment variables with sensible defaults; everything that varies per
run profile (stages, thresholds, pool size) lives in the profile YAML
files instead.
"""

import os
from pathlib import Path

# Directory holding the bundled run profiles
PROFILES_DIR = Path(__file__).resolve().parent / "profiles"


class Config:
    """Base configuration with default settings."""

    # Overridden by Locust's --host when given
    BASE_URL: str = os.environ.get("BASE_URL", "http://localhost:8080")
    API_PREFIX: str = "/api/v1"

    # Must match the password used by the data-seeding script
    TEST_USER_PASSWORD: str = os.environ.get("TEST_USER_PASSWORD", "dummyPassword")

    PROFILE: str = os.environ.get("LOADTEST_PROFILE", "load")

    # Where to write the JSON metrics summary at test stop (disabled when empty)
    SUMMARY_PATH: str = os.environ.get("LOADTEST_SUMMARY_PATH", "")

    # Seconds to wait for the status endpoint before pre-authentication (0 disables)
    PREFLIGHT_TIMEOUT: float = float(os.environ.get("LOADTEST_PREFLIGHT_TIMEOUT", "0"))


class LoadConfig(Config):
    """Full ramping load run (read/write/spike scenarios)."""

    PROFILE: str = os.environ.get("LOADTEST_PROFILE", "load")
    PREFLIGHT_TIMEOUT: float = float(os.environ.get("LOADTEST_PREFLIGHT_TIMEOUT", "30"))


class SmokeConfig(Config):
    """Single-user smoke run verifying the basic endpoints respond."""

    PROFILE: str = os.environ.get("LOADTEST_PROFILE", "smoke")


class TestingConfig(Config):
    """Configuration used by the unit and integration test suites."""

    BASE_URL: str = "http://board.test"
    PROFILE: str = "load"
    SUMMARY_PATH: str = ""
    PREFLIGHT_TIMEOUT: float = 0


# Configuration mapping for easy access
config = {
    "load": LoadConfig,
    "smoke": SmokeConfig,
    "testing": TestingConfig,
    "default": LoadConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Get the configuration class for the specified environment.

    Args:
        env: Environment name (load, smoke, testing).
             If None, uses the LOADTEST_ENV environment variable.

    Returns:
        Configuration class for the specified environment.
    """
    if env is None:
        env = os.environ.get("LOADTEST_ENV", "load")
    return config.get(env, config["default"])

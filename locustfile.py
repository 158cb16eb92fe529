# ruff: noqa: E402
"""
Locust entrypoint for the board API load tests.

This is the file that the ``locust`` CLI discovers and loads.  It picks
the run profile from the environment, declares the load shape that
follows the profile's ramp stages, and wires the lifecycle hooks:
``init`` selects the user classes, ``test_start`` pre-authenticates the
identity pool, and ``quitting`` evaluates the thresholds.

Usage examples::

    # Full ramping load run (read/write/spike) against a local target:
    locust -f locustfile.py --headless --host http://localhost:8080

    # One-user smoke run:
    LOADTEST_ENV=smoke locust -f locustfile.py --headless

    # Custom profile, CSV stats for the post-run threshold check:
    LOADTEST_PROFILE=profiles/nightly.yml locust -f locustfile.py \\
        --headless --csv results/nightly
"""

from __future__ import annotations

import sys
from pathlib import Path

from locust import events

# Locust may be invoked from any directory; make the package importable
# even when it is not installed.
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from loadtest import lifecycle
from loadtest.config import get_config
from loadtest.locust_users import ReadUser, SmokeUser, WriteUser
from loadtest.profile import load_profile
from loadtest.shapes import RampingStagesShape

CONFIG = get_config()
PROFILE = load_profile(CONFIG.PROFILE)

__all__ = ["ReadUser", "WriteUser", "SmokeUser", "ProfileShape"]


class ProfileShape(RampingStagesShape):
    """Ramp stages of the selected run profile."""

    profile = PROFILE


@events.init.add_listener
def _on_init(environment, **_kwargs):
    lifecycle.setup_environment(environment, CONFIG, PROFILE)


@events.test_start.add_listener
def _on_test_start(environment, **_kwargs):
    lifecycle.preauthenticate(environment)


@events.quitting.add_listener
def _on_quitting(environment, **_kwargs):
    lifecycle.check_thresholds(environment)

"""
Load-test suite for the board API.

Drives the board application's JSON API (login, post list/detail,
comments, likes, post creation) through Locust.  Locust owns virtual-user
scheduling, ramping, and request statistics; this package supplies the
pieces that sit on top of it:

- :mod:`.identities` -- the deterministic test-user pool
- :mod:`.auth` -- one-time pre-authentication into a shared token pool
- :mod:`.actions` -- one checked, timed wrapper per API operation
- :mod:`.scenarios` -- the read, write, and smoke user journeys
- :mod:`.profile`, :mod:`.shapes`, :mod:`.thresholds` -- run profiles,
  ramp stages, and pass/fail thresholds

Key Concepts Demonstrated:
- Token pool shared read-only by every virtual user (no per-iteration login)
- Injected metrics sink, pause, and random capabilities for testability
- Threshold expressions evaluated against custom trends and rates
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

__version__ = "1.0.0"

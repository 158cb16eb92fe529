"""Readiness probe for the target system, run before pre-authentication."""

from __future__ import annotations

import logging
import time

import requests

from loadtest.actions import STATUS_PATH

logger = logging.getLogger(__name__)


def is_target_ready(base_url: str, timeout: float = 2) -> bool:
    """Return True when the load-test status endpoint responds with 200."""
    try:
        response = requests.get(f"{base_url.rstrip('/')}{STATUS_PATH}", timeout=timeout)
    except requests.RequestException:
        return False
    return response.status_code == 200


def wait_for_target(base_url: str, timeout: float = 30, interval: float = 1) -> None:
    """
    Poll the status endpoint until it is ready or ``timeout`` elapses.

    Raises:
        RuntimeError: If the target never became ready.
    """
    deadline = time.time() + timeout
    while time.time() < deadline:
        if is_target_ready(base_url):
            logger.info("Target %s is ready", base_url)
            return
        time.sleep(interval)
    raise RuntimeError(f"Target at {base_url} not ready after {timeout}s")

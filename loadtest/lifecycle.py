"""
Run lifecycle hooks registered by the locustfile.

- :func:`setup_environment` (``init``): attach the run state, resolve the
  host, and narrow ``environment.user_classes`` to the profile's journeys.
- :func:`preauthenticate` (``test_start``): optional readiness probe, then
  the one-time login of the identity pool.  Aborts the run on failure.
- :func:`check_thresholds` (``quitting``): evaluate the profile's
  thresholds, log the verdict, write the JSON summary, and set the exit
  code.
- :func:`report_metrics` / :func:`merge_worker_metrics` (``report_to_master`` /
  ``worker_report``): ship custom metrics from workers to the master.

Key Concepts Demonstrated:
- Locust event hooks as the setup/teardown seams of a load run
- Fail-fast abort before any virtual user starts
- Custom metrics piggybacked on Locust's worker-to-master stats report
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import gevent
from locust.clients import HttpSession
from locust.runners import MasterRunner, WorkerRunner

from loadtest.actions import ApiActions
from loadtest.auth import authenticate_all
from loadtest.config import Config
from loadtest.errors import PreAuthenticationError
from loadtest.identities import generate_test_users
from loadtest.locust_users import JOURNEY_USER_CLASSES, STATE_ATTRIBUTE, RunState, get_run_state
from loadtest.preflight import wait_for_target
from loadtest.profile import RunProfile
from loadtest.thresholds import (
    ThresholdResult,
    all_passed,
    evaluate,
    format_results,
    locust_stats_resolver,
    registry_resolver,
)

logger = logging.getLogger(__name__)

# Key under which workers attach their custom metrics to Locust's stats report
METRICS_REPORT_KEY = "loadtest_metrics"


def setup_environment(environment: Any, config: type[Config], profile: RunProfile) -> RunState:
    """Attach a fresh :class:`RunState` and select the user classes to spawn."""
    state = RunState(config=config, profile=profile)
    setattr(environment, STATE_ATTRIBUTE, state)

    if not environment.host:
        environment.host = config.BASE_URL

    selected = []
    for journey in sorted(profile.journeys):
        user_class = JOURNEY_USER_CLASSES[journey]
        user_class.weight = profile.journey_weight(journey)
        selected.append(user_class)
    environment.user_classes = selected

    environment.events.report_to_master.add_listener(
        lambda client_id, data, **_kwargs: report_metrics(state, data)
    )
    environment.events.worker_report.add_listener(
        lambda client_id, data, **_kwargs: merge_worker_metrics(state, data)
    )

    logger.info(
        "Load profile %r against %s for %.0fs: %s; peaks %s",
        profile.name,
        environment.host,
        profile.duration,
        ", ".join(f"{cls.__name__} (weight {cls.weight})" for cls in selected),
        ", ".join(f"{scenario.name}={scenario.peak_target}" for scenario in profile.scenarios),
    )
    return state


def report_metrics(state: RunState, data: dict[str, Any]) -> None:
    """Attach the metrics recorded since the last report to a worker's stats report."""
    data[METRICS_REPORT_KEY] = state.metrics.drain()


def merge_worker_metrics(state: RunState, data: dict[str, Any]) -> None:
    """Fold a worker's metrics into the master's registry."""
    state.metrics.merge(data.get(METRICS_REPORT_KEY))


def abort_run(environment: Any, reason: str) -> None:
    """Stop the run before load starts and make the process exit non-zero."""
    logger.error("Aborting load test: %s", reason)
    environment.process_exit_code = 1
    if environment.runner is not None:
        gevent.spawn(environment.runner.quit)


def preauthenticate(environment: Any) -> None:
    """
    Log the identity pool in once and publish the token pool.

    Skipped on a distributed master (each worker authenticates for its own
    users) and for profiles that do not use the pool.
    """
    state = get_run_state(environment)
    if state is None or isinstance(environment.runner, MasterRunner):
        return

    host = environment.host or state.config.BASE_URL
    if state.config.PREFLIGHT_TIMEOUT > 0:
        try:
            wait_for_target(host, timeout=state.config.PREFLIGHT_TIMEOUT)
        except RuntimeError as exc:
            abort_run(environment, str(exc))
            return

    if not state.profile.preauthenticate:
        return

    session = HttpSession(base_url=host, request_event=environment.events.request, user=None)
    actions = ApiActions(session, state.metrics, state.config.API_PREFIX)
    identities = generate_test_users(state.profile.user_count, state.config.TEST_USER_PASSWORD)

    try:
        state.tokens = authenticate_all(actions, identities, state.profile.min_auth_success_ratio)
    except PreAuthenticationError as exc:
        abort_run(environment, str(exc))


def write_summary(path: Path, state: RunState, results: list[ThresholdResult]) -> None:
    """Write custom metric aggregates and threshold outcomes as JSON."""
    summary = {
        "profile": state.profile.name,
        "passed": all_passed(results),
        "metrics": state.metrics.summary(),
        "thresholds": [
            {
                "metric": result.threshold.metric,
                "threshold": result.threshold.expression,
                "actual": result.actual,
                "passed": result.passed,
            }
            for result in results
        ],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(summary, handle, indent=2)
    logger.info("Wrote metrics summary to %s", path)


def check_thresholds(environment: Any) -> list[ThresholdResult]:
    """
    Evaluate the profile's thresholds and set a failing exit code on breach.

    Runs on a local runner or a distributed master, where the workers'
    custom metrics have been merged in.  Workers skip the check.
    """
    state = get_run_state(environment)
    if state is None:
        return []
    if isinstance(environment.runner, WorkerRunner):
        # The master judges the run on the merged metrics
        return []

    resolve = locust_stats_resolver(environment.stats.total, registry_resolver(state.metrics))
    results = evaluate(state.profile.thresholds, resolve)

    logger.info("Threshold check for profile %r\n%s", state.profile.name, format_results(results))
    if state.config.SUMMARY_PATH:
        write_summary(Path(state.config.SUMMARY_PATH), state, results)

    if not all_passed(results):
        logger.error("One or more thresholds were breached")
        if not environment.process_exit_code:
            environment.process_exit_code = 1
    return results

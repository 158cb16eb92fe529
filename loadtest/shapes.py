"""
Ramping load shape driven by a run profile.

Each scenario in the profile ramps linearly from its previous target to
the next stage's target over the stage duration (the same semantics as
k6's ``ramping-vus`` executor).  Scenarios with a ``start_time`` contribute
nothing until that offset.  The shape returns the sum of all scenario
targets; the read/write mix within that total comes from the user-class
weights set by the locustfile.

Stages: ``(duration, target)`` pairs, per scenario.
"""

from __future__ import annotations

from locust import LoadTestShape

from loadtest.profile import RunProfile, ScenarioProfile


def scenario_target(scenario: ScenarioProfile, run_time: float) -> float | None:
    """
    Return the interpolated user target of one scenario at ``run_time``.

    Returns ``0.0`` before the scenario starts and ``None`` once its last
    stage has finished.
    """
    if run_time < scenario.start_time:
        return 0.0

    elapsed = run_time - scenario.start_time
    previous = scenario.start_vus
    for stage in scenario.stages:
        if elapsed < stage.duration:
            return previous + (stage.target - previous) * (elapsed / stage.duration)
        elapsed -= stage.duration
        previous = stage.target
    return None


def scenario_ramp_rate(scenario: ScenarioProfile, run_time: float) -> float:
    """Users per second the scenario is currently ramping by (absolute)."""
    if run_time < scenario.start_time:
        return 0.0

    elapsed = run_time - scenario.start_time
    previous = scenario.start_vus
    for stage in scenario.stages:
        if elapsed < stage.duration:
            return abs(stage.target - previous) / stage.duration
        elapsed -= stage.duration
        previous = stage.target
    return 0.0


def profile_target(profile: RunProfile, run_time: float) -> tuple[int, float] | None:
    """
    Combine every scenario into a ``(user_count, spawn_rate)`` tick.

    Returns ``None`` when all scenarios have finished, which tells Locust
    to stop the run.
    """
    total = 0.0
    rate = 0.0
    active = False
    for scenario in profile.scenarios:
        target = scenario_target(scenario, run_time)
        if target is None:
            continue
        active = True
        total += target
        rate += scenario_ramp_rate(scenario, run_time)

    if not active:
        return None
    # Spawn rate of at least one user/s so hold stages still converge
    return round(total), max(1.0, rate)


class RampingStagesShape(LoadTestShape):
    """
    Load shape that follows ``profile``'s stages.

    Concrete subclasses (declared in the locustfile) set ``profile``.
    """

    abstract = True
    profile: RunProfile | None = None

    def tick(self):
        if self.profile is None:
            return None
        return profile_target(self.profile, self.get_run_time())

"""
Locust user classes that run the journeys.

Provides the per-run shared state and three concrete users:

1. :class:`ReadUser` -- runs :func:`~loadtest.scenarios.read_journey`
2. :class:`WriteUser` -- runs :func:`~loadtest.scenarios.write_journey`
3. :class:`SmokeUser` -- runs :func:`~loadtest.scenarios.smoke_journey`

The journeys pace themselves with explicit think-time pauses, so each
user's ``wait_time`` is zero and one Locust task execution equals one
journey iteration.

Key Concepts Demonstrated:
- Abstract Locust base classes for DRY scenario authoring
- Stable per-user handle used to index the shared token pool
- ``StopUser`` when the run has no token pool to draw from
"""

from __future__ import annotations

import itertools
import random
from dataclasses import dataclass, field
from typing import Any

import gevent
from locust import HttpUser, constant, task
from locust.exception import StopUser

from loadtest.actions import ApiActions
from loadtest.auth import TokenPool
from loadtest.config import Config
from loadtest.identities import generate_test_users
from loadtest.metrics import MetricsRegistry
from loadtest.profile import RunProfile
from loadtest.scenarios import (
    ScenarioContext,
    ThinkTime,
    UniqueSuffix,
    read_journey,
    smoke_journey,
    write_journey,
)

STATE_ATTRIBUTE = "loadtest_state"


@dataclass
class RunState:
    """
    Data shared by every user in this process for one run.

    Attributes:
        config: Environment configuration class.
        profile: The run profile being executed.
        metrics: Custom trends and rates recorded by the actions.
        tokens: Token pool, set once by pre-authentication.
        unique: Suffix generator for generated post/comment content.
    """

    config: type[Config]
    profile: RunProfile
    metrics: MetricsRegistry = field(default_factory=MetricsRegistry)
    tokens: TokenPool | None = None
    unique: UniqueSuffix = field(default_factory=UniqueSuffix)


def get_run_state(environment: Any) -> RunState | None:
    return getattr(environment, STATE_ATTRIBUTE, None)


class BoardApiUser(HttpUser):
    """
    Base user wiring the action library and think-time capability.

    ``abstract = True`` tells Locust not to spawn this class directly --
    only its concrete subclasses.

    Attributes:
        handle: 1-based, process-unique virtual-user handle.
        actions: Action library bound to this user's HTTP session.
        pause: Think-time capability backed by ``gevent.sleep``.
    """

    abstract = True
    wait_time = constant(0)

    _handles = itertools.count(1)

    state: RunState
    handle: int
    rng: random.Random
    actions: ApiActions
    pause: ThinkTime

    def on_start(self) -> None:
        """Attach to the run state and build the per-user capabilities."""
        state = get_run_state(self.environment)
        if state is None:
            raise StopUser("Load-test state was not initialised")

        self.state = state
        self.handle = next(BoardApiUser._handles)
        self.rng = random.Random()
        self.actions = ApiActions(self.client, state.metrics, state.config.API_PREFIX)
        self.pause = ThinkTime(gevent.sleep, self.rng)


class PooledTokenUser(BoardApiUser):
    """Base user that draws its token from the pre-authenticated pool."""

    abstract = True

    scenario: ScenarioContext

    def on_start(self) -> None:
        super().on_start()
        if self.state.tokens is None:
            raise StopUser("No token pool; pre-authentication did not complete")

        self.scenario = ScenarioContext(
            actions=self.actions,
            tokens=self.state.tokens,
            handle=lambda: self.handle,
            pause=self.pause,
            rng=self.rng,
            unique=self.state.unique,
        )


class ReadUser(PooledTokenUser):
    """Read-heavy visitor: browsing, post details, likes, occasional comments."""

    weight = 9

    @task
    def read(self) -> None:
        read_journey(self.scenario)


class WriteUser(PooledTokenUser):
    """Writing visitor: browses, then publishes a post."""

    weight = 1

    @task
    def write(self) -> None:
        write_journey(self.scenario)


class SmokeUser(BoardApiUser):
    """Single-user sanity check of status, anonymous listing, and login."""

    @task
    def smoke(self) -> None:
        identity = generate_test_users(1, self.state.config.TEST_USER_PASSWORD)[0]
        smoke_journey(self.actions, self.pause, identity)


JOURNEY_USER_CLASSES: dict[str, type[BoardApiUser]] = {
    "read": ReadUser,
    "write": WriteUser,
    "smoke": SmokeUser,
}

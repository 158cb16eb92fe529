"""
User journeys run by each virtual user.

Each journey is a plain function: a linear sequence of API actions with
think-time pauses in between.  Everything that depends on the load
runtime -- the virtual-user handle, sleeping, randomness -- is reached
through a :class:`ScenarioContext`, so the journeys can be driven in
tests with a fixed handle, a no-op pause, and a seeded random source.

Journeys never log in during steady-state load.  They read their token
from the shared :class:`~loadtest.auth.TokenPool` instead.

Key Concepts Demonstrated:
- Capability injection (handle, pause, random, unique ids)
- Graceful degradation: empty or malformed listings skip dependent steps
"""

from __future__ import annotations

import itertools
import random
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from loadtest.actions import ApiActions
from loadtest.auth import TokenPool
from loadtest.identities import Identity

COMMENT_PROBABILITY = 0.2


class Pause(Protocol):
    """Sleep for a duration drawn from ``[low, high]`` seconds."""

    def __call__(self, low: float, high: float | None = None) -> None: ...


class ThinkTime:
    """
    Default :class:`Pause` implementation.

    A fixed pause is requested as ``pause(2)``; a randomised one as
    ``pause(0, 5)`` (uniform between the bounds).

    Args:
        sleep: The runtime's sleep primitive (``gevent.sleep`` under Locust).
        rng: Random source for the randomised pauses.
    """

    def __init__(self, sleep: Callable[[float], Any], rng: random.Random | None = None):
        self.sleep = sleep
        self.rng = rng or random.Random()

    def __call__(self, low: float, high: float | None = None) -> None:
        if high is None or high == low:
            self.sleep(low)
        else:
            self.sleep(self.rng.uniform(low, high))


class UniqueSuffix:
    """
    Generate suffixes that never repeat within a process.

    A random per-process prefix keeps separate Locust workers apart; a
    monotonic counter keeps calls within one process apart no matter how
    close together they happen.
    """

    def __init__(self, prefix: str | None = None):
        self.prefix = prefix or uuid.uuid4().hex[:8]
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"


@dataclass
class ScenarioContext:
    """
    Everything a journey needs from the outside world.

    Attributes:
        actions: API action library bound to the virtual user's session.
        tokens: Shared, read-only token pool.
        handle: Returns the virtual user's integer handle.
        pause: Think-time capability.
        rng: Random source for post selection and branch decisions.
        unique: Returns a fresh suffix for generated content.
    """

    actions: ApiActions
    tokens: TokenPool
    handle: Callable[[], int]
    pause: Pause
    rng: random.Random = field(default_factory=random.Random)
    unique: Callable[[], str] = field(default_factory=UniqueSuffix)

    def token(self) -> str:
        """Resolve this virtual user's token from its handle."""
        return self.tokens.token_for(self.handle())


def _post_id(post: Any) -> Any:
    if isinstance(post, dict):
        return post.get("id")
    return None


def _visit_post(ctx: ScenarioContext, token: str, post_id: Any, dwell: float) -> None:
    """Open a post, read its comments, linger, then like it."""
    ctx.actions.get_post_detail(token, post_id)
    ctx.actions.list_comments(token, post_id)
    ctx.pause(dwell)

    ctx.actions.like_post(token, post_id)
    ctx.pause(1)


def read_journey(ctx: ScenarioContext) -> None:
    """
    Read-heavy visitor: browse, scroll, open posts, like, sometimes comment.

    Steps that need a post are skipped when the listing is empty.  A listed
    post without an ``id`` is recorded as a detail error instead.
    """
    token = ctx.token()
    actions = ctx.actions

    # Landing page, then scroll to the next page
    posts = actions.list_posts(token, page=0, size=20)
    ctx.pause(2)

    actions.list_posts(token, page=1, size=20)
    ctx.pause(2)

    if posts:
        first = ctx.rng.choice(posts)
        first_id = _post_id(first)

        if first_id is not None:
            _visit_post(ctx, token, first_id, dwell=3)

            if len(posts) > 1:
                # Back to the list and into another post
                actions.list_posts(token, page=0, size=10)
                ctx.pause(1)

                second = ctx.rng.choice(posts)
                second_id = _post_id(second)
                if second_id is not None:
                    _visit_post(ctx, token, second_id, dwell=2)
                else:
                    actions.record_malformed_post(second)

            if ctx.rng.random() < COMMENT_PROBABILITY:
                actions.create_comment(token, first_id, f"Load test comment {ctx.unique()}")
                ctx.pause(1)
        else:
            actions.record_malformed_post(first)

    ctx.pause(0, 5)


def write_journey(ctx: ScenarioContext) -> None:
    """Write visitor: browse, compose, publish a post, check the list."""
    token = ctx.token()
    actions = ctx.actions

    actions.list_posts(token, page=0, size=20)
    ctx.pause(3)

    # Navigate to the editor and compose
    ctx.pause(5)

    suffix = ctx.unique()
    actions.create_post(
        token,
        f"Load test post {suffix}",
        f"Post generated by the load test. {suffix}",
    )
    ctx.pause(2)

    actions.list_posts(token, page=0, size=20)
    ctx.pause(0, 10)


def smoke_journey(actions: ApiActions, pause: Pause, identity: Identity) -> None:
    """
    Check that the basic endpoints respond: status, anonymous list, login.

    Unlike the load journeys this one logs in inline; it runs with a
    single virtual user, so the auth endpoint is not a bottleneck.
    """
    actions.status_check()
    pause(1)

    actions.list_posts(None, page=0, size=20)
    pause(1)

    actions.login(identity)
    pause(1)

"""
Shared pytest fixtures for the load-test suite.

The action library talks to a Locust ``HttpSession`` through its
``catch_response`` protocol.  The fakes in this module implement the same
protocol in memory so actions, pre-authentication, and journeys can be
exercised without a network or a running Locust environment.

Key Concepts Demonstrated:
- Test doubles that honour the collaborator's protocol (fakes, not mocks)
- Injected capabilities replaced with deterministic stand-ins
- Faker-generated post data
"""

from __future__ import annotations

import json
import re
from types import SimpleNamespace
from typing import Any

import pytest
from faker import Faker

from loadtest.actions import ApiActions
from loadtest.auth import TokenPool
from loadtest.metrics import MetricsRegistry
from loadtest.scenarios import ScenarioContext, UniqueSuffix

fake = Faker()


# -----------------------------------------------------------------------------
# Session fakes
# -----------------------------------------------------------------------------

class FakeResponse:
    """Stand-in for Locust's ``ResponseContextManager``."""

    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text
        self.outcome: str | None = None
        self.failure_reason: str | None = None

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("Response body is not JSON")
        return self._payload

    def success(self) -> None:
        self.outcome = "success"

    def failure(self, exc: Any) -> None:
        self.outcome = "failure"
        self.failure_reason = str(exc)

    def __enter__(self) -> FakeResponse:
        return self

    def __exit__(self, *exc_info: Any) -> bool:
        return False


class FakeSession:
    """Records every request and answers it with ``handler``."""

    def __init__(self, handler):
        self.handler = handler
        self.calls: list[SimpleNamespace] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        response = self.handler(method, url, kwargs)
        self.calls.append(SimpleNamespace(method=method, url=url, kwargs=kwargs, response=response))
        return response

    def calls_matching(self, method: str, pattern: str) -> list[SimpleNamespace]:
        regex = re.compile(pattern)
        return [
            call
            for call in self.calls
            if call.method == method and regex.fullmatch(call.url.partition("?")[0])
        ]


class FakeBoardApi:
    """
    Scriptable in-memory board API.

    Attributes:
        posts: Returned by every post-list call.
        status: Per-operation status overrides, e.g. ``{"like": 500}``.
        failing_emails: Logins for these emails return 401.
    """

    ROUTES = [
        ("POST", r"/api/v1/auth/tokens", "login"),
        ("GET", r"/api/v1/posts", "post_list"),
        ("GET", r"/api/v1/posts/[^/]+", "post_detail"),
        ("GET", r"/api/v1/posts/[^/]+/comments", "comment_list"),
        ("POST", r"/api/v1/posts/[^/]+/likes", "like"),
        ("POST", r"/api/v1/posts/[^/]+/comments", "comment"),
        ("POST", r"/api/v1/posts", "post_create"),
        ("GET", r"/api/loadtest/status", "status"),
    ]

    def __init__(self, posts=None, status=None, failing_emails=()):
        self.posts = list(posts or [])
        self.status = dict(status or {})
        self.failing_emails = set(failing_emails)

    def __call__(self, method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
        path = url.partition("?")[0]
        operation = next(
            (op for verb, pattern, op in self.ROUTES if verb == method and re.fullmatch(pattern, path)),
            None,
        )
        if operation is None:
            return FakeResponse(404, {"error": "not found"})

        if operation in self.status:
            code = self.status[operation]
            return FakeResponse(code, text="upstream error") if code >= 400 else FakeResponse(code, {})

        if operation == "login":
            email = kwargs["json"]["email"]
            if email in self.failing_emails:
                return FakeResponse(401, {"error": "Invalid credentials"})
            return FakeResponse(200, {"accessToken": f"token-{email}"})
        if operation == "post_list":
            return FakeResponse(200, {"content": self.posts})
        if operation == "post_detail":
            return FakeResponse(200, {"id": path.rsplit("/", 1)[-1], "content": "body"})
        if operation == "comment_list":
            return FakeResponse(200, {"content": []})
        if operation in ("like", "comment", "post_create"):
            return FakeResponse(201, {"id": 1})
        return FakeResponse(200, {"status": "ok"})


class RecordingPause:
    """Pause capability that records requested ranges instead of sleeping."""

    def __init__(self):
        self.calls: list[tuple[float, float | None]] = []

    def __call__(self, low: float, high: float | None = None) -> None:
        self.calls.append((low, high))


class ScriptedRandom:
    """Random source with a fixed roll that always picks the first item."""

    def __init__(self, roll: float = 0.99):
        self.roll = roll

    def random(self) -> float:
        return self.roll

    def choice(self, seq):
        return seq[0]

    def uniform(self, low: float, high: float) -> float:
        return low


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def posts() -> list[dict[str, Any]]:
    """Three Faker-generated posts with integer ids."""
    return [
        {"id": index, "title": fake.sentence(nb_words=4), "content": fake.paragraph()}
        for index in range(1, 4)
    ]


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def board(posts) -> FakeBoardApi:
    return FakeBoardApi(posts=posts)


@pytest.fixture
def session(board) -> FakeSession:
    return FakeSession(board)


@pytest.fixture
def actions(session, metrics) -> ApiActions:
    return ApiActions(session, metrics)


@pytest.fixture
def token_pool() -> TokenPool:
    return TokenPool(["token-a", "token-b", "token-c"])


@pytest.fixture
def pause() -> RecordingPause:
    return RecordingPause()


@pytest.fixture
def scenario_factory(actions, token_pool, pause):
    """
    Factory fixture building a :class:`ScenarioContext`.

    Example:
        def test_something(scenario_factory):
            ctx = scenario_factory(handle=4, roll=0.1)
    """

    def _create(handle: int = 1, roll: float = 0.99, **overrides: Any) -> ScenarioContext:
        values = {
            "actions": actions,
            "tokens": token_pool,
            "handle": lambda: handle,
            "pause": pause,
            "rng": ScriptedRandom(roll),
            "unique": UniqueSuffix("test"),
        }
        values.update(overrides)
        return ScenarioContext(**values)

    return _create

"""
Fixtures for the integration tests: a Flask mock of the board API.

The mock implements the endpoints the journeys call, with the behaviour
the load scenarios depend on:

- ``POST /api/v1/auth/tokens`` accepts ``user<N>@test.com`` with the
  shared password and returns an ``accessToken``
- post listing and detail are public; liking, commenting, and posting
  require a bearer token
- a first like answers 201 and a repeated like 200
- creating a post with an existing title answers 409

:class:`FlaskClientSession` adapts Flask's test client to the
``request(..., name=..., catch_response=True)`` contract of Locust's
``HttpSession`` so the real action library runs against it unchanged.

Key Concepts Demonstrated:
- Application factory fixture, as for a real Flask service
- Adapter between two HTTP client interfaces
- Faker-seeded data with per-test isolation
"""

from __future__ import annotations

import itertools
import json
import re
from typing import Any

import pytest
from faker import Faker
from flask import Flask, jsonify, request

from loadtest.actions import ApiActions
from loadtest.identities import DEFAULT_PASSWORD
from loadtest.metrics import MetricsRegistry

fake = Faker()

_EMAIL = re.compile(r"user\d+@test\.com")


# -----------------------------------------------------------------------------
# Mock board API
# -----------------------------------------------------------------------------

def create_board_app(post_count: int = 5, locked_emails: set[str] | None = None) -> Flask:
    """
    Build a Flask app that mimics the board API.

    Args:
        post_count: Number of Faker posts seeded on startup.
        locked_emails: Accounts whose logins are rejected with 401.

    Returns:
        Flask application with ``app.config["BOARD"]`` exposing the state.
    """
    app = Flask("mock_board")
    app.config["TESTING"] = True

    ids = itertools.count(1)
    state: dict[str, Any] = {
        "posts": {},
        "comments": {},
        "likes": set(),
        "tokens": {},
        "locked": set(locked_emails or ()),
    }
    for _ in range(post_count):
        post_id = next(ids)
        state["posts"][post_id] = {
            "id": post_id,
            "title": fake.unique.sentence(nb_words=5),
            "content": fake.paragraph(),
        }
    app.config["BOARD"] = state

    def current_user() -> str | None:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        return state["tokens"].get(header[len("Bearer "):])

    def unauthorized():
        return jsonify({"error": "Authentication required"}), 401

    def not_found():
        return jsonify({"error": "Post not found"}), 404

    @app.post("/api/v1/auth/tokens")
    def issue_token():
        data = request.get_json(silent=True) or {}
        email = data.get("email", "")
        if (
            not _EMAIL.fullmatch(email)
            or data.get("password") != DEFAULT_PASSWORD
            or email in state["locked"]
        ):
            return jsonify({"error": "Invalid credentials"}), 401
        token = f"tok-{len(state['tokens'])}-{fake.pystr(min_chars=12, max_chars=12)}"
        state["tokens"][token] = email
        return jsonify({"accessToken": token})

    @app.get("/api/v1/posts")
    def list_posts():
        page = request.args.get("page", 0, type=int)
        size = request.args.get("size", 20, type=int)
        posts = sorted(state["posts"].values(), key=lambda post: post["id"], reverse=True)
        return jsonify(
            {
                "content": posts[page * size:(page + 1) * size],
                "page": page,
                "size": size,
                "totalElements": len(posts),
            }
        )

    @app.post("/api/v1/posts")
    def create_post():
        if current_user() is None:
            return unauthorized()
        data = request.get_json(silent=True) or {}
        title = (data.get("title") or "").strip()
        content = (data.get("content") or "").strip()
        if not title or not content:
            return jsonify({"error": "'title' and 'content' are required"}), 400
        if any(post["title"] == title for post in state["posts"].values()):
            return jsonify({"error": "Duplicate title"}), 409
        post_id = next(ids)
        state["posts"][post_id] = {"id": post_id, "title": title, "content": content}
        return jsonify(state["posts"][post_id]), 201

    @app.get("/api/v1/posts/<int:post_id>")
    def get_post(post_id: int):
        post = state["posts"].get(post_id)
        if post is None:
            return not_found()
        return jsonify(post)

    @app.get("/api/v1/posts/<int:post_id>/comments")
    def list_comments(post_id: int):
        if post_id not in state["posts"]:
            return not_found()
        return jsonify({"content": state["comments"].get(post_id, [])})

    @app.post("/api/v1/posts/<int:post_id>/comments")
    def create_comment(post_id: int):
        user = current_user()
        if user is None:
            return unauthorized()
        if post_id not in state["posts"]:
            return not_found()
        content = ((request.get_json(silent=True) or {}).get("content") or "").strip()
        if not content:
            return jsonify({"error": "'content' is required"}), 400
        comment = {"author": user, "content": content}
        state["comments"].setdefault(post_id, []).append(comment)
        return jsonify(comment), 201

    @app.post("/api/v1/posts/<int:post_id>/likes")
    def like_post(post_id: int):
        user = current_user()
        if user is None:
            return unauthorized()
        if post_id not in state["posts"]:
            return not_found()
        key = (user, post_id)
        if key in state["likes"]:
            return jsonify({"liked": True}), 200
        state["likes"].add(key)
        return jsonify({"liked": True}), 201

    @app.get("/api/loadtest/status")
    def status():
        return jsonify({"status": "ok"})

    return app


# -----------------------------------------------------------------------------
# HttpSession adapter
# -----------------------------------------------------------------------------

class CatchResponse:
    """Flask test response with Locust's ``catch_response`` surface."""

    def __init__(self, response, name: str | None):
        self.name = name
        self.status_code = response.status_code
        self.text = response.get_data(as_text=True)
        self.outcome: str | None = None

    def json(self) -> Any:
        return json.loads(self.text)

    def success(self) -> None:
        self.outcome = "success"

    def failure(self, exc: Any) -> None:
        self.outcome = f"failure: {exc}"

    def __enter__(self) -> CatchResponse:
        return self

    def __exit__(self, *exc_info: Any) -> bool:
        return False


class FlaskClientSession:
    """Send action requests through a Flask test client."""

    def __init__(self, client):
        self.client = client
        self.responses: list[CatchResponse] = []

    def request(
        self,
        method: str,
        url: str,
        name: str | None = None,
        catch_response: bool = False,
        **kwargs: Any,
    ) -> CatchResponse:
        response = CatchResponse(self.client.open(url, method=method, **kwargs), name)
        self.responses.append(response)
        return response

    def outcomes(self, name: str) -> list[str | None]:
        return [response.outcome for response in self.responses if response.name == name]


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def board_app() -> Flask:
    """Fresh mock board per test; Faker's unique titles reset with it."""
    fake.unique.clear()
    return create_board_app()


@pytest.fixture
def board_state(board_app) -> dict[str, Any]:
    return board_app.config["BOARD"]


@pytest.fixture
def http_session(board_app):
    with board_app.test_client() as client:
        yield FlaskClientSession(client)


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def board_actions(http_session, metrics) -> ApiActions:
    return ApiActions(http_session, metrics)

"""
API action library for the board API.

One method per backend operation.  Every method has the same shape:

1. build the request (method, path, optional JSON body, optional bearer
   token) and send it through the Locust ``HttpSession`` with
   ``catch_response=True``
2. record ``<metric>_duration`` on the injected metrics sink
3. check status code and response shape, marking the Locust response as
   success or failure
4. record ``<metric>_errors`` as the negation of the check result
5. return the parsed result, or an empty/``None``/``False`` sentinel

No method raises for an unreachable server, a non-2xx status, or a body
that is not JSON: a load scenario has to survive individual backend
errors and keep producing representative traffic.  Locust's session
reports connection errors as a response with status code ``0``.

Key Concepts Demonstrated:
- ``catch_response=True`` for in-band checks that feed Locust's failure stats
- Injected metrics sink instead of module-level metric globals
- Uniform "never hard-fail a single call" policy
"""

from __future__ import annotations

import logging
import time
from typing import Any

from loadtest import metrics as m
from loadtest.identities import Identity
from loadtest.metrics import MetricsSink

logger = logging.getLogger(__name__)

STATUS_PATH = "/api/loadtest/status"
_BODY_LOG_LIMIT = 200


def _safe_json(response: Any) -> dict[str, Any]:
    """
    Return response JSON as dict, or an empty dict if parsing fails.

    Responses may contain non-JSON bodies (e.g. on 5xx errors or gateway
    timeouts).  Using this wrapper prevents ``ValueError`` from
    propagating into a journey where it would abort the virtual user.
    """
    try:
        data = response.json()
    except ValueError:
        return {}

    if isinstance(data, dict):
        return data
    return {}


def _body_text(response: Any) -> str:
    text = getattr(response, "text", None) or ""
    return text[:_BODY_LOG_LIMIT]


def auth_header(token: str | None) -> dict[str, str]:
    """
    Build the JSON request headers, with a bearer token when one is given.

    Args:
        token: An access token, or ``None`` for anonymous calls.

    Returns:
        A dictionary suitable for passing as ``headers`` to Locust
        request methods.
    """
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


class ApiActions:
    """
    Checked, timed wrappers around each board API endpoint.

    Attributes:
        session: A Locust ``HttpSession`` (or anything with the same
            ``request(method, url, name=..., catch_response=True, ...)``
            contract).
        metrics: Sink receiving one trend and one rate sample per call.
        api_prefix: Path prefix of the versioned API.
    """

    def __init__(self, session: Any, metrics: MetricsSink, api_prefix: str = "/api/v1"):
        self.session = session
        self.metrics = metrics
        self.api_prefix = api_prefix.rstrip("/")

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        *,
        name: str,
        token: str | None = None,
        payload: dict[str, Any] | None = None,
        prefixed: bool = True,
    ) -> tuple[Any, float]:
        """Issue one request and return the response with its duration in ms."""
        url = f"{self.api_prefix}{path}" if prefixed else path
        kwargs: dict[str, Any] = {
            "headers": auth_header(token),
            "name": name,
            "catch_response": True,
        }
        if payload is not None:
            kwargs["json"] = payload

        started = time.perf_counter()
        response = self.session.request(method, url, **kwargs)
        return response, (time.perf_counter() - started) * 1000.0

    def _conclude(self, response: Any, errors_metric: str, failure: str | None) -> bool:
        """Mark the Locust response and record the error-rate sample."""
        if failure is None:
            response.success()
        else:
            response.failure(failure)
        self.metrics.add_rate(errors_metric, failure is not None)
        return failure is None

    def _name(self, path: str, method: str) -> str:
        return f"{self.api_prefix}{path} [{method}]"

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def list_posts(self, token: str | None, page: int = 0, size: int = 20) -> list[Any]:
        """
        Fetch one page of the post list.

        Returns:
            The ``content`` array, or ``[]`` when the call failed.  Callers
            must tolerate an empty list.
        """
        response, elapsed = self._send(
            "GET",
            f"/posts?page={page}&size={size}",
            name=self._name("/posts", "GET"),
            token=token,
        )
        with response:
            self.metrics.add_trend(m.POST_LIST_DURATION, elapsed)

            failure = None
            content = None
            if response.status_code != 200:
                failure = f"Expected 200, got {response.status_code}"
            else:
                content = _safe_json(response).get("content")
                if content is None:
                    failure = "Post list response missing content"

            ok = self._conclude(response, m.POST_LIST_ERRORS, failure)

        if ok and isinstance(content, list):
            return content
        return []

    def get_post_detail(self, token: str | None, post_id: Any, strict: bool = False) -> bool:
        """
        Fetch a single post.

        Args:
            strict: Also require a non-empty ``content`` field in the body.
        """
        response, elapsed = self._send(
            "GET",
            f"/posts/{post_id}",
            name=self._name("/posts/[id]", "GET"),
            token=token,
        )
        with response:
            self.metrics.add_trend(m.POST_DETAIL_DURATION, elapsed)

            failure = None
            if response.status_code != 200:
                failure = f"Expected 200, got {response.status_code}"
            elif strict and not _safe_json(response).get("content"):
                failure = "Post detail response missing content"

            return self._conclude(response, m.POST_DETAIL_ERRORS, failure)

    def list_comments(self, token: str | None, post_id: Any) -> bool:
        """Fetch the comments of a post."""
        response, elapsed = self._send(
            "GET",
            f"/posts/{post_id}/comments",
            name=self._name("/posts/[id]/comments", "GET"),
            token=token,
        )
        with response:
            self.metrics.add_trend(m.COMMENT_LIST_DURATION, elapsed)
            failure = None
            if response.status_code != 200:
                failure = f"Expected 200, got {response.status_code}"
            return self._conclude(response, m.COMMENT_LIST_ERRORS, failure)

    def like_post(self, token: str | None, post_id: Any) -> bool:
        """
        Like a post.

        Both 200 and 201 count as success: whether a repeated like is a
        no-op or a new row is the target system's concern.
        """
        response, elapsed = self._send(
            "POST",
            f"/posts/{post_id}/likes",
            name=self._name("/posts/[id]/likes", "POST"),
            token=token,
        )
        with response:
            self.metrics.add_trend(m.LIKE_DURATION, elapsed)
            failure = None
            if response.status_code not in (200, 201):
                failure = f"Expected 200 or 201, got {response.status_code}"
            return self._conclude(response, m.LIKE_ERRORS, failure)

    def create_comment(self, token: str | None, post_id: Any, content: str) -> bool:
        """Post a comment on a post."""
        response, elapsed = self._send(
            "POST",
            f"/posts/{post_id}/comments",
            name=self._name("/posts/[id]/comments", "POST"),
            token=token,
            payload={"content": content},
        )
        with response:
            self.metrics.add_trend(m.COMMENT_DURATION, elapsed)
            failure = None
            if response.status_code not in (200, 201):
                failure = f"Expected 200 or 201, got {response.status_code}"
            return self._conclude(response, m.COMMENT_ERRORS, failure)

    def create_post(self, token: str | None, title: str, content: str) -> bool:
        """Create a new post."""
        response, elapsed = self._send(
            "POST",
            "/posts",
            name=self._name("/posts", "POST"),
            token=token,
            payload={"title": title, "content": content},
        )
        with response:
            self.metrics.add_trend(m.POST_CREATE_DURATION, elapsed)
            failure = None
            if response.status_code not in (200, 201):
                failure = f"Expected 200 or 201, got {response.status_code}"
            return self._conclude(response, m.POST_CREATE_ERRORS, failure)

    def login(self, identity: Identity, *, setup: bool = False) -> str | None:
        """
        Exchange credentials for an access token.

        Args:
            identity: The account to log in as.
            setup: Tag the request as a pre-run login so it is reported
                separately from logins made during the load itself.

        Returns:
            The access token, or ``None`` if the login failed.
        """
        name = self._name("/auth/tokens", "POST")
        if setup:
            name = f"{name} (setup)"

        response, elapsed = self._send(
            "POST",
            "/auth/tokens",
            name=name,
            payload=identity.to_payload(),
        )
        with response:
            self.metrics.add_trend(m.LOGIN_DURATION, elapsed)

            failure = None
            token = None
            if response.status_code != 200:
                failure = f"Expected 200, got {response.status_code}"
            else:
                token = _safe_json(response).get("accessToken")
                if not isinstance(token, str) or not token:
                    failure = "Login response missing accessToken"
                    token = None

            ok = self._conclude(response, m.LOGIN_ERRORS, failure)
            if not ok:
                logger.error(
                    "Login failed for %s (status %s): %s",
                    identity.email,
                    response.status_code,
                    _body_text(response),
                )

        return token if ok else None

    def status_check(self) -> bool:
        """Hit the load-test status endpoint outside the versioned API."""
        response, elapsed = self._send(
            "GET",
            STATUS_PATH,
            name=f"{STATUS_PATH} [GET]",
            prefixed=False,
        )
        with response:
            self.metrics.add_trend(m.STATUS_DURATION, elapsed)
            failure = None
            if response.status_code != 200:
                failure = f"Expected 200, got {response.status_code}"
            return self._conclude(response, m.STATUS_ERRORS, failure)

    def record_malformed_post(self, post: Any) -> None:
        """Count a listed post without an ``id`` as a detail error."""
        logger.debug("Post list entry has no id: %r", post)
        self.metrics.add_rate(m.POST_DETAIL_ERRORS, True)

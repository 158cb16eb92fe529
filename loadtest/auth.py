"""
One-time pre-authentication into a shared token pool.

Logging every virtual user in on every iteration turns the auth endpoint
into the bottleneck and skews the results of every other endpoint.
Instead the whole identity pool logs in once, before load starts, and
the resulting :class:`TokenPool` is shared read-only by all virtual
users.  Each virtual user picks its token from its own handle, so no
locking is needed.

Key Concepts Demonstrated:
- Fail-fast gate: abort the run when too few identities can log in
- Immutable shared state (tuple-backed pool) for concurrent readers
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from loadtest.actions import ApiActions
from loadtest.errors import PreAuthenticationError
from loadtest.identities import Identity

logger = logging.getLogger(__name__)

DEFAULT_MIN_SUCCESS_RATIO = 0.8


class TokenPool:
    """
    Ordered, immutable set of access tokens.

    Attributes:
        tokens: The tokens in login order.
    """

    __slots__ = ("tokens",)

    def __init__(self, tokens: Iterable[str]):
        self.tokens: tuple[str, ...] = tuple(tokens)

    def __len__(self) -> int:
        return len(self.tokens)

    def __repr__(self) -> str:
        return f"TokenPool(size={len(self.tokens)})"

    def token_for(self, handle: int) -> str:
        """
        Return the token assigned to a virtual-user handle.

        The same handle always maps to the same token (``handle mod size``),
        so a virtual user keeps one identity across iterations.

        Raises:
            LookupError: If the pool is empty.
        """
        if not self.tokens:
            raise LookupError("Token pool is empty")
        return self.tokens[handle % len(self.tokens)]


def authenticate_all(
    actions: ApiActions,
    identities: Sequence[Identity],
    min_success_ratio: float = DEFAULT_MIN_SUCCESS_RATIO,
) -> TokenPool:
    """
    Log every identity in once and collect the tokens.

    Individual login failures are logged by the action and skipped.  Each
    attempt records a ``login_duration`` and ``login_errors`` sample and
    is reported to Locust under a separate ``(setup)`` request name.

    Args:
        actions: Action library bound to a session on the target host.
        identities: The identity pool, usually from
            :func:`~loadtest.identities.generate_test_users`.
        min_success_ratio: Fraction of identities that must log in.

    Returns:
        The token pool, in identity order minus failures.

    Raises:
        PreAuthenticationError: If fewer than ``min_success_ratio`` of the
            identities logged in, or none did.
    """
    logger.info("Pre-authenticating %d test users", len(identities))

    tokens: list[str] = []
    for identity in identities:
        token = actions.login(identity, setup=True)
        if token is not None:
            tokens.append(token)

    if not tokens or len(tokens) < len(identities) * min_success_ratio:
        raise PreAuthenticationError(len(tokens), len(identities), min_success_ratio)

    logger.info("Pre-authentication complete: %d/%d tokens", len(tokens), len(identities))
    return TokenPool(tokens)

"""Exception types raised while configuring or preparing a load-test run."""

from __future__ import annotations


class LoadTestError(Exception):
    """Base class for errors that stop a run before or after load is generated."""


class PreAuthenticationError(LoadTestError):
    """
    Too few pooled identities could log in before the run.

    Usually means the seed data does not match the identity convention in
    :mod:`loadtest.identities`, or the auth endpoint is unreachable.
    """

    def __init__(self, authenticated: int, attempted: int, min_success_ratio: float):
        self.authenticated = authenticated
        self.attempted = attempted
        self.min_success_ratio = min_success_ratio
        super().__init__(
            f"Only {authenticated}/{attempted} test users logged in "
            f"(need at least {min_success_ratio:.0%}); check the seeded "
            "user accounts and the auth endpoint"
        )


class ProfileError(LoadTestError):
    """A run profile file is missing or malformed."""


class ThresholdError(LoadTestError, ValueError):
    """A threshold expression could not be parsed."""

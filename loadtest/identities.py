"""
Deterministic test-user pool.

The pre-authentication stage logs in every identity produced here, so the
convention below MUST match the out-of-band data-seeding script that
creates the accounts on the target system: ``user<i>@test.com`` for
``i`` in ``0..count-1``, all sharing one password.  A mismatch makes every
login fail and the run aborts before any load is generated.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_PASSWORD = "dummyPassword"
EMAIL_TEMPLATE = "user{index}@test.com"


@dataclass(frozen=True)
class Identity:
    """Login credentials for one seeded test account."""

    email: str
    password: str

    def to_payload(self) -> dict[str, str]:
        """Return the JSON body expected by the token endpoint."""
        return {"email": self.email, "password": self.password}


def generate_test_users(count: int, password: str = DEFAULT_PASSWORD) -> list[Identity]:
    """
    Build the identity pool in index order.

    Args:
        count: Number of identities (the seeded user count).
        password: Password shared by every seeded account.

    Returns:
        ``count`` identities, ``user0@test.com`` first.

    Raises:
        ValueError: If ``count`` is negative.
    """
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    return [Identity(email=EMAIL_TEMPLATE.format(index=i), password=password) for i in range(count)]

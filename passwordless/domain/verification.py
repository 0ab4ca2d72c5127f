"""
Single source of truth for what one verification attempt does to a token.

Both the LoginManager and the stores' own `verify()` run every attempt
through `evaluate_attempt()` and then apply the returned outcome, so the two
paths can never disagree on a given token.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Callable

from passwordless.domain.entities import Token
from passwordless.domain.errors import (
    AttemptsExhausted,
    InvalidCode,
    TokenExpired,
    VerificationFailed,
)


class Outcome(enum.Enum):
    VERIFIED = "verified"  # delete the token, succeed
    EXPIRED = "expired"  # delete the token, fail
    INVALID = "invalid"  # persist the new attempt count, fail
    EXHAUSTED = "exhausted"  # delete the token, fail

    @property
    def deletes_token(self) -> bool:
        return self is not Outcome.INVALID


def evaluate_attempt(
    token: Token,
    matches: Callable[[Token], bool],
    *,
    now: datetime,
    max_failed_attempts: int,
) -> Outcome:
    """
    Decide the outcome of one attempt. On a mismatch `token.attempts` is
    incremented in place; nothing else on the token is touched.
    """
    if token.is_expired(now):
        return Outcome.EXPIRED
    if matches(token):
        return Outcome.VERIFIED
    attempts = token.register_failed_attempt()
    if attempts >= max_failed_attempts:
        return Outcome.EXHAUSTED
    return Outcome.INVALID


def failure_for(
    outcome: Outcome, token: Token, max_failed_attempts: int
) -> VerificationFailed | None:
    """The error to raise for `outcome`, or None when it is a success."""
    if outcome is Outcome.EXPIRED:
        return TokenExpired("token expired")
    if outcome is Outcome.EXHAUSTED:
        return AttemptsExhausted("too many failed attempts, token deleted")
    if outcome is Outcome.INVALID:
        return InvalidCode(
            "invalid code",
            attempts_remaining=max(0, max_failed_attempts - token.attempts),
        )
    return None

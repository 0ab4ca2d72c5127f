from __future__ import annotations

from typing import Optional, Protocol

from passwordless.domain.context import CallContext
from passwordless.domain.entities import Token


class TokenStorePort(Protocol):
    """
    Persistence contract every backend satisfies identically.

    All methods check `ctx` first and raise Canceled / DeadlineExceeded when
    it is done. Backend failures surface as StorageError.
    """

    async def store(self, ctx: CallContext, token: Token) -> None:
        """Insert or replace the token keyed by `token.id`."""

    async def exists(self, ctx: CallContext, token_id: str) -> Token:
        """
        Return the live token.
        Raise TokenNotFound if absent, TokenExpired if past `expires_at`
        (the backend may delete it on the way out).
        """

    async def update_attempts(
        self, ctx: CallContext, token_id: str, attempts: int
    ) -> None:
        """
        Persist only the failed-attempt counter; expiry and hash are left
        untouched. Raise TokenNotFound if the token is gone.
        """

    async def delete(self, ctx: CallContext, token_id: str) -> None:
        """Remove the token. Deleting a missing token is not an error."""

    async def verify(
        self,
        ctx: CallContext,
        token_id: str,
        code: str,
        *,
        max_failed_attempts: Optional[int] = None,
    ) -> Token:
        """
        Atomically check expiry, compare the code, then consume the token or
        record the failed attempt. Return the consumed token; raise
        TokenNotFound, TokenExpired, InvalidCode or AttemptsExhausted.
        `max_failed_attempts` overrides the store's own limit for this call.
        """

    async def verify_link(
        self,
        ctx: CallContext,
        token_id: str,
        provided_hash: str,
        *,
        max_failed_attempts: Optional[int] = None,
    ) -> Token:
        """Same as verify, matching the hash carried by a login link."""

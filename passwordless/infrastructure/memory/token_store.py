from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from functools import partial
from typing import Callable, Optional

from passwordless.domain import services as domain_services
from passwordless.domain.context import CallContext
from passwordless.domain.entities import Token, utc_now
from passwordless.domain.errors import TokenExpired, TokenNotFound
from passwordless.domain.ports.token_store import TokenStorePort
from passwordless.domain.verification import evaluate_attempt, failure_for


class MemoryTokenStore(TokenStorePort):
    """
    In-process token table guarded by a single lock.

    Tokens are copied on the way in and out, so callers never hold a
    reference to the stored record. Expired tokens are dropped when read.
    """

    def __init__(
        self,
        *,
        max_failed_attempts: int = 3,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._tokens: dict[str, Token] = {}
        # no awaits happen while this is held
        self._lock = threading.Lock()
        self._max_failed_attempts = max_failed_attempts
        self._now = now

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    async def store(self, ctx: CallContext, token: Token) -> None:
        ctx.check()
        with self._lock:
            self._tokens[token.id] = replace(token)

    async def exists(self, ctx: CallContext, token_id: str) -> Token:
        ctx.check()
        with self._lock:
            token = self._live(token_id)
            return replace(token)

    async def update_attempts(
        self, ctx: CallContext, token_id: str, attempts: int
    ) -> None:
        ctx.check()
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None:
                raise TokenNotFound("token not found")
            token.attempts = attempts

    async def delete(self, ctx: CallContext, token_id: str) -> None:
        ctx.check()
        with self._lock:
            self._tokens.pop(token_id, None)

    async def verify(
        self,
        ctx: CallContext,
        token_id: str,
        code: str,
        *,
        max_failed_attempts: Optional[int] = None,
    ) -> Token:
        matches = partial(domain_services.code_matches, code=code)
        return self._verify(ctx, token_id, matches, max_failed_attempts)

    async def verify_link(
        self,
        ctx: CallContext,
        token_id: str,
        provided_hash: str,
        *,
        max_failed_attempts: Optional[int] = None,
    ) -> Token:
        matches = partial(domain_services.link_matches, provided_hash=provided_hash)
        return self._verify(ctx, token_id, matches, max_failed_attempts)

    def _verify(
        self,
        ctx: CallContext,
        token_id: str,
        matches: Callable[[Token], bool],
        max_failed_attempts: Optional[int],
    ) -> Token:
        ctx.check()
        limit = max_failed_attempts or self._max_failed_attempts
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None:
                raise TokenNotFound("token not found")
            outcome = evaluate_attempt(
                token, matches, now=self._now(), max_failed_attempts=limit
            )
            if outcome.deletes_token:
                del self._tokens[token_id]

        failure = failure_for(outcome, token, limit)
        if failure is not None:
            raise failure
        return replace(token)

    def _live(self, token_id: str) -> Token:
        token = self._tokens.get(token_id)
        if token is None:
            raise TokenNotFound("token not found")
        if token.is_expired(self._now()):
            del self._tokens[token_id]
            raise TokenExpired("token expired")
        return token

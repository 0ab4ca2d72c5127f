from __future__ import annotations

import math
from datetime import datetime
from functools import partial
from typing import Callable, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from passwordless.domain import services as domain_services
from passwordless.domain.context import CallContext
from passwordless.domain.entities import Token, utc_now
from passwordless.domain.errors import StorageError, TokenExpired, TokenNotFound
from passwordless.domain.ports.token_store import TokenStorePort
from passwordless.domain.verification import evaluate_attempt, failure_for


_LUA_UPDATE_ATTEMPTS = """
-- KEYS[1]: token key
-- ARGV[1]: new attempt count
-- HSET keeps the key's TTL; only the counter changes
if redis.call('EXISTS', KEYS[1]) == 0 then
  return 0
end
redis.call('HSET', KEYS[1], 'attempts', ARGV[1])
return 1
"""

# optimistic verify gives up after this many concurrent modifications
_MAX_WATCH_RETRIES = 5


class RedisTokenStore(TokenStorePort):
    """
    One hash per token: recipient, code_hash (hex), created_at / expires_at
    (ISO-8601), attempts. The key expires at `expires_at`, so Redis drops
    dead tokens on its own; reads still check expiry explicitly.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        key_prefix: str = "plt:",
        max_failed_attempts: int = 3,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._redis = redis
        self._prefix = key_prefix
        self._max_failed_attempts = max_failed_attempts
        self._now = now

    def _key(self, token_id: str) -> str:
        return f"{self._prefix}{token_id}"

    async def store(self, ctx: CallContext, token: Token) -> None:
        key = self._key(token.id)
        record = token.to_record()
        expire_at_ms = math.ceil(token.expires_at.timestamp() * 1000)

        async def op() -> None:
            pipe = self._redis.pipeline(transaction=True)
            pipe.delete(key)
            pipe.hset(key, mapping=record)
            pipe.pexpireat(key, expire_at_ms)
            await pipe.execute()

        await self._call(ctx, op())

    async def exists(self, ctx: CallContext, token_id: str) -> Token:
        key = self._key(token_id)
        stored = await self._call(ctx, self._redis.hgetall(key))
        if not stored:
            raise TokenNotFound("token not found")
        token = _decode(token_id, stored)
        if token.is_expired(self._now()):
            await self._call(ctx, self._redis.delete(key))
            raise TokenExpired("token expired")
        return token

    async def update_attempts(
        self, ctx: CallContext, token_id: str, attempts: int
    ) -> None:
        res = await self._call(
            ctx,
            self._redis.eval(_LUA_UPDATE_ATTEMPTS, 1, self._key(token_id), attempts),
        )
        if int(res) != 1:
            raise TokenNotFound("token not found")

    async def delete(self, ctx: CallContext, token_id: str) -> None:
        await self._call(ctx, self._redis.delete(self._key(token_id)))

    async def verify(
        self,
        ctx: CallContext,
        token_id: str,
        code: str,
        *,
        max_failed_attempts: Optional[int] = None,
    ) -> Token:
        matches = partial(domain_services.code_matches, code=code)
        return await self._verify(ctx, token_id, matches, max_failed_attempts)

    async def verify_link(
        self,
        ctx: CallContext,
        token_id: str,
        provided_hash: str,
        *,
        max_failed_attempts: Optional[int] = None,
    ) -> Token:
        matches = partial(domain_services.link_matches, provided_hash=provided_hash)
        return await self._verify(ctx, token_id, matches, max_failed_attempts)

    async def _verify(
        self,
        ctx: CallContext,
        token_id: str,
        matches: Callable[[Token], bool],
        max_failed_attempts: Optional[int],
    ) -> Token:
        limit = max_failed_attempts or self._max_failed_attempts
        key = self._key(token_id)

        async def op():
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(_MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(key)
                        stored = await pipe.hgetall(key)
                        if not stored:
                            await pipe.unwatch()
                            raise TokenNotFound("token not found")
                        token = _decode(token_id, stored)
                        outcome = evaluate_attempt(
                            token,
                            matches,
                            now=self._now(),
                            max_failed_attempts=limit,
                        )
                        pipe.multi()
                        if outcome.deletes_token:
                            pipe.delete(key)
                        else:
                            pipe.hset(key, "attempts", token.attempts)
                        await pipe.execute()
                        return outcome, token
                    except WatchError:
                        continue
            raise StorageError("redis token store: token modified concurrently")

        outcome, token = await self._call(ctx, op())
        failure = failure_for(outcome, token, limit)
        if failure is not None:
            raise failure
        return token

    async def _call(self, ctx: CallContext, awaitable):
        try:
            return await ctx.run(awaitable)
        except RedisError as e:
            raise StorageError(f"redis token store: {e}") from e


def _decode(token_id: str, stored: dict[str, str]) -> Token:
    try:
        return Token.from_record({**stored, "id": token_id})
    except (KeyError, ValueError) as e:
        raise StorageError(f"redis token store: corrupt record for {token_id}") from e

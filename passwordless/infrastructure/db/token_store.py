from __future__ import annotations

import re
from datetime import datetime
from functools import partial
from typing import Callable, Optional

import psycopg
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from passwordless.domain import services as domain_services
from passwordless.domain.context import CallContext
from passwordless.domain.entities import Token, utc_now
from passwordless.domain.errors import StorageError, TokenExpired, TokenNotFound
from passwordless.domain.ports.token_store import TokenStorePort
from passwordless.domain.verification import evaluate_attempt, failure_for

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_COLUMNS = "id, recipient, code_hash, created_at, expires_at, attempts"


class PgTokenStore(TokenStorePort):
    """
    Postgres implementation of TokenStorePort.

    NOTE:
    - Each operation borrows its own connection and commits it.
    - verify() locks the row (SELECT ... FOR UPDATE) for the whole
      read-check-write, so concurrent verifications of one token serialize
      in the database.
    """

    def __init__(
        self,
        pool: AsyncConnectionPool,
        *,
        table: str = "login_tokens",
        max_failed_attempts: int = 3,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        if not _TABLE_NAME.match(table):
            raise ValueError(f"invalid table name: {table!r}")
        self._pool = pool
        self._table = table
        self._max_failed_attempts = max_failed_attempts
        self._now = now

    async def create_schema(self, ctx: CallContext) -> None:
        sql = f"""
        CREATE TABLE IF NOT EXISTS {self._table} (
            id          text PRIMARY KEY,
            recipient   text NOT NULL,
            code_hash   bytea NOT NULL,
            created_at  timestamptz NOT NULL,
            expires_at  timestamptz NOT NULL,
            attempts    integer NOT NULL DEFAULT 0
        );
        """
        await self._execute(ctx, sql, ())

    async def store(self, ctx: CallContext, token: Token) -> None:
        sql = f"""
        INSERT INTO {self._table} ({_COLUMNS})
        VALUES (%s, %s, %s, %s, %s, %s)
        ON CONFLICT (id) DO UPDATE
            SET recipient  = EXCLUDED.recipient,
                code_hash  = EXCLUDED.code_hash,
                created_at = EXCLUDED.created_at,
                expires_at = EXCLUDED.expires_at,
                attempts   = EXCLUDED.attempts
        """
        params = (
            token.id,
            token.recipient,
            token.code_hash,
            token.created_at,
            token.expires_at,
            token.attempts,
        )
        await self._execute(ctx, sql, params)

    async def exists(self, ctx: CallContext, token_id: str) -> Token:
        async def op(conn: psycopg.AsyncConnection) -> Token:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"SELECT {_COLUMNS} FROM {self._table} WHERE id = %s",
                        (token_id,),
                    )
                    row = await cur.fetchone()
                    if not row:
                        raise TokenNotFound("token not found")
                    token = _row_to_token(row)
                    expired = token.is_expired(self._now())
                    if expired:
                        await cur.execute(
                            f"DELETE FROM {self._table} WHERE id = %s", (token_id,)
                        )
            # raised after the block so the delete commits
            if expired:
                raise TokenExpired("token expired")
            return token

        return await self._with_conn(ctx, op)

    async def update_attempts(
        self, ctx: CallContext, token_id: str, attempts: int
    ) -> None:
        sql = f"UPDATE {self._table} SET attempts = %s WHERE id = %s"
        rowcount = await self._execute(ctx, sql, (attempts, token_id))
        if rowcount == 0:
            raise TokenNotFound("token not found")

    async def delete(self, ctx: CallContext, token_id: str) -> None:
        await self._execute(
            ctx, f"DELETE FROM {self._table} WHERE id = %s", (token_id,)
        )

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

        async def op(conn: psycopg.AsyncConnection) -> Token:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"SELECT {_COLUMNS} FROM {self._table} "
                        "WHERE id = %s FOR UPDATE",
                        (token_id,),
                    )
                    row = await cur.fetchone()
                    if not row:
                        raise TokenNotFound("token not found")
                    token = _row_to_token(row)
                    outcome = evaluate_attempt(
                        token,
                        matches,
                        now=self._now(),
                        max_failed_attempts=limit,
                    )
                    if outcome.deletes_token:
                        await cur.execute(
                            f"DELETE FROM {self._table} WHERE id = %s", (token_id,)
                        )
                    else:
                        await cur.execute(
                            f"UPDATE {self._table} SET attempts = %s WHERE id = %s",
                            (token.attempts, token_id),
                        )
            return _raise_or_return(outcome, token, limit)

        return await self._with_conn(ctx, op)

    async def _execute(self, ctx: CallContext, sql: str, params: tuple) -> int:
        async def op(conn: psycopg.AsyncConnection) -> int:
            async with conn.cursor() as cur:
                await cur.execute(sql, params)
                rowcount = cur.rowcount
            await conn.commit()
            return rowcount

        return await self._with_conn(ctx, op)

    async def _with_conn(self, ctx: CallContext, op):
        ctx.check()

        async def run():
            async with self._pool.connection() as conn:
                return await op(conn)

        try:
            return await ctx.run(run())
        except (psycopg.Error, PoolTimeout) as e:
            raise StorageError(f"postgres token store: {e}") from e


def _row_to_token(row: tuple) -> Token:
    id_, recipient, code_hash, created_at, expires_at, attempts = row
    return Token(
        id=str(id_),
        recipient=str(recipient),
        code_hash=bytes(code_hash),
        created_at=created_at,
        expires_at=expires_at,
        attempts=int(attempts or 0),
    )


def _raise_or_return(outcome, token: Token, max_failed_attempts: int) -> Token:
    failure = failure_for(outcome, token, max_failed_attempts)
    if failure is not None:
        raise failure
    return token

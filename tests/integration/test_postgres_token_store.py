import asyncio

import pytest

from passwordless.application.login_manager import LoginManager
from passwordless.domain.context import CallContext
from passwordless.domain.errors import InvalidCode, TokenNotFound
from tests.store_contract import CONTRACT_CHECKS, make_token


@pytest.mark.asyncio
@pytest.mark.parametrize("check", CONTRACT_CHECKS, ids=lambda fn: fn.__name__)
async def test_postgres_store_contract(pg_store, clock, check):
    await check(pg_store, clock)


@pytest.mark.asyncio
async def test_create_schema_is_idempotent(pg_store):
    await pg_store.create_schema(CallContext.with_timeout(5))


@pytest.mark.asyncio
async def test_row_lock_serializes_verifications(pg_store, clock):
    ctx = CallContext.background()
    token = make_token(clock, code="8080")
    await pg_store.store(ctx, token)

    results = await asyncio.gather(
        *(pg_store.verify(ctx, token.id, "0000") for _ in range(2)),
        return_exceptions=True,
    )
    assert all(isinstance(r, InvalidCode) for r in results)
    assert (await pg_store.exists(ctx, token.id)).attempts == 2

    verified = await pg_store.verify(ctx, token.id, "8080")
    assert verified.code_hash == token.code_hash


@pytest.mark.asyncio
async def test_two_managers_sharing_the_backend_keep_the_limit(
    pg_store, transport, clock
):
    ctx = CallContext.background()
    first = LoginManager(pg_store, transport, now=clock.now)
    second = LoginManager(pg_store, transport, now=clock.now)
    token_id = await first.start_login(ctx, "user@example.com")
    code = transport.last_code
    bad = "x" * len(code)

    results = await asyncio.gather(
        first.verify_login(ctx, token_id, bad),
        second.verify_login(ctx, token_id, bad),
        first.verify_login(ctx, token_id, bad),
        second.verify_login(ctx, token_id, bad),
        return_exceptions=True,
    )
    kinds = sorted(type(r).__name__ for r in results)
    assert kinds == [
        "AttemptsExhausted",
        "InvalidCode",
        "InvalidCode",
        "TokenNotFound",
    ]
    with pytest.raises(TokenNotFound):
        await pg_store.exists(ctx, token_id)

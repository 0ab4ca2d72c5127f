# tests/integration/conftest.py
import os
import secrets

import pytest
import pytest_asyncio
from redis.asyncio import Redis
from redis.exceptions import RedisError

from passwordless.domain.context import CallContext
from passwordless.infrastructure.db.pool import create_pool
from passwordless.infrastructure.db.token_store import PgTokenStore
from passwordless.infrastructure.redis_cache.pool import create_redis
from passwordless.infrastructure.redis_cache.token_store import RedisTokenStore

REDIS_URL = os.environ.get("REDIS_URL", "redis://redis:6379/0")
DATABASE_URL = os.environ.get("DATABASE_URL", "postgresql://app:app@db:5432/app")


@pytest_asyncio.fixture
async def redis_client():
    r: Redis = create_redis(REDIS_URL)
    try:
        await r.ping()
    except (RedisError, OSError) as e:
        await r.aclose()
        pytest.skip(f"redis not reachable: {e}")
    try:
        yield r
    finally:
        await r.aclose()


@pytest_asyncio.fixture
async def redis_store(redis_client, clock):
    # unique prefix per test keeps runs independent
    prefix = f"plt-test-{secrets.token_hex(4)}:"
    yield RedisTokenStore(
        redis_client, key_prefix=prefix, max_failed_attempts=3, now=clock.now
    )
    keys = [k async for k in redis_client.scan_iter(match=f"{prefix}*")]
    if keys:
        await redis_client.delete(*keys)


@pytest_asyncio.fixture
async def pg_pool():
    pool = create_pool(DATABASE_URL, max_size=4)
    try:
        await pool.open(wait=True, timeout=5)
    except Exception as e:  # noqa: BLE001
        await pool.close()
        pytest.skip(f"postgres not reachable: {e}")
    try:
        yield pool
    finally:
        await pool.close()


@pytest_asyncio.fixture
async def pg_store(pg_pool, clock):
    table = f"login_tokens_test_{secrets.token_hex(4)}"
    store = PgTokenStore(pg_pool, table=table, max_failed_attempts=3, now=clock.now)
    await store.create_schema(CallContext.with_timeout(5))
    try:
        yield store
    finally:
        async with pg_pool.connection() as conn:
            await conn.execute(f"DROP TABLE IF EXISTS {table}")

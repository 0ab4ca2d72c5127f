import logging
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI

from passwordless.application.config import LoginConfig
from passwordless.application.login_manager import LoginManager
from passwordless.domain.context import CallContext
from passwordless.domain.ports.token_store import TokenStorePort
from passwordless.domain.ports.transport import TransportPort
from passwordless.infrastructure.db.pool import create_pool
from passwordless.infrastructure.db.token_store import PgTokenStore
from passwordless.infrastructure.file.token_store import FileTokenStore
from passwordless.infrastructure.memory.token_store import MemoryTokenStore
from passwordless.infrastructure.redis_cache.pool import create_redis
from passwordless.infrastructure.redis_cache.token_store import RedisTokenStore
from passwordless.infrastructure.transport.http_smtp_transport import HttpSmtpTransport
from passwordless.infrastructure.transport.log_transport import LogTransport
from passwordless.logging import setup_logging
from passwordless.presentation.api import api
from passwordless.presentation.errors import register_error_handlers
from passwordless.settings import Settings, get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


async def build_store(
    settings: Settings, config: LoginConfig, resources: AsyncExitStack
) -> TokenStorePort:
    max_attempts = config.max_failed_attempts
    backend = settings.store_backend

    if backend == "memory":
        return MemoryTokenStore(max_failed_attempts=max_attempts)

    if backend == "file":
        return FileTokenStore(settings.file_store_dir, max_failed_attempts=max_attempts)

    if backend == "postgres":
        pool = create_pool(settings.database_url)
        await pool.open()
        resources.push_async_callback(pool.close)
        store = PgTokenStore(
            pool, table=settings.token_table, max_failed_attempts=max_attempts
        )
        await store.create_schema(
            CallContext.with_timeout(settings.request_timeout_seconds)
        )
        return store

    if backend == "redis":
        redis = create_redis(settings.redis_url)
        resources.push_async_callback(redis.aclose)
        return RedisTokenStore(
            redis, key_prefix=settings.redis_key_prefix, max_failed_attempts=max_attempts
        )

    raise ValueError(f"unknown store backend: {backend}")


def build_transport(settings: Settings, resources: AsyncExitStack) -> TransportPort:
    if settings.transport == "http_smtp":
        transport = HttpSmtpTransport(
            base_url=settings.smtp_base_url,
            timeout=settings.request_timeout_seconds,
            subject=settings.email_subject,
        )
        resources.push_async_callback(transport.aclose)
        return transport
    return LogTransport()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    async with AsyncExitStack() as resources:
        config = LoginConfig.from_settings(settings)
        store = await build_store(settings, config, resources)
        transport = build_transport(settings, resources)
        app.state.login_manager = LoginManager(store, transport, config)
        logger.info(
            "login manager ready",
            extra={"store": settings.store_backend, "transport": settings.transport},
        )
        yield
        # shutdown: resources close in reverse order


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title="Passwordless Login API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    register_error_handlers(app)
    app.include_router(api)
    return app


app = create_app()

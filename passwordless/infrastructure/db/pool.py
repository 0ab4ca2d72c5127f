from __future__ import annotations

from psycopg_pool import AsyncConnectionPool


def _add_connect_timeout(dsn: str, seconds: int = 3) -> str:
    if "connect_timeout=" in dsn:
        return dsn
    sep = "&" if "?" in dsn else "?"
    return f"{dsn}{sep}connect_timeout={seconds}"


def create_pool(database_url: str, *, max_size: int = 10) -> AsyncConnectionPool:
    """
    Build a pool for the token store WITHOUT opening it.
    The owner (app lifespan, test fixture) opens and closes it.
    """
    return AsyncConnectionPool(
        _add_connect_timeout(database_url),
        min_size=1,
        max_size=max_size,
        timeout=5,
        open=False,
    )

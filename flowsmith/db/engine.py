"""Async engine construction for the SQL registry and ledger."""

from __future__ import annotations

import os

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from flowsmith.errors import ConfigurationError

DATABASE_URL_ENV = "FLOWSMITH_DATABASE__URL"

_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}

_engines: dict[str, AsyncEngine] = {}


def resolve_url(database_url: str | None = None) -> URL:
    """Parse *database_url*, falling back to the environment, and pin the async driver.

    ``postgresql://`` becomes ``postgresql+asyncpg://`` and ``sqlite://``
    becomes ``sqlite+aiosqlite://``; other backends are rejected.
    """
    raw = (database_url or os.environ.get(DATABASE_URL_ENV, "")).strip()
    if not raw:
        raise ConfigurationError(f"Database URL not set. Pass one or set {DATABASE_URL_ENV}.")
    try:
        url = make_url(raw)
    except ArgumentError as exc:
        raise ConfigurationError("Database URL could not be parsed.") from exc
    backend = url.get_backend_name()
    driver = _ASYNC_DRIVERS.get(backend)
    if driver is None:
        raise ConfigurationError(f"Unsupported database backend '{backend}'; use postgresql or sqlite.")
    return url.set(drivername=driver)


def create_engine(
    database_url: str | None = None,
    *,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_recycle: int = 1800,
) -> AsyncEngine:
    """Create an async engine; pool settings apply to PostgreSQL only.

    Raises:
        ConfigurationError: URL missing, unparsable or not a supported backend.
    """
    url = resolve_url(database_url)
    if url.get_backend_name() == "sqlite":
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,
    )


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Process-wide engine per URL; repeated calls share one pool."""
    key = resolve_url(database_url).render_as_string(hide_password=False)
    engine = _engines.get(key)
    if engine is None:
        engine = _engines[key] = create_engine(key)
    return engine


async def dispose_engine(database_url: str | None = None) -> None:
    """Dispose the cached engine for *database_url*, or every cached engine."""
    if database_url is None:
        keys = list(_engines)
    else:
        keys = [resolve_url(database_url).render_as_string(hide_password=False)]
    for key in keys:
        engine = _engines.pop(key, None)
        if engine is not None:
            await engine.dispose()

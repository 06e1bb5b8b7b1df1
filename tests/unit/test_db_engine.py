"""Unit tests for database engine helpers."""

from __future__ import annotations

import pytest

from flowsmith.db import ConfigurationError, create_engine, dispose_engine, get_engine, resolve_url


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("postgresql+psycopg2://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("sqlite:///x.db", "sqlite+aiosqlite:///x.db"),
        ("sqlite+aiosqlite:///x.db", "sqlite+aiosqlite:///x.db"),
    ],
)
def test_resolve_url_pins_async_driver(url: str, expected: str) -> None:
    assert resolve_url(url).render_as_string(hide_password=False) == expected


def test_resolve_url_rejects_other_backends_without_leaking_password() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        resolve_url("mysql://u:hunter2@h/db")
    assert "hunter2" not in str(exc_info.value)
    with pytest.raises(ConfigurationError):
        resolve_url("not a url")


def test_missing_url_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FLOWSMITH_DATABASE__URL", raising=False)
    with pytest.raises(ConfigurationError):
        create_engine()


@pytest.mark.asyncio
async def test_get_engine_caches_per_url(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'cache.db'}"
    monkeypatch.setenv("FLOWSMITH_DATABASE__URL", url)
    first = get_engine()
    assert get_engine(url) is first
    assert first.url.drivername == "sqlite+aiosqlite"
    await dispose_engine()
    assert get_engine(url) is not first
    await dispose_engine(url)

"""Session factory and schema bootstrap for the SQL stores."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from flowsmith.db.base import Base


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows are converted to domain objects inside the session, so nothing is refreshed after commit.
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


def _register_tables() -> None:
    import flowsmith.ledger.sql  # noqa: F401
    import flowsmith.registry.sql  # noqa: F401


async def create_all(engine: AsyncEngine) -> None:
    """Create the ``automations`` and ``execution_records`` tables if missing.

    For SQLite runs and tests; PostgreSQL schemas come from the Alembic migrations.
    """
    _register_tables()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all(engine: AsyncEngine) -> None:
    _register_tables()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

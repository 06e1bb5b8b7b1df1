"""Declarative base, shared column types and the owner scoping mixin."""

from sqlalchemy import JSON, MetaData, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for Flowsmith tables; Alembic autogenerates against its metadata."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class OwnerScoped:
    """Adds ``owner_id`` so per-owner dashboard queries stay on one table."""

    owner_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        doc="Owner (account) identifier.",
    )

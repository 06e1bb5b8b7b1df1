"""Flowsmith database layer: declarative base, async engines and sessions."""

from flowsmith.db.base import Base, JSONType, OwnerScoped
from flowsmith.db.engine import create_engine, dispose_engine, get_engine, resolve_url
from flowsmith.db.session import create_all, create_session_factory, drop_all
from flowsmith.errors import ConfigurationError

__all__ = [
    "Base",
    "ConfigurationError",
    "JSONType",
    "OwnerScoped",
    "create_all",
    "create_engine",
    "create_session_factory",
    "dispose_engine",
    "drop_all",
    "get_engine",
    "resolve_url",
]

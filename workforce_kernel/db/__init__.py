"""Database layer - engine, base classes, types, and immutability."""

from workforce_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from workforce_kernel.db.engine import (
    create_tables,
    database_url,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from workforce_kernel.db.types import Currency, Hours, Money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "database_url",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "Money",
    "Hours",
    "Currency",
]

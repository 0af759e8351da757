"""Database layer - engine, base classes and column types."""

from import_kernel.db.base import Base, TimestampedBase, UTCDateTime, UUIDString
from import_kernel.db.engine import create_tables, get_engine, get_session

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TimestampedBase",
    "UTCDateTime",
    "UUIDString",
]

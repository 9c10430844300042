"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from datetime import datetime, timezone

from sqlalchemy import DateTime, TypeDecorator
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

# UUID type that works with both databases
UUIDType = PG_UUID


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always hands back UTC datetimes.

    SQLite drops tzinfo on the way out; movement scheduling compares stored
    timestamps against ``datetime.now(timezone.utc)`` so naive values are
    normalised here instead of at every call site.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

# app/models/types.py
"""
Custom SQLAlchemy types that behave the same on SQLite and PostgreSQL.
"""

from datetime import UTC

from sqlalchemy import DateTime, TypeDecorator

from app.utils.clock import ensure_utc


class UTCDateTime(TypeDecorator):
    """
    Stores instants as naive UTC and always hands back aware UTC datetimes.

    SQLite drops tzinfo on the way out, so comparisons against
    ``datetime.now(UTC)`` would otherwise mix naive and aware values.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

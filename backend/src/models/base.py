"""Declarative base, column types and clock shared by the ORM models"""

from datetime import datetime, timezone

from sqlalchemy import JSON, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class PortableJSONB(TypeDecorator):
    """Stores correction payloads as JSONB on PostgreSQL and plain JSON elsewhere."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        target = JSONB() if dialect.name == "postgresql" else JSON()
        return dialect.type_descriptor(target)


def utcnow() -> datetime:
    # SQLite drops tzinfo on round trip, so every stored time is naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)

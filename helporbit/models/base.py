"""
Declarative base and shared column mixins
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention for all columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """Adds created_at / updated_at columns maintained by the ORM"""

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

"""
Defines a base model for SQLAlchemy ORM with common attributes.

This module provides a base class for SQLAlchemy models, including standard
attributes for identifying and timestamping database records. Primary keys are
database-assigned integers so that insertion order doubles as a stable cursor
for keyset pagination.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, Column, DateTime, Integer
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns, so BIGINT
# degrades to INTEGER there.
Identifier = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class BaseModel(Base):
    """
    Base model class for database entities.

    This abstract base model class serves as the foundation for all database
    entities, providing a monotonically increasing identifier and the record
    creation timestamp.

    :ivar id: Database-assigned identifier for the record.
    :type id: int
    :ivar created_at: Timestamp representing when the record was created.
    :type created_at: datetime
    """
    __abstract__ = True

    id = Column(Identifier, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

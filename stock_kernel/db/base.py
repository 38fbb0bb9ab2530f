"""
Module: stock_kernel.db.base
Responsibility: The declarative base shared by the movement, sequence and
    catalog tables, plus the two column types every table relies on.
Architecture position: Kernel > DB, the bottom of the import graph.  Models
    import from here; this module imports nothing from the kernel.

Invariants enforced:
    - Every row has a uuid4 primary key stored as 36-character text, so the
      same schema works on PostgreSQL and SQLite.
    - ``recorded_at`` and other datetimes are stored in UTC and always load
      as aware UTC values, even on SQLite, which drops tzinfo.
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID bound as text, loaded back as ``uuid.UUID``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    ``recorded_at`` storage: aware datetimes in, aware UTC datetimes out.

    Binding a naive value raises ValueError.  SQLite keeps no offset, so the
    value is converted to UTC and stored without one, then re-tagged on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Base for the kernel tables.

    ``Mapped[datetime]`` columns become UTCDateTime, ``Mapped[UUID]`` become
    UUIDString and ``Mapped[int]`` become BIGINT (ledger seq and counters).
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )

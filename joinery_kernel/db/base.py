"""
Module: joinery_kernel.db.base
Responsibility: Declarative base classes for the SQLAlchemy ORM rows shipped
    with the kernel (stock items, activity log entries).  Provides the string
    primary key convention, the type annotation map for consistent column
    types, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  Lowest-level import target for ORM
    models.  MUST NOT import from models/, domain/ or outer layers.

Invariants enforced:
    - String primary keys: ids are opaque strings (uuid4 by default), the same
      identifiers the domain layer uses.
    - Decimal precision: Python Decimal maps to Numeric(38, 9) for amounts
      and quantities.  NEVER use float.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a string primary key, uuid4 unless supplied.
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=new_id,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps.

    Guarantees:
        - created_at is set to server NOW() on INSERT and never changes.
        - updated_at auto-updates on every UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

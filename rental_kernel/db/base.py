"""
Module: rental_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the UUID primary key convention, the type annotation map and the
    TrackedBase mixin for row timestamps.
Architecture position: Kernel > DB.  Lowest-level import target for models.
    MUST NOT import from models/, services/, domain/ or outer packages.

Invariants enforced:
    - UUID primary keys generated with uuid4, stored as String(36).
    - Decimal and Money map to Numeric(38, 9), Rate to Numeric(38, 18).
      NEVER float for money.
    - datetime maps to DateTime(timezone=True).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from rental_kernel.db.types import Money, Rate


class UUIDString(TypeDecorator):
    """
    UUID stored as String(36) for cross-database portability.

    Binds UUID -> str and loads str -> UUID.
    """

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


class Base(DeclarativeBase):
    """
    Declarative base for all models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        Money: Numeric(38, 9),
        Rate: Numeric(38, 18),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with row timestamps.

    ``created_at`` and ``updated_at`` are row metadata, not financial data,
    so they may change even on records whose financial fields are frozen
    (see db/immutability.py).
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

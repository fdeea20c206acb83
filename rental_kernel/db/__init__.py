"""Database layer - engine, base classes, column types and immutability."""

from rental_kernel.db.base import Base, TrackedBase, UUIDString
from rental_kernel.db.engine import (
    create_database_engine,
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from rental_kernel.db.types import Money, Rate, round_money, to_decimal

__all__ = [
    "Base",
    "Money",
    "Rate",
    "TrackedBase",
    "UUIDString",
    "create_database_engine",
    "create_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "round_money",
    "session_scope",
    "to_decimal",
]

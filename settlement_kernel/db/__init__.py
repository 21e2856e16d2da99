"""Database layer - engine, base class, money helpers and append-only guards."""

from settlement_kernel.db.base import UUID, Base, UUIDString
from settlement_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from settlement_kernel.db.types import ZERO, round_money, to_money

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "UUIDString",
    "UUID",
    "ZERO",
    "round_money",
    "to_money",
]

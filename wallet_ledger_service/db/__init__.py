"""Database module for SQLAlchemy session management."""

from wallet_ledger_service.db.session import (
    AsyncSessionLocal,
    Base,
    engine,
    get_db,
    init_db,
)

__all__ = ["AsyncSessionLocal", "Base", "engine", "get_db", "init_db"]

"""SQLAlchemy models for the wallet ledger service."""

from wallet_ledger_service.models.api_key import APIKey
from wallet_ledger_service.models.transaction import Transaction
from wallet_ledger_service.models.user import User
from wallet_ledger_service.models.wallet import Wallet

__all__ = [
    "APIKey",
    "Transaction",
    "User",
    "Wallet",
]

"""Wallet-related schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class BalanceResponse(BaseModel):
    """Wallet balance response."""

    balance: str  # Decimal as string
    currency: str
    wallet_number: str


class TransactionResponse(BaseModel):
    """Transaction record response."""

    id: str
    type: str
    amount: str  # Signed: negative for debits
    status: str
    description: Optional[str] = None
    reference: str
    created_at: datetime


class TransactionListResponse(BaseModel):
    """Paginated list of transactions."""

    transactions: list[TransactionResponse]
    total: int
    page: int
    limit: int

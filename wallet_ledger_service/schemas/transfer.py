"""Transfer-related schemas."""

from decimal import Decimal

from pydantic import BaseModel, Field


class TransferRequest(BaseModel):
    """Transfer request body."""

    wallet_number: str = Field(
        ...,
        min_length=10,
        max_length=10,
        pattern=r"^\d{10}$",
        description="10-digit account number of the recipient",
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=18,
        decimal_places=2,
        description="Amount to transfer (e.g., 1000)",
    )


class TransferResponse(BaseModel):
    """Transfer response."""

    status: str
    message: str
    amount: str
    recipient: str

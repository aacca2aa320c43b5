"""Deposit-related schemas."""

from decimal import Decimal

from pydantic import BaseModel, Field


class DepositRequest(BaseModel):
    """Deposit request body."""

    amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=18,
        decimal_places=2,
        description="Amount to deposit, in major currency units",
    )


class DepositResponse(BaseModel):
    """Deposit initialization response."""

    reference: str
    authorization_url: str
    access_code: str


class DepositStatusResponse(BaseModel):
    """Deposit status response."""

    reference: str
    status: str
    amount: str


class WebhookAck(BaseModel):
    """Acknowledgement returned to the payment gateway."""

    status: bool = True

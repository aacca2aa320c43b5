"""API key schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from wallet_ledger_service.middleware.principal import Capability

ExpiryDuration = Literal["1H", "1D", "1M", "1Y"]


class CreateAPIKeyRequest(BaseModel):
    """Create API key request body."""

    name: str = Field(..., min_length=1, max_length=128, description="Name of the API key")
    permissions: list[Capability] = Field(
        ...,
        min_length=1,
        description="Capabilities granted to the key: read, deposit, transfer",
    )
    expiry: ExpiryDuration = Field(..., description="Validity: 1H, 1D, 1M or 1Y")


class CreateAPIKeyResponse(BaseModel):
    """Create API key response."""

    id: str
    api_key: str = Field(..., description="The raw API key (only shown once)")
    expires_at: datetime
    prefix: str
    name: str
    permissions: list[str]


class RolloverAPIKeyRequest(BaseModel):
    """Rollover API key request body."""

    expired_key_id: UUID = Field(..., description="ID of the expired key to roll over")
    expiry: ExpiryDuration = Field(..., description="Validity of the new key")


class APIKeyResponse(BaseModel):
    """API key metadata (never includes the secret)."""

    id: str
    name: str
    prefix: str
    permissions: list[str]
    status: str
    expires_at: datetime
    created_at: datetime


class RevokeAPIKeyResponse(BaseModel):
    """Revoke API key response."""

    message: str
    id: str
    name: str
    prefix: str
    revoked_at: datetime

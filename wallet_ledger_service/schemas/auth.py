"""Identity and session token schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class ExternalIdentity(BaseModel):
    """Identity resolved by the external identity provider."""

    external_id: str = Field(..., min_length=1, description="Stable id at the identity provider")
    email: EmailStr
    display_name: str = ""


class SessionTokenResponse(BaseModel):
    """Session bearer token."""

    access_token: str
    token_type: str = "bearer"
    expires_at: datetime

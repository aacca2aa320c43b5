"""API key management endpoints (session token required)."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_ledger_service.db import get_db
from wallet_ledger_service.middleware.auth import require_session_principal
from wallet_ledger_service.middleware.principal import SessionPrincipal
from wallet_ledger_service.schemas.api_key import (
    APIKeyResponse,
    CreateAPIKeyRequest,
    CreateAPIKeyResponse,
    RevokeAPIKeyResponse,
    RolloverAPIKeyRequest,
)
from wallet_ledger_service.services.api_keys import (
    create_api_key,
    list_api_keys,
    revoke_api_key,
    rollover_api_key,
)

router = APIRouter()


@router.get("", response_model=list[APIKeyResponse])
async def get_my_keys(
    principal: SessionPrincipal = Depends(require_session_principal),
    db: AsyncSession = Depends(get_db),
) -> list[APIKeyResponse]:
    """List my API keys (metadata only)."""
    return await list_api_keys(db, principal.user)


@router.post("/create", response_model=CreateAPIKeyResponse)
async def create_key(
    request: CreateAPIKeyRequest,
    principal: SessionPrincipal = Depends(require_session_principal),
    db: AsyncSession = Depends(get_db),
) -> CreateAPIKeyResponse:
    """Create an API key. The secret is only shown in this response."""
    return await create_api_key(
        db,
        principal.user,
        name=request.name,
        permissions=request.permissions,
        expiry=request.expiry,
    )


@router.post("/rollover", response_model=CreateAPIKeyResponse)
async def rollover_key(
    request: RolloverAPIKeyRequest,
    principal: SessionPrincipal = Depends(require_session_principal),
    db: AsyncSession = Depends(get_db),
) -> CreateAPIKeyResponse:
    """Replace an expired API key with a new one of the same permissions."""
    return await rollover_api_key(
        db,
        principal.user,
        expired_key_id=request.expired_key_id,
        expiry=request.expiry,
    )


@router.delete("/{key_id}", response_model=RevokeAPIKeyResponse)
async def revoke_key(
    key_id: UUID,
    principal: SessionPrincipal = Depends(require_session_principal),
    db: AsyncSession = Depends(get_db),
) -> RevokeAPIKeyResponse:
    """Revoke an API key. Revoked keys cannot be reactivated."""
    return await revoke_api_key(db, principal.user, key_id)

"""Unified authentication: session tokens and API keys."""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import argon2
from fastapi import Depends
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_ledger_service.core.config import settings
from wallet_ledger_service.core.exceptions import Forbidden, Unauthenticated
from wallet_ledger_service.db import get_db
from wallet_ledger_service.middleware.principal import (
    ApiKeyPrincipal,
    Capability,
    Principal,
    SessionPrincipal,
)
from wallet_ledger_service.models import APIKey, User
from wallet_ledger_service.models.api_key import APIKeyStatus
from wallet_ledger_service.services.sessions import decode_session_token

logger = logging.getLogger(__name__)

# Password hasher for API keys
ph = argon2.PasswordHasher()

# Security schemes; both optional so the resolver can try them in order
bearer_scheme = HTTPBearer(auto_error=False)
api_key_scheme = APIKeyHeader(name="x-api-key", auto_error=False)


def hash_api_key(api_key: str) -> str:
    """Hash an API key using Argon2."""
    return ph.hash(api_key)


def verify_api_key(api_key: str, key_hash: str) -> bool:
    """Verify an API key against its hash."""
    try:
        return ph.verify(key_hash, api_key)
    except (argon2.exceptions.VerificationError, argon2.exceptions.InvalidHashError):
        return False


def api_key_lookup_prefix(raw_key: str) -> str:
    """The plaintext prefix stored alongside each key's hash."""
    return raw_key[: settings.API_KEY_DISPLAY_PREFIX_LENGTH]


async def get_api_key_by_raw_key(db: AsyncSession, raw_key: str) -> Optional[APIKey]:
    """Look up an active, unexpired API key by its raw value.

    Candidates are narrowed by the stored display prefix, then each candidate's
    hash is checked one-way. The prefix is not secret; equality of the full
    secret is still only ever established through the Argon2 comparison.
    """
    now = datetime.now(timezone.utc)

    result = await db.execute(
        select(APIKey).where(
            APIKey.status == APIKeyStatus.ACTIVE,
            APIKey.expires_at > now,
            APIKey.prefix == api_key_lookup_prefix(raw_key),
        )
    )
    api_keys = result.scalars().all()

    # First match wins
    for api_key in api_keys:
        if verify_api_key(raw_key, api_key.key_hash):
            return api_key

    return None


async def _resolve_session(db: AsyncSession, token: str) -> Optional[SessionPrincipal]:
    claims = decode_session_token(token)
    if claims is None:
        return None

    result = await db.execute(select(User).where(User.id == claims.user_id))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("Session token references unknown user %s", claims.user_id)
        return None

    return SessionPrincipal(user=user)


async def _resolve_api_key(db: AsyncSession, raw_key: str) -> Optional[ApiKeyPrincipal]:
    api_key = await get_api_key_by_raw_key(db, raw_key)
    if api_key is None:
        return None

    result = await db.execute(select(User).where(User.id == api_key.user_id))
    user = result.scalar_one()

    granted = frozenset(c for c in Capability if api_key.has_permission(c.value))
    return ApiKeyPrincipal(user=user, api_key_id=api_key.id, granted=granted)


async def resolve_principal(
    db: AsyncSession,
    bearer_token: Optional[str],
    raw_api_key: Optional[str],
) -> Principal:
    """Resolve the caller: session token first, then API key.

    Raises:
        Unauthenticated: If neither credential identifies a user
    """
    if bearer_token:
        principal = await _resolve_session(db, bearer_token)
        if principal is not None:
            return principal

    if raw_api_key:
        principal = await _resolve_api_key(db, raw_api_key)
        if principal is not None:
            return principal
        raise Unauthenticated("Invalid or expired API key")

    if bearer_token:
        raise Unauthenticated("Invalid or expired session token")

    raise Unauthenticated("No authentication credentials provided")


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    raw_api_key: Optional[str] = Depends(api_key_scheme),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Get the principal for the current request."""
    bearer_token = credentials.credentials if credentials else None
    return await resolve_principal(db, bearer_token, raw_api_key)


def require_capability(capability: Capability) -> Callable[..., Principal]:
    """Create a dependency that requires a specific capability.

    Session principals always pass; API-key principals must hold the tag.

    Usage:
        @router.get("/endpoint")
        async def endpoint(principal: Principal = Depends(require_capability(Capability.READ))):
            ...
    """

    async def dependency(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        principal.require(capability)
        return principal

    return dependency


async def require_session_principal(
    principal: Principal = Depends(get_current_principal),
) -> SessionPrincipal:
    """Require a session principal (API keys cannot manage API keys)."""
    if not isinstance(principal, SessionPrincipal):
        raise Forbidden("This operation requires a session token")
    return principal

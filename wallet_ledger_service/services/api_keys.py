"""API key issuance, listing, revocation and rollover."""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence, Union
from uuid import UUID

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_ledger_service.core.config import settings
from wallet_ledger_service.core.exceptions import InvalidOperation, NotFound, QuotaExceeded
from wallet_ledger_service.middleware.auth import api_key_lookup_prefix, hash_api_key
from wallet_ledger_service.middleware.principal import Capability
from wallet_ledger_service.models import APIKey, User
from wallet_ledger_service.models.api_key import APIKeyStatus
from wallet_ledger_service.schemas.api_key import (
    APIKeyResponse,
    CreateAPIKeyResponse,
    RevokeAPIKeyResponse,
)

logger = logging.getLogger(__name__)

EXPIRY_DELTAS = {
    "1H": timedelta(hours=1),
    "1D": timedelta(days=1),
    "1M": relativedelta(months=1),
    "1Y": relativedelta(years=1),
}


def parse_expiry(expiry: str, now: Optional[datetime] = None) -> datetime:
    """Turn an expiry code (1H, 1D, 1M, 1Y) into an absolute UTC timestamp.

    Raises:
        InvalidOperation: If the code is not one of the supported durations
    """
    delta = EXPIRY_DELTAS.get(expiry)
    if delta is None:
        raise InvalidOperation(
            f"Invalid expiry format. Must be one of: {', '.join(EXPIRY_DELTAS)}",
            details={"expiry": expiry},
        )
    now = now or datetime.now(timezone.utc)
    return now + delta


def generate_api_key() -> str:
    """Generate a new API key secret."""
    return f"{settings.API_KEY_PREFIX}{secrets.token_hex(32)}"


def normalize_permissions(permissions: Sequence[Union[Capability, str]]) -> list[str]:
    """Validate capability tags and return them de-duplicated in a stable order."""
    if not permissions:
        raise InvalidOperation("At least one permission is required")
    try:
        requested = {Capability(p) for p in permissions}
    except ValueError:
        raise InvalidOperation(
            "Invalid permission. Allowed: " + ", ".join(c.value for c in Capability),
            details={"permissions": [str(p) for p in permissions]},
        )
    return [c.value for c in Capability if c in requested]


async def count_active_api_keys(db: AsyncSession, user_id: UUID) -> int:
    """Count a user's non-revoked, unexpired keys."""
    result = await db.execute(
        select(func.count())
        .select_from(APIKey)
        .where(
            APIKey.user_id == user_id,
            APIKey.status == APIKeyStatus.ACTIVE,
            APIKey.expires_at > datetime.now(timezone.utc),
        )
    )
    return result.scalar_one()


async def lock_user_for_update(db: AsyncSession, user_id: UUID) -> None:
    """Lock a user's row until the enclosing database transaction ends.

    Raises:
        NotFound: If the user does not exist
    """
    result = await db.execute(select(User.id).where(User.id == user_id).with_for_update())
    if result.scalar_one_or_none() is None:
        raise NotFound("User not found")


async def create_api_key(
    db: AsyncSession,
    user: User,
    name: str,
    permissions: Sequence[Union[Capability, str]],
    expiry: str,
) -> CreateAPIKeyResponse:
    """Create a new API key.

    Only the Argon2 hash and a short display prefix are stored; the plaintext
    secret is returned here once and cannot be recovered afterwards.

    Args:
        db: Database session
        user: Owner of the key
        name: Display name
        permissions: Capability tags to grant
        expiry: Expiry code (1H, 1D, 1M, 1Y)

    Returns:
        CreateAPIKeyResponse with the raw API key (only shown once)

    Raises:
        QuotaExceeded: If the user already has the maximum number of active keys
        InvalidOperation: If permissions or expiry are invalid
    """
    granted = normalize_permissions(permissions)
    expires_at = parse_expiry(expiry)

    raw_key = generate_api_key()
    prefix = api_key_lookup_prefix(raw_key)
    key_hash = hash_api_key(raw_key)

    try:
        # Holding the owner's row serializes concurrent creates against the quota
        await lock_user_for_update(db, user.id)

        active_count = await count_active_api_keys(db, user.id)
        if active_count >= settings.MAX_ACTIVE_API_KEYS:
            raise QuotaExceeded(
                f"Maximum of {settings.MAX_ACTIVE_API_KEYS} active API keys allowed per user",
                details={"active_keys": active_count, "limit": settings.MAX_ACTIVE_API_KEYS},
            )

        api_key = APIKey(
            key_hash=key_hash,
            prefix=prefix,
            name=name,
            permissions=granted,
            expires_at=expires_at,
            status=APIKeyStatus.ACTIVE,
            user_id=user.id,
        )
        db.add(api_key)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Created API key %s (%s) for user %s", api_key.id, prefix, user.id)

    return CreateAPIKeyResponse(
        id=str(api_key.id),
        api_key=raw_key,
        expires_at=expires_at,
        prefix=prefix,
        name=name,
        permissions=granted,
    )


async def list_api_keys(db: AsyncSession, user: User) -> list[APIKeyResponse]:
    """List a user's keys, newest first, without secrets."""
    result = await db.execute(
        select(APIKey)
        .where(APIKey.user_id == user.id)
        .order_by(APIKey.created_at.desc(), APIKey.id.desc())
    )
    now = datetime.now(timezone.utc)

    return [
        APIKeyResponse(
            id=str(key.id),
            name=key.name,
            prefix=key.prefix,
            permissions=list(key.permissions or []),
            status=key.display_status(now).value,
            expires_at=key.expires_at,
            created_at=key.created_at,
        )
        for key in result.scalars().all()
    ]


async def _get_owned_key(db: AsyncSession, user: User, key_id: UUID) -> APIKey:
    result = await db.execute(
        select(APIKey).where(APIKey.id == key_id, APIKey.user_id == user.id)
    )
    api_key = result.scalar_one_or_none()

    if api_key is None:
        raise NotFound("API key not found")

    return api_key


async def revoke_api_key(db: AsyncSession, user: User, key_id: UUID) -> RevokeAPIKeyResponse:
    """Revoke an API key owned by the user.

    Revocation is permanent. Revoking an already revoked key is an error.

    Raises:
        NotFound: If the key does not exist or belongs to another user
        InvalidOperation: If the key is already revoked
    """
    api_key = await _get_owned_key(db, user, key_id)
    api_key.revoke()

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Revoked API key %s for user %s", api_key.id, user.id)

    return RevokeAPIKeyResponse(
        message="API key revoked successfully",
        id=str(api_key.id),
        name=api_key.name,
        prefix=api_key.prefix,
        revoked_at=datetime.now(timezone.utc),
    )


async def rollover_api_key(
    db: AsyncSession,
    user: User,
    expired_key_id: UUID,
    expiry: str,
) -> CreateAPIKeyResponse:
    """Replace an expired key with a new one carrying the same name and permissions.

    Raises:
        NotFound: If the key does not exist or belongs to another user
        InvalidOperation: If the key has not expired yet
        QuotaExceeded: If the user is already at the active key limit
    """
    source = await _get_owned_key(db, user, expired_key_id)

    if not source.is_expired():
        raise InvalidOperation("API key is not expired yet")

    return await create_api_key(
        db,
        user,
        name=source.name,
        permissions=list(source.permissions or []),
        expiry=expiry,
    )

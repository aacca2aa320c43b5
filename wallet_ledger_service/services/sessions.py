"""User identity and session tokens.

The identity provider handshake happens elsewhere; this module receives the
resolved external identity, makes sure a user and wallet exist for it, and
issues the bearer token used for session authentication.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_ledger_service.core.config import settings
from wallet_ledger_service.models import User, Wallet
from wallet_ledger_service.schemas.auth import ExternalIdentity, SessionTokenResponse
from wallet_ledger_service.services.ledger import allocate_account_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionClaims:
    """Verified claims carried by a session token."""

    user_id: UUID
    email: str
    expires_at: datetime


async def ensure_user_and_wallet(db: AsyncSession, identity: ExternalIdentity) -> User:
    """Create or fetch the user for an external identity.

    In a single database transaction:
    1. Return the user already linked to the external id, if any.
    2. Otherwise attach the external id to the user with the same email.
    3. Otherwise create a new user and their wallet with a fresh account number.

    Args:
        db: Database session
        identity: Identity resolved by the identity provider

    Returns:
        The User
    """
    try:
        result = await db.execute(select(User).where(User.external_id == identity.external_id))
        user = result.scalar_one_or_none()

        if user is None:
            result = await db.execute(select(User).where(User.email == identity.email))
            user = result.scalar_one_or_none()

            if user is None:
                user = User(
                    email=identity.email,
                    external_id=identity.external_id,
                    display_name=identity.display_name,
                )
                db.add(user)
                await db.flush()

                wallet = Wallet(
                    user_id=user.id,
                    account_number=await allocate_account_number(db),
                    balance=Decimal("0.00"),
                    currency=settings.DEFAULT_CURRENCY,
                )
                db.add(wallet)
                logger.info("Created user %s with wallet %s", user.id, wallet.account_number)
            elif user.external_id is None:
                user.external_id = identity.external_id
                logger.info("Linked external identity to existing user %s", user.id)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return user


def issue_session_token(user: User, now: Optional[datetime] = None) -> SessionTokenResponse:
    """Issue a signed bearer token for a user."""
    now = now or datetime.now(timezone.utc)
    expires_at = now + timedelta(days=settings.JWT_EXPIRES_DAYS)

    payload = {
        "sub": str(user.id),
        "email": user.email,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    return SessionTokenResponse(access_token=token, expires_at=expires_at)


def decode_session_token(token: str) -> Optional[SessionClaims]:
    """Verify a session token's signature and expiry.

    Returns None for any token that is not a valid, unexpired session token.
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
        return SessionClaims(
            user_id=UUID(payload["sub"]),
            email=payload.get("email", ""),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired session token")
        return None
    except (jwt.InvalidTokenError, ValueError):
        return None

"""API key model."""

import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wallet_ledger_service.core.exceptions import InvalidOperation
from wallet_ledger_service.db.session import Base

if TYPE_CHECKING:
    from wallet_ledger_service.models.user import User


class APIKeyStatus(str, enum.Enum):
    """Stored API key state. The only transition is ACTIVE -> REVOKED."""

    ACTIVE = "active"
    REVOKED = "revoked"


class APIKeyDisplayStatus(str, enum.Enum):
    """Status shown to the key owner, derived at read time."""

    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class APIKey(Base):
    """API key model for delegated, capability-scoped access."""

    __tablename__ = "api_keys"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    key_hash: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    prefix: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )
    permissions: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    status: Mapped[APIKeyStatus] = mapped_column(
        Enum(APIKeyStatus, name="api_key_status"),
        nullable=False,
        default=APIKeyStatus.ACTIVE,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="api_keys",
    )

    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self) -> str:
        return f"<APIKey(id={self.id}, prefix={self.prefix}, status={self.status})>"

    @property
    def is_revoked(self) -> bool:
        return self.status == APIKeyStatus.REVOKED

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the key's expiry has passed."""
        now = now or datetime.now(timezone.utc)
        return _as_utc(self.expires_at) <= now

    def display_status(self, now: Optional[datetime] = None) -> APIKeyDisplayStatus:
        """Derive the owner-facing status: revoked > expired > active."""
        if self.is_revoked:
            return APIKeyDisplayStatus.REVOKED
        if self.is_expired(now):
            return APIKeyDisplayStatus.EXPIRED
        return APIKeyDisplayStatus.ACTIVE

    def has_permission(self, permission: str) -> bool:
        """Check if the API key grants the given capability tag."""
        return permission in (self.permissions or [])

    def revoke(self) -> None:
        """Move the key to REVOKED.

        Raises:
            InvalidOperation: If the key is already revoked
        """
        if self.is_revoked:
            raise InvalidOperation("API key is already revoked")
        self.status = APIKeyStatus.REVOKED

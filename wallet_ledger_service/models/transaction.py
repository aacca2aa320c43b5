"""Ledger transaction model."""

import enum
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, String, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wallet_ledger_service.db.session import Base
from wallet_ledger_service.models.wallet import MONEY

if TYPE_CHECKING:
    from wallet_ledger_service.models.wallet import Wallet


class TransactionType(str, enum.Enum):
    """Transaction type enumeration."""

    DEPOSIT = "DEPOSIT"
    TRANSFER = "TRANSFER"


class TransactionStatus(str, enum.Enum):
    """Transaction status enumeration.

    PENDING may move to SUCCESS or FAILED; both are terminal.
    """

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Transaction(Base):
    """A single financial event on one wallet.

    The reference is globally unique and is the idempotency key for every
    crediting side effect. A transfer produces two rows, a negative debit on
    the sender and a positive credit on the recipient.
    """

    __tablename__ = "transactions"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    reference: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
        index=True,
    )
    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, name="transaction_type"),
        nullable=False,
        index=True,
    )
    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus, name="transaction_status"),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        String(512),
        nullable=True,
    )
    transaction_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata",  # Keep the column name in DB as "metadata"
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
        default=dict,
    )
    wallet_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("wallets.id", ondelete="CASCADE"),
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
    wallet: Mapped["Wallet"] = relationship(
        "Wallet",
        back_populates="transactions",
    )

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        Index("ix_transactions_wallet_created_at", "wallet_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Transaction(reference={self.reference}, type={self.type}, status={self.status})>"

    @property
    def is_final(self) -> bool:
        return self.status != TransactionStatus.PENDING

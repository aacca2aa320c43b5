"""Wallet model."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wallet_ledger_service.db.session import Base

if TYPE_CHECKING:
    from wallet_ledger_service.models.transaction import Transaction
    from wallet_ledger_service.models.user import User


# Fixed-point storage for every monetary column
MONEY = Numeric(18, 2)

ACCOUNT_NUMBER_LENGTH = 10


class Wallet(Base):
    """Wallet model holding a user's balance.

    One wallet per user. The balance is only ever changed while the row is
    locked, in the same database transaction that writes the matching
    Transaction row(s).
    """

    __tablename__ = "wallets"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    account_number: Mapped[str] = mapped_column(
        String(ACCOUNT_NUMBER_LENGTH),
        nullable=False,
        unique=True,
        index=True,
    )
    balance: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
        default=Decimal("0.00"),
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
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
        back_populates="wallet",
    )
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="wallet",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallets_balance_non_negative"),
        Index("ix_wallets_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Wallet(id={self.id}, account_number={self.account_number}, balance={self.balance})>"

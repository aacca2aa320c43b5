"""Ledger store: wallet lookups, row locking and transaction records."""

import logging
import secrets
from decimal import Decimal, InvalidOperation as DecimalException
from typing import Any, Optional, TypeVar, Union
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_ledger_service.core.exceptions import InvalidOperation, NotFound
from wallet_ledger_service.models import Transaction, Wallet
from wallet_ledger_service.models.transaction import TransactionStatus, TransactionType
from wallet_ledger_service.models.wallet import ACCOUNT_NUMBER_LENGTH, MONEY
from wallet_ledger_service.schemas.wallet import (
    BalanceResponse,
    TransactionListResponse,
    TransactionResponse,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Smallest magnitude that no longer fits the integer digits of a MONEY column
MAX_AMOUNT = Decimal(10) ** (MONEY.precision - MONEY.scale)

MAX_ACCOUNT_NUMBER_ATTEMPTS = 10

T = TypeVar("T")


def to_money(value: Union[Decimal, int, str]) -> Decimal:
    """Convert a value to a 2-place fixed-point Decimal.

    Floats are rejected outright so binary rounding never leaks into the ledger.
    Amounts finer than one cent are refused rather than rounded, and so are
    amounts too large for a ``MONEY`` column.

    Raises:
        InvalidOperation: If the value is a float, not a number, out of range
            or has more than two decimal places
    """
    if isinstance(value, float):
        raise InvalidOperation("Amounts must be exact decimals, not floats")
    try:
        amount = Decimal(value)
    except (DecimalException, TypeError, ValueError):
        raise InvalidOperation(f"Invalid amount: {value!r}")
    if not amount.is_finite() or amount.copy_abs() >= MAX_AMOUNT:
        raise InvalidOperation(f"Invalid amount: {value!r}")
    try:
        quantized = amount.quantize(CENT)
    except DecimalException:
        raise InvalidOperation(f"Invalid amount: {value!r}")
    if quantized != amount:
        raise InvalidOperation(
            "Amounts may have at most two decimal places",
            details={"amount": str(value)},
        )
    return quantized


def order_pair_for_locking(a: T, b: T) -> tuple[T, T]:
    """Return two wallet identifiers in canonical lock order (ascending).

    Every operation that locks two wallets must acquire them in this order,
    whichever of them is the sender, so that opposite-direction operations on
    the same pair cannot deadlock.
    """
    if b < a:
        return b, a
    return a, b


def generate_account_number() -> str:
    """Generate a random fixed-width numeric account number (no leading zero)."""
    low = 10 ** (ACCOUNT_NUMBER_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


async def allocate_account_number(db: AsyncSession) -> str:
    """Generate an account number not used by any existing wallet.

    The unique constraint on wallets.account_number remains the final guard.
    """
    for _ in range(MAX_ACCOUNT_NUMBER_ATTEMPTS):
        candidate = generate_account_number()
        result = await db.execute(
            select(Wallet.id).where(Wallet.account_number == candidate)
        )
        if result.scalar_one_or_none() is None:
            return candidate
        logger.warning("Account number collision, regenerating")

    raise RuntimeError("Could not allocate a unique account number")


async def get_wallet(db: AsyncSession, user_id: UUID) -> Wallet:
    """Get the wallet owned by a user.

    Raises:
        NotFound: If the user has no wallet
    """
    result = await db.execute(select(Wallet).where(Wallet.user_id == user_id))
    wallet = result.scalar_one_or_none()

    if wallet is None:
        raise NotFound("Wallet not found")

    return wallet


async def get_wallet_by_account_number(db: AsyncSession, account_number: str) -> Wallet:
    """Get a wallet by its public account number.

    Raises:
        NotFound: If no wallet has that account number
    """
    result = await db.execute(
        select(Wallet).where(Wallet.account_number == account_number)
    )
    wallet = result.scalar_one_or_none()

    if wallet is None:
        raise NotFound("Wallet not found", details={"account_number": account_number})

    return wallet


async def lock_wallet_for_update(
    db: AsyncSession,
    wallet_id: Optional[UUID] = None,
    account_number: Optional[str] = None,
) -> Wallet:
    """Lock a wallet row using SELECT FOR UPDATE.

    Blocks concurrent writers to the same row until the enclosing database
    transaction commits or rolls back. The returned object reflects the row as
    read under the lock, not any stale copy in the session.

    Args:
        db: Database session
        wallet_id: ID of the wallet to lock
        account_number: Account number of the wallet to lock (alternative to wallet_id)

    Returns:
        The locked Wallet

    Raises:
        NotFound: If the wallet does not exist
    """
    if (wallet_id is None) == (account_number is None):
        raise ValueError("Provide exactly one of wallet_id or account_number")

    query = select(Wallet).with_for_update().execution_options(populate_existing=True)
    if wallet_id is not None:
        query = query.where(Wallet.id == wallet_id)
    else:
        query = query.where(Wallet.account_number == account_number)

    result = await db.execute(query)
    wallet = result.scalar_one_or_none()

    if wallet is None:
        raise NotFound("Wallet not found")

    return wallet


async def lock_wallet_pair(
    db: AsyncSession,
    first_id: UUID,
    second_id: UUID,
) -> dict[UUID, Wallet]:
    """Lock two distinct wallets in canonical order.

    Returns:
        Dictionary mapping wallet ID to the locked Wallet
    """
    if first_id == second_id:
        raise InvalidOperation("Cannot lock the same wallet twice")

    locked: dict[UUID, Wallet] = {}
    for wallet_id in order_pair_for_locking(first_id, second_id):
        locked[wallet_id] = await lock_wallet_for_update(db, wallet_id=wallet_id)

    return locked


async def lock_transaction_for_update(db: AsyncSession, reference: str) -> Optional[Transaction]:
    """Lock a ledger transaction row by reference, re-reading its current state."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.reference == reference)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_transaction_by_reference(db: AsyncSession, reference: str) -> Optional[Transaction]:
    """Get a ledger transaction by its reference."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.reference == reference)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def record_transaction(
    db: AsyncSession,
    wallet: Wallet,
    reference: str,
    type: TransactionType,
    status: TransactionStatus,
    amount: Decimal,
    description: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> Transaction:
    """Add a ledger transaction row to the current database transaction.

    The caller is responsible for flushing/committing it together with the
    matching balance change.
    """
    transaction = Transaction(
        reference=reference,
        type=type,
        status=status,
        amount=amount,
        description=description,
        transaction_metadata=metadata or {},
        wallet_id=wallet.id,
    )
    db.add(transaction)
    return transaction


async def get_balance(db: AsyncSession, user_id: UUID) -> BalanceResponse:
    """Get the balance of a user's wallet."""
    wallet = await get_wallet(db, user_id)

    return BalanceResponse(
        balance=str(wallet.balance),
        currency=wallet.currency,
        wallet_number=wallet.account_number,
    )


async def list_transactions(
    db: AsyncSession,
    user_id: UUID,
    page: int = 1,
    limit: int = 10,
) -> TransactionListResponse:
    """List a user's ledger transactions, newest first.

    Args:
        db: Database session
        user_id: Owner of the wallet
        page: 1-based page number
        limit: Page size

    Returns:
        TransactionListResponse
    """
    page = max(page, 1)
    limit = max(min(limit, 100), 1)

    wallet = await get_wallet(db, user_id)

    total_result = await db.execute(
        select(func.count()).select_from(Transaction).where(Transaction.wallet_id == wallet.id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Transaction)
        .where(Transaction.wallet_id == wallet.id)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    items = [
        TransactionResponse(
            id=str(tx.id),
            type=tx.type.value.lower(),
            amount=str(tx.amount),
            status=tx.status.value.lower(),
            description=tx.description,
            reference=tx.reference,
            created_at=tx.created_at,
        )
        for tx in result.scalars().all()
    ]

    return TransactionListResponse(
        transactions=items,
        total=total,
        page=page,
        limit=limit,
    )

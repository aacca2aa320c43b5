"""Transfer engine: atomic wallet-to-wallet movement of funds."""

import logging
from decimal import Decimal
from typing import Union
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from wallet_ledger_service.core.exceptions import InsufficientFunds, InvalidOperation
from wallet_ledger_service.models.transaction import TransactionStatus, TransactionType
from wallet_ledger_service.schemas.transfer import TransferResponse
from wallet_ledger_service.services.ledger import (
    get_wallet,
    get_wallet_by_account_number,
    lock_wallet_pair,
    record_transaction,
    to_money,
)

logger = logging.getLogger(__name__)


def generate_transfer_references() -> tuple[str, str]:
    """Fresh references for the debit and credit legs of a transfer."""
    return f"tfr_debit_{uuid4()}", f"tfr_credit_{uuid4()}"


async def create_transfer(
    db: AsyncSession,
    sender_user_id: UUID,
    recipient_account_number: str,
    amount: Union[Decimal, int, str],
) -> TransferResponse:
    """Transfer funds from a user's wallet to another wallet.

    Both wallet rows are locked in canonical order for the whole database
    transaction, so readers see either the state before the transfer or the
    fully applied one. Any failure after the transaction began rolls it back
    before the error propagates.

    Args:
        db: Database session
        sender_user_id: Owner of the source wallet
        recipient_account_number: Account number of the destination wallet
        amount: Amount to transfer (must be positive)

    Returns:
        TransferResponse

    Raises:
        InvalidOperation: If the amount is not positive or the recipient is the sender
        NotFound: If either wallet does not exist
        InsufficientFunds: If the sender's balance is below the amount
    """
    amount_decimal = to_money(amount)

    if amount_decimal <= 0:
        raise InvalidOperation(
            "Amount must be positive",
            details={"amount": str(amount_decimal)},
        )

    try:
        sender = await get_wallet(db, sender_user_id)
        recipient = await get_wallet_by_account_number(db, recipient_account_number)

        # Prevent self-transfer
        if sender.id == recipient.id:
            raise InvalidOperation("Cannot transfer to your own wallet")

        # Lock both wallets to prevent concurrent modifications
        locked = await lock_wallet_pair(db, sender.id, recipient.id)
        sender = locked[sender.id]
        recipient = locked[recipient.id]

        # Check sufficient balance under the lock
        if sender.balance < amount_decimal:
            raise InsufficientFunds(
                f"Insufficient funds. Available: {sender.balance}, Required: {amount_decimal}",
                details={
                    "available": str(sender.balance),
                    "required": str(amount_decimal),
                },
            )

        sender.balance = sender.balance - amount_decimal
        recipient.balance = recipient.balance + amount_decimal

        debit_reference, credit_reference = generate_transfer_references()

        record_transaction(
            db,
            wallet=sender,
            reference=debit_reference,
            type=TransactionType.TRANSFER,
            status=TransactionStatus.SUCCESS,
            amount=-amount_decimal,
            description=f"Transfer to {recipient.account_number}",
            metadata={
                "recipient_account_number": recipient.account_number,
                "transfer_type": "debit",
                "counterpart_reference": credit_reference,
            },
        )
        record_transaction(
            db,
            wallet=recipient,
            reference=credit_reference,
            type=TransactionType.TRANSFER,
            status=TransactionStatus.SUCCESS,
            amount=amount_decimal,
            description=f"Transfer from {sender.account_number}",
            metadata={
                "sender_account_number": sender.account_number,
                "transfer_type": "credit",
                "counterpart_reference": debit_reference,
            },
        )

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Transferred %s from %s to %s",
        amount_decimal,
        sender.account_number,
        recipient.account_number,
    )

    return TransferResponse(
        status="success",
        message="Transfer completed",
        amount=str(amount_decimal),
        recipient=recipient.account_number,
    )

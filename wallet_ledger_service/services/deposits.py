"""Deposit reconciliation: pending deposits, webhook crediting and status polling.

A deposit is recorded as a PENDING transaction before the payment gateway is
asked to start a charge. The wallet is credited later, either by the gateway's
asynchronous notification or by a status poll that verifies the charge. Both
paths end in ``credit_from_gateway_event``, which is idempotent on the
transaction reference.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from wallet_ledger_service.core.config import settings
from wallet_ledger_service.core.exceptions import InvalidOperation, NotFound, SignatureInvalid
from wallet_ledger_service.models import User
from wallet_ledger_service.models.transaction import TransactionStatus, TransactionType
from wallet_ledger_service.schemas.deposit import DepositResponse, DepositStatusResponse
from wallet_ledger_service.services.gateway import (
    SUCCESS_STATUS,
    PaymentGateway,
    to_major_units,
    verify_signature,
)
from wallet_ledger_service.services.ledger import (
    get_transaction_by_reference,
    get_wallet,
    lock_transaction_for_update,
    lock_wallet_for_update,
    record_transaction,
    to_money,
)

logger = logging.getLogger(__name__)

CHARGE_SUCCESS_EVENT = "charge.success"


def generate_deposit_reference() -> str:
    """Generate a fresh, unique deposit reference."""
    return f"dep_{uuid4()}"


async def initiate_deposit(
    db: AsyncSession,
    gateway: PaymentGateway,
    user: User,
    amount: Union[Decimal, int, str],
) -> DepositResponse:
    """Record a pending deposit and start a gateway charge for it.

    The PENDING transaction is committed before the gateway is called, so no
    lock or open transaction spans the network round-trip. If the gateway call
    fails, the pending row remains and can be reconciled by status polling.

    Args:
        db: Database session
        gateway: Payment gateway client
        user: Depositing user
        amount: Amount in ledger units

    Returns:
        DepositResponse with the reference and the gateway's checkout handoff

    Raises:
        InvalidOperation: If the amount is below the configured minimum
        NotFound: If the user has no wallet
        UpstreamFailure: If the gateway rejects the charge
    """
    amount_decimal = to_money(amount)
    minimum = to_money(settings.MIN_DEPOSIT_AMOUNT)

    if amount_decimal < minimum:
        raise InvalidOperation(
            f"Minimum deposit amount is {minimum}",
            details={"minimum": str(minimum), "requested": str(amount_decimal)},
        )

    wallet = await get_wallet(db, user.id)
    reference = generate_deposit_reference()

    record_transaction(
        db,
        wallet=wallet,
        reference=reference,
        type=TransactionType.DEPOSIT,
        status=TransactionStatus.PENDING,
        amount=amount_decimal,
        description="Wallet deposit via Paystack",
        metadata={"email": user.email},
    )

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Created pending deposit %s for wallet %s", reference, wallet.account_number)

    data = await gateway.initialize_charge(
        email=user.email,
        amount=amount_decimal,
        reference=reference,
    )

    return DepositResponse(
        reference=reference,
        authorization_url=data.get("authorization_url", ""),
        access_code=data.get("access_code", ""),
    )


async def credit_from_gateway_event(
    db: AsyncSession,
    reference: str,
    reported_status: Optional[str],
    reported_amount: Union[int, str, Decimal, None],
    payload: Optional[dict[str, Any]] = None,
) -> bool:
    """Credit a wallet for a successful charge, at most once per reference.

    Steps:
    1. Unknown reference: log and do nothing.
    2. Already SUCCESS: do nothing.
    3. Reported status is not success: do nothing.
    4. Otherwise lock the transaction and wallet rows, re-check the status
       under the lock, add the reported amount (minor units converted to ledger
       units) to the balance, mark the transaction SUCCESS and keep the gateway
       payload in its metadata.

    The status re-check under the transaction row lock is what makes a double
    credit impossible when the webhook and a status poll race.

    Args:
        db: Database session
        reference: Transaction reference reported by the gateway
        reported_status: Charge status reported by the gateway
        reported_amount: Charge amount in gateway minor units
        payload: Raw gateway data to keep on the transaction

    Returns:
        True if this call credited the wallet, False if it was a no-op
    """
    transaction = await get_transaction_by_reference(db, reference)

    if transaction is None:
        logger.warning("Transaction not found for reference: %s", reference)
    elif transaction.status == TransactionStatus.SUCCESS:
        logger.info("Transaction %s already processed", reference)
    elif reported_status != SUCCESS_STATUS:
        logger.info("Ignoring %s event for %s", reported_status, reference)
    elif transaction.type != TransactionType.DEPOSIT:
        logger.warning("Ignoring gateway event for non-deposit transaction %s", reference)
    else:
        return await _apply_credit(db, reference, reported_amount, payload)

    # Nothing to credit; end the read transaction
    await db.commit()
    return False


async def _apply_credit(
    db: AsyncSession,
    reference: str,
    reported_amount: Union[int, str, Decimal, None],
    payload: Optional[dict[str, Any]],
) -> bool:
    try:
        # Re-read under lock; a concurrent caller may have credited meanwhile
        transaction = await lock_transaction_for_update(db, reference)
        if transaction is None or transaction.status != TransactionStatus.PENDING:
            await db.commit()
            logger.info("Transaction %s settled concurrently, skipping", reference)
            return False

        wallet = await lock_wallet_for_update(db, wallet_id=transaction.wallet_id)

        credit = to_major_units(reported_amount if reported_amount is not None else 0)
        if credit <= 0:
            raise InvalidOperation(
                "Gateway reported a non-positive amount",
                details={"reference": reference, "amount": str(reported_amount)},
            )
        if credit != transaction.amount:
            logger.warning(
                "Gateway amount %s differs from pending amount %s for %s",
                credit,
                transaction.amount,
                reference,
            )

        wallet.balance = wallet.balance + credit
        transaction.status = TransactionStatus.SUCCESS
        transaction.transaction_metadata = {
            **(transaction.transaction_metadata or {}),
            "gateway_response": payload or {},
        }

        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Failed to credit deposit %s", reference)
        raise

    logger.info("Successfully credited %s to wallet %s", credit, wallet.account_number)
    return True


async def handle_gateway_webhook(
    db: AsyncSession,
    raw_body: bytes,
    signature: Optional[str],
) -> dict[str, bool]:
    """Authenticate and process a gateway notification.

    The signature is checked before anything else, so an unauthentic event
    reveals nothing about which references exist.

    Raises:
        SignatureInvalid: If the signature does not match the body
    """
    if not verify_signature(raw_body, signature, settings.PAYSTACK_SECRET_KEY):
        logger.warning("Rejected webhook with invalid signature")
        raise SignatureInvalid("Invalid signature")

    try:
        event = json.loads(raw_body)
    except ValueError:
        raise InvalidOperation("Malformed webhook body")

    if not isinstance(event, dict):
        raise InvalidOperation("Malformed webhook body")

    # Only successful charge events move money
    if event.get("event") != CHARGE_SUCCESS_EVENT:
        logger.info("Ignoring webhook event %s", event.get("event"))
        return {"status": True}

    data = event.get("data")
    if not isinstance(data, dict):
        # Redelivery cannot fix an authentic but unusable event, so it is acked
        logger.error("Discarding %s event without a data object", CHARGE_SUCCESS_EVENT)
        return {"status": True}

    reference = str(data.get("reference", ""))
    try:
        await credit_from_gateway_event(
            db,
            reference=reference,
            reported_status=data.get("status"),
            reported_amount=data.get("amount"),
            payload=data,
        )
    except InvalidOperation as exc:
        # The deposit stays PENDING for status polling to reconcile
        logger.error("Discarding %s event for %s: %s", CHARGE_SUCCESS_EVENT, reference, exc.message)

    return {"status": True}


async def get_deposit_status(
    db: AsyncSession,
    gateway: PaymentGateway,
    reference: str,
    user_id: UUID,
) -> DepositStatusResponse:
    """Return a deposit's status, verifying with the gateway while it is pending.

    A failed verification is logged and does not fail the read; the last
    persisted status is returned instead.

    Raises:
        NotFound: If the reference is unknown or belongs to another user's wallet
    """
    transaction = await get_transaction_by_reference(db, reference)
    if transaction is None:
        raise NotFound("Transaction not found")

    wallet = await get_wallet(db, user_id)
    if transaction.wallet_id != wallet.id:
        raise NotFound("Transaction not found")

    if not transaction.is_final:
        # Close the read transaction before the network call
        await db.commit()
        try:
            verification = await gateway.verify_charge(reference)
            if verification.get("status") == SUCCESS_STATUS:
                await credit_from_gateway_event(
                    db,
                    reference=reference,
                    reported_status=verification.get("status"),
                    reported_amount=verification.get("amount"),
                    payload=verification,
                )
        except Exception as exc:
            logger.error("Failed to verify transaction %s: %s", reference, exc)

    updated = await get_transaction_by_reference(db, reference)
    if updated is None:
        raise NotFound("Transaction not found")

    return DepositStatusResponse(
        reference=updated.reference,
        status=updated.status.value.lower(),
        amount=str(updated.amount),
    )

"""Wallet endpoints."""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_ledger_service.db import get_db
from wallet_ledger_service.middleware.auth import require_capability
from wallet_ledger_service.middleware.principal import Capability, Principal
from wallet_ledger_service.schemas.deposit import (
    DepositRequest,
    DepositResponse,
    DepositStatusResponse,
    WebhookAck,
)
from wallet_ledger_service.schemas.transfer import TransferRequest, TransferResponse
from wallet_ledger_service.schemas.wallet import BalanceResponse, TransactionListResponse
from wallet_ledger_service.services.deposits import (
    get_deposit_status,
    handle_gateway_webhook,
    initiate_deposit,
)
from wallet_ledger_service.services.gateway import (
    SIGNATURE_HEADER,
    PaymentGateway,
    get_payment_gateway,
)
from wallet_ledger_service.services.ledger import get_balance, list_transactions
from wallet_ledger_service.services.transfers import create_transfer

router = APIRouter()


@router.get("/balance", response_model=BalanceResponse)
async def wallet_balance(
    principal: Principal = Depends(require_capability(Capability.READ)),
    db: AsyncSession = Depends(get_db),
) -> BalanceResponse:
    """Get the current wallet balance."""
    return await get_balance(db, principal.user_id)


@router.get("/transactions", response_model=TransactionListResponse)
async def wallet_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(require_capability(Capability.READ)),
    db: AsyncSession = Depends(get_db),
) -> TransactionListResponse:
    """List transactions for the current wallet."""
    return await list_transactions(db, principal.user_id, page=page, limit=limit)


@router.post("/deposit", response_model=DepositResponse)
async def deposit(
    request: DepositRequest,
    principal: Principal = Depends(require_capability(Capability.DEPOSIT)),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> DepositResponse:
    """Start a deposit; returns the gateway checkout URL."""
    return await initiate_deposit(db, gateway, principal.user, request.amount)


@router.get("/deposit/{reference}/status", response_model=DepositStatusResponse)
async def deposit_status(
    reference: str,
    principal: Principal = Depends(require_capability(Capability.READ)),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> DepositStatusResponse:
    """Get a deposit's status, verifying with the gateway while pending."""
    return await get_deposit_status(db, gateway, reference, principal.user_id)


@router.post("/transfer", response_model=TransferResponse)
async def transfer(
    request: TransferRequest,
    principal: Principal = Depends(require_capability(Capability.TRANSFER)),
    db: AsyncSession = Depends(get_db),
) -> TransferResponse:
    """Transfer funds to another wallet."""
    return await create_transfer(
        db,
        sender_user_id=principal.user_id,
        recipient_account_number=request.wallet_number,
        amount=request.amount,
    )


@router.post("/paystack/webhook", response_model=WebhookAck)
async def paystack_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> WebhookAck:
    """Receive Paystack notifications (authenticated by signature, not by user)."""
    raw_body = await request.body()
    result = await handle_gateway_webhook(
        db,
        raw_body=raw_body,
        signature=request.headers.get(SIGNATURE_HEADER),
    )
    return WebhookAck(**result)

"""Tests for wallet-to-wallet transfers."""

from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wallet_ledger_service.core.exceptions import InvalidOperation
from wallet_ledger_service.models import Transaction
from wallet_ledger_service.models.transaction import TransactionType
from wallet_ledger_service.services.transfers import create_transfer


@pytest.mark.asyncio
async def test_transfer_moves_funds(client: AsyncClient, alice, bob, fund, read_wallet, session_headers):
    """Test that a transfer debits the sender and credits the recipient."""
    await fund(alice, "5000")
    bob_wallet = await read_wallet(bob.id)

    response = await client.post(
        "/v1/wallet/transfer",
        headers=session_headers(alice),
        json={"wallet_number": bob_wallet.account_number, "amount": "1000"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["amount"] == "1000.00"
    assert data["recipient"] == bob_wallet.account_number

    assert (await read_wallet(alice.id)).balance == Decimal("4000.00")
    assert (await read_wallet(bob.id)).balance == Decimal("1000.00")


@pytest.mark.asyncio
async def test_transfer_records_both_legs(client: AsyncClient, alice, bob, fund, read_wallet, session_headers):
    """Test that both wallets see their side of the transfer in their history."""
    await fund(alice, "5000")
    alice_wallet = await read_wallet(alice.id)
    bob_wallet = await read_wallet(bob.id)

    await client.post(
        "/v1/wallet/transfer",
        headers=session_headers(alice),
        json={"wallet_number": bob_wallet.account_number, "amount": "250.50"},
    )

    alice_history = (
        await client.get("/v1/wallet/transactions", headers=session_headers(alice))
    ).json()
    bob_history = (
        await client.get("/v1/wallet/transactions", headers=session_headers(bob))
    ).json()

    debits = [t for t in alice_history["transactions"] if t["type"] == "transfer"]
    credits = [t for t in bob_history["transactions"] if t["type"] == "transfer"]

    assert len(debits) == 1
    assert debits[0]["amount"] == "-250.50"
    assert debits[0]["status"] == "success"
    assert debits[0]["description"] == f"Transfer to {bob_wallet.account_number}"

    assert len(credits) == 1
    assert credits[0]["amount"] == "250.50"
    assert credits[0]["description"] == f"Transfer from {alice_wallet.account_number}"


@pytest.mark.asyncio
async def test_transfer_conserves_total_balance(
    db_session: AsyncSession, alice, bob, fund, read_wallet
):
    """Test that transfers never create or destroy money."""
    await fund(alice, "300")
    await fund(bob, "700")
    alice_wallet = await read_wallet(alice.id)
    bob_wallet = await read_wallet(bob.id)

    await create_transfer(db_session, alice.id, bob_wallet.account_number, Decimal("120.25"))
    await create_transfer(db_session, bob.id, alice_wallet.account_number, "80")

    alice_after = await read_wallet(alice.id)
    bob_after = await read_wallet(bob.id)
    assert alice_after.balance + bob_after.balance == Decimal("1000.00")
    assert alice_after.balance == Decimal("259.75")


@pytest.mark.asyncio
async def test_insufficient_funds_changes_nothing(
    client: AsyncClient, session_factory, alice, bob, fund, read_wallet, session_headers
):
    """Test that an over-balance transfer fails without side effects."""
    await fund(alice, "100")
    bob_wallet = await read_wallet(bob.id)

    response = await client.post(
        "/v1/wallet/transfer",
        headers=session_headers(alice),
        json={"wallet_number": bob_wallet.account_number, "amount": "100.01"},
    )

    assert response.status_code == 400
    data = response.json()
    assert data["error_code"] == "INSUFFICIENT_FUNDS"
    assert data["details"]["available"] == "100.00"

    assert (await read_wallet(alice.id)).balance == Decimal("100.00")
    assert (await read_wallet(bob.id)).balance == Decimal("0.00")

    async with session_factory() as session:
        result = await session.execute(
            select(Transaction).where(Transaction.type == TransactionType.TRANSFER)
        )
        assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_transfer_entire_balance(client: AsyncClient, alice, bob, fund, read_wallet, session_headers):
    """Test that a sender may spend down to exactly zero."""
    await fund(alice, "42.42")
    bob_wallet = await read_wallet(bob.id)

    response = await client.post(
        "/v1/wallet/transfer",
        headers=session_headers(alice),
        json={"wallet_number": bob_wallet.account_number, "amount": "42.42"},
    )

    assert response.status_code == 200
    assert (await read_wallet(alice.id)).balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_self_transfer_rejected(client: AsyncClient, alice, fund, read_wallet, session_headers):
    """Test that transferring to your own wallet fails."""
    await fund(alice, "500")
    alice_wallet = await read_wallet(alice.id)

    response = await client.post(
        "/v1/wallet/transfer",
        headers=session_headers(alice),
        json={"wallet_number": alice_wallet.account_number, "amount": "10"},
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_OPERATION"
    assert (await read_wallet(alice.id)).balance == Decimal("500.00")


@pytest.mark.asyncio
async def test_unknown_recipient(client: AsyncClient, alice, fund, session_headers):
    """Test that an unknown account number yields NOT_FOUND."""
    await fund(alice, "500")

    # Generated account numbers never start with zero
    response = await client.post(
        "/v1/wallet/transfer",
        headers=session_headers(alice),
        json={"wallet_number": "0000000000", "amount": "10"},
    )

    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_malformed_wallet_number_rejected(client: AsyncClient, alice, session_headers):
    """Test that request validation rejects non 10-digit account numbers."""
    response = await client.post(
        "/v1/wallet/transfer",
        headers=session_headers(alice),
        json={"wallet_number": "12345", "amount": "10"},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "0.00"])
async def test_non_positive_amount_rejected(db_session: AsyncSession, alice, bob, read_wallet, amount):
    """Test that zero and negative amounts never reach the ledger."""
    bob_wallet = await read_wallet(bob.id)

    with pytest.raises(InvalidOperation):
        await create_transfer(db_session, alice.id, bob_wallet.account_number, amount)


@pytest.mark.asyncio
async def test_float_amount_rejected(db_session: AsyncSession, alice, bob, read_wallet):
    """Test that float amounts are refused before any rounding happens."""
    bob_wallet = await read_wallet(bob.id)

    with pytest.raises(InvalidOperation):
        await create_transfer(db_session, alice.id, bob_wallet.account_number, 10.5)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0.005", "10.999", "1e30", "10000000000000000"])
async def test_unrepresentable_amount_rejected(
    db_session: AsyncSession, alice, bob, fund, read_wallet, amount
):
    """Test that sub-cent and oversized amounts are refused, never rounded."""
    await fund(alice, "100")
    bob_wallet = await read_wallet(bob.id)

    with pytest.raises(InvalidOperation):
        await create_transfer(db_session, alice.id, bob_wallet.account_number, amount)

    assert (await read_wallet(alice.id)).balance == Decimal("100.00")
    assert (await read_wallet(bob.id)).balance == Decimal("0.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0.005", "1e30", "10000000000000000"])
async def test_unrepresentable_amount_is_a_validation_error(
    client: AsyncClient, alice, bob, fund, read_wallet, session_headers, amount
):
    """Test that the HTTP layer answers 422 rather than rounding or failing."""
    await fund(alice, "100")
    bob_wallet = await read_wallet(bob.id)

    response = await client.post(
        "/v1/wallet/transfer",
        headers=session_headers(alice),
        json={"wallet_number": bob_wallet.account_number, "amount": amount},
    )

    assert response.status_code == 422
    assert (await read_wallet(alice.id)).balance == Decimal("100.00")

"""Tests for ledger store primitives and history queries."""

from decimal import Decimal
from uuid import UUID

import pytest
from httpx import AsyncClient

from wallet_ledger_service.core.exceptions import InvalidOperation, NotFound
from wallet_ledger_service.services.ledger import (
    generate_account_number,
    get_wallet_by_account_number,
    list_transactions,
    lock_wallet_pair,
    order_pair_for_locking,
    to_money,
)


def test_lock_order_is_canonical():
    low = UUID("00000000-0000-0000-0000-000000000001")
    high = UUID("ffffffff-0000-0000-0000-000000000000")

    assert order_pair_for_locking(low, high) == (low, high)
    assert order_pair_for_locking(high, low) == (low, high)


def test_to_money_quantizes_to_cents():
    assert to_money("10") == Decimal("10.00")
    assert to_money(Decimal("10.5")) == Decimal("10.50")
    assert to_money("10.500") == Decimal("10.50")
    assert to_money(7) == Decimal("7.00")
    assert to_money("9999999999999999.99") == Decimal("9999999999999999.99")


@pytest.mark.parametrize(
    "value",
    [
        1.5,
        "abc",
        "NaN",
        "Infinity",
        None,
        Decimal("10.005"),
        "0.001",
        "1e30",
        "10000000000000000",
        "-10000000000000000",
        "1e999999999",
    ],
)
def test_to_money_rejects_inexact_values(value):
    with pytest.raises(InvalidOperation):
        to_money(value)


def test_account_number_format():
    for _ in range(100):
        number = generate_account_number()
        assert len(number) == 10
        assert number.isdigit()
        assert number[0] != "0"


@pytest.mark.asyncio
async def test_wallet_by_account_number(db_session, alice, read_wallet):
    wallet = await read_wallet(alice.id)

    found = await get_wallet_by_account_number(db_session, wallet.account_number)

    assert found.id == wallet.id
    with pytest.raises(NotFound):
        await get_wallet_by_account_number(db_session, "0000000000")


@pytest.mark.asyncio
async def test_lock_pair_refuses_same_wallet(db_session, alice, read_wallet):
    wallet = await read_wallet(alice.id)

    with pytest.raises(InvalidOperation):
        await lock_wallet_pair(db_session, wallet.id, wallet.id)


@pytest.mark.asyncio
async def test_lock_pair_returns_both_wallets(db_session, alice, bob, read_wallet):
    alice_wallet = await read_wallet(alice.id)
    bob_wallet = await read_wallet(bob.id)

    locked = await lock_wallet_pair(db_session, bob_wallet.id, alice_wallet.id)

    assert set(locked) == {alice_wallet.id, bob_wallet.id}
    assert list(locked) == list(order_pair_for_locking(alice_wallet.id, bob_wallet.id))


@pytest.mark.asyncio
async def test_list_transactions_paginates(db_session, alice, fund):
    for amount in ("10", "20", "30", "40", "50"):
        await fund(alice, amount)

    first = await list_transactions(db_session, alice.id, page=1, limit=2)
    third = await list_transactions(db_session, alice.id, page=3, limit=2)

    assert first.total == 5
    assert len(first.transactions) == 2
    assert len(third.transactions) == 1
    assert first.page == 1
    assert first.limit == 2

    everything = await list_transactions(db_session, alice.id, page=1, limit=1000)
    assert everything.limit == 100
    amounts = sorted(Decimal(t.amount) for t in everything.transactions)
    assert amounts == [Decimal("10.00"), Decimal("20.00"), Decimal("30.00"), Decimal("40.00"), Decimal("50.00")]


@pytest.mark.asyncio
async def test_history_is_private(client: AsyncClient, alice, bob, fund, session_headers):
    """Test that each user only sees their own wallet's history."""
    await fund(alice, "10")

    response = await client.get("/v1/wallet/transactions", headers=session_headers(bob))

    assert response.status_code == 200
    assert response.json()["total"] == 0
    assert response.json()["transactions"] == []


@pytest.mark.asyncio
async def test_history_query_bounds(client: AsyncClient, alice, session_headers):
    response = await client.get(
        "/v1/wallet/transactions",
        params={"page": 0, "limit": 10},
        headers=session_headers(alice),
    )

    assert response.status_code == 422

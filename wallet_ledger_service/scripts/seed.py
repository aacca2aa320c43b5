"""Seed script for creating demo users, wallets and session tokens.

Usage:
    python -m wallet_ledger_service.scripts.seed
"""

import asyncio
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from wallet_ledger_service.db.session import AsyncSessionLocal, init_db
from wallet_ledger_service.models.transaction import TransactionStatus, TransactionType
from wallet_ledger_service.schemas.auth import ExternalIdentity
from wallet_ledger_service.services.ledger import (
    get_transaction_by_reference,
    get_wallet,
    lock_wallet_for_update,
    record_transaction,
)
from wallet_ledger_service.services.sessions import ensure_user_and_wallet, issue_session_token

DEMO_IDENTITIES = [
    ExternalIdentity(external_id="seed-alice", email="alice@ledger.io", display_name="Alice"),
    ExternalIdentity(external_id="seed-bob", email="bob@ledger.io", display_name="Bob"),
]

# Settled opening deposit so transfers can be tried immediately
OPENING_DEPOSIT_REFERENCE = "dep_seed_alice_opening"
OPENING_DEPOSIT_AMOUNT = Decimal("5000.00")


async def seed_database(session: AsyncSession) -> dict[str, str]:
    """Seed the database with demo data.

    Safe to run repeatedly: users are created-or-fetched and the opening
    deposit is keyed by a fixed reference.

    Returns:
        Mapping of email to a fresh session token
    """
    print("Starting database seed...")

    users = []
    for identity in DEMO_IDENTITIES:
        user = await ensure_user_and_wallet(session, identity)
        wallet = await get_wallet(session, user.id)
        print(f"User {user.email}: wallet {wallet.account_number}")
        users.append(user)

    alice = users[0]
    if await get_transaction_by_reference(session, OPENING_DEPOSIT_REFERENCE) is None:
        print("Funding alice's wallet...")
        unlocked = await get_wallet(session, alice.id)
        wallet = await lock_wallet_for_update(session, wallet_id=unlocked.id)
        wallet.balance = wallet.balance + OPENING_DEPOSIT_AMOUNT
        record_transaction(
            session,
            wallet=wallet,
            reference=OPENING_DEPOSIT_REFERENCE,
            type=TransactionType.DEPOSIT,
            status=TransactionStatus.SUCCESS,
            amount=OPENING_DEPOSIT_AMOUNT,
            description="Seed opening balance",
            metadata={"source": "seed"},
        )
        await session.commit()
    else:
        print("Opening deposit already recorded. Skipping...")

    tokens = {user.email: issue_session_token(user).access_token for user in users}
    for email, token in tokens.items():
        print(f"Session token for {email}: {token}")

    print("Seed complete.")
    return tokens


async def main() -> None:
    await init_db()
    async with AsyncSessionLocal() as session:
        await seed_database(session)


if __name__ == "__main__":
    asyncio.run(main())

"""Test configuration and fixtures."""

import os

os.environ.setdefault("SECRET_KEY", "test-session-secret-0123456789abcdef")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_webhook_secret")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from wallet_ledger_service.core.exceptions import UpstreamFailure
from wallet_ledger_service.db.session import Base, get_db
from wallet_ledger_service.main import app
from wallet_ledger_service.models import APIKey, User, Wallet
from wallet_ledger_service.models.transaction import TransactionStatus, TransactionType
from wallet_ledger_service.schemas.auth import ExternalIdentity
from wallet_ledger_service.services.api_keys import create_api_key
from wallet_ledger_service.services.gateway import get_payment_gateway, to_minor_units
from wallet_ledger_service.services.ledger import get_wallet, lock_wallet_for_update, record_transaction
from wallet_ledger_service.services.sessions import ensure_user_and_wallet, issue_session_token


# Point at a PostgreSQL database to run the suite against real row locks
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")


def _serialize_sqlite_transactions(engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    SQLite ignores SELECT ... FOR UPDATE, so concurrent sessions are
    serialized with BEGIN IMMEDIATE instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class FakeGateway:
    """In-memory payment gateway that records every call."""

    def __init__(self) -> None:
        self.initialize_calls: list[dict[str, Any]] = []
        self.verify_calls: list[str] = []
        self.verify_result: dict[str, Any] = {"status": "abandoned"}
        self.fail_initialize = False
        self.fail_verify = False

    async def initialize_charge(self, email: str, amount: Decimal, reference: str) -> dict[str, Any]:
        self.initialize_calls.append({"email": email, "amount": amount, "reference": reference})
        if self.fail_initialize:
            raise UpstreamFailure("Payment gateway request failed")
        return {
            "authorization_url": f"https://checkout.paystack.com/{reference}",
            "access_code": f"access_{reference}",
            "reference": reference,
        }

    async def verify_charge(self, reference: str) -> dict[str, Any]:
        self.verify_calls.append(reference)
        if self.fail_verify:
            raise UpstreamFailure("Payment gateway request failed")
        return {"reference": reference, **self.verify_result}

    def settle(self, amount: Decimal) -> None:
        """Make verification report a successful charge of ``amount``."""
        self.verify_result = {"status": "success", "amount": to_minor_units(amount)}


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a test database engine with fresh tables."""
    if TEST_DATABASE_URL:
        engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    else:
        # A file database, so concurrent sessions get their own connections
        url = f"sqlite+aiosqlite:///{tmp_path / 'wallet_ledger_test.db'}"
        engine = create_async_engine(url, echo=False, connect_args={"timeout": 30})
        _serialize_sqlite_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker:
    """Session factory bound to the test engine."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def client(session_factory, fake_gateway) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client wired to the test database and fake gateway."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_payment_gateway():
        yield fake_gateway

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = override_get_payment_gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def alice(session_factory) -> User:
    async with session_factory() as session:
        return await ensure_user_and_wallet(
            session,
            ExternalIdentity(external_id="google-alice", email="alice@ledger.io", display_name="Alice"),
        )


@pytest_asyncio.fixture
async def bob(session_factory) -> User:
    async with session_factory() as session:
        return await ensure_user_and_wallet(
            session,
            ExternalIdentity(external_id="google-bob", email="bob@ledger.io", display_name="Bob"),
        )


@pytest.fixture
def read_wallet(session_factory):
    """Read a user's wallet in a fresh session, as committed."""

    async def _read(user_id: UUID) -> Wallet:
        async with session_factory() as session:
            return await get_wallet(session, user_id)

    return _read


@pytest.fixture
def fund(session_factory):
    """Credit a user's wallet with a settled deposit."""

    async def _fund(user: User, amount: str) -> Wallet:
        async with session_factory() as session:
            unlocked = await get_wallet(session, user.id)
            wallet = await lock_wallet_for_update(session, wallet_id=unlocked.id)
            wallet.balance = wallet.balance + Decimal(amount)
            record_transaction(
                session,
                wallet=wallet,
                reference=f"dep_fixture_{uuid4()}",
                type=TransactionType.DEPOSIT,
                status=TransactionStatus.SUCCESS,
                amount=Decimal(amount),
                description="Fixture deposit",
            )
            await session.commit()
            return wallet

    return _fund


@pytest.fixture
def session_headers():
    """Authorization headers carrying a session token for a user."""

    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_session_token(user).access_token}"}

    return _headers


@pytest.fixture
def issue_api_key(session_factory):
    """Create an API key for a user and return (key id, raw key)."""

    async def _issue(
        user: User,
        permissions: list[str],
        name: str = "fixture key",
        expiry: str = "1D",
    ) -> tuple[UUID, str]:
        async with session_factory() as session:
            created = await create_api_key(session, user, name, permissions, expiry)
        return UUID(created.id), created.api_key

    return _issue


@pytest.fixture
def expire_api_key(session_factory):
    """Move an API key's expiry into the past."""

    async def _expire(key_id: UUID, expired_at: Optional[datetime] = None) -> None:
        expired_at = expired_at or datetime.now(timezone.utc) - timedelta(minutes=1)
        async with session_factory() as session:
            await session.execute(
                update(APIKey).where(APIKey.id == key_id).values(expires_at=expired_at)
            )
            await session.commit()

    return _expire

"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis / Stripe.  Redis pub/sub and the Stripe gateway
are replaced through ``app.dependency_overrides`` with the in-process fakes
defined below.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncGenerator, AsyncIterator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.app import create_app
from src.api.dependencies import get_change_feed, get_db, get_gateway
from src.api.middleware import limiter
from src.client.api import CabApiClient
from src.domain.errors import GatewayError
from src.domain.events import RowChange
from src.infrastructure.database import Base, build_engine, session_factory
from src.infrastructure.gateway import (
    ConfirmationResult,
    GatewayIntent,
    PaymentGateway,
)
from src.infrastructure.models import UserModel
from src.infrastructure.realtime import ChangeFeed, channel_name


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

test_engine = build_engine(TEST_DB_URL)
TestSessionFactory = session_factory(test_engine)


# ── Fakes ─────────────────────────────────────────────────────────────


class InMemoryChangeFeed(ChangeFeed):
    """Records every published change and fans it out to local subscribers."""

    def __init__(self):
        self.published: list[tuple[str, RowChange]] = []
        self._queues: dict[str, list[asyncio.Queue]] = defaultdict(list)

    async def publish(self, user_id: str, change: RowChange) -> None:
        self.published.append((user_id, change))
        for queue in self._queues[channel_name(change.table, user_id)]:
            queue.put_nowait(change)

    @asynccontextmanager
    async def subscribe(self, table: str, user_id: str):
        key = channel_name(table, user_id)
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[key].append(queue)
        try:
            yield self._drain(queue)
        finally:
            self._queues[key].remove(queue)

    @staticmethod
    async def _drain(queue: asyncio.Queue) -> AsyncIterator[RowChange]:
        while True:
            yield await queue.get()

    async def changes(self, table: str, user_id: str) -> AsyncIterator[RowChange]:
        """Subscribe lazily and iterate, like a client-side change stream."""
        async with self.subscribe(table, user_id) as changes:
            async for change in changes:
                yield change

    def subscriber_count(self, table: str, user_id: str) -> int:
        return len(self._queues[channel_name(table, user_id)])

    def changes_for(self, table: str) -> list[RowChange]:
        return [change for _, change in self.published if change.table == table]


class FakeGateway(PaymentGateway):
    """Stripe stand-in: intents are numbered, confirmations are scripted."""

    def __init__(self):
        self.created: list[dict] = []
        self.confirmed: list[tuple[str, str]] = []
        self.retrieved: list[str] = []
        self.create_error: Optional[GatewayError] = None
        self.confirm_error: Optional[GatewayError] = None
        self.retrieve_error: Optional[GatewayError] = None
        self.decline_message: Optional[str] = None
        self.confirm_status = "succeeded"
        self.intents: dict[str, GatewayIntent] = {}

    async def create_intent(
        self,
        *,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> GatewayIntent:
        if self.create_error is not None:
            raise self.create_error
        intent_id = f"pi_test_{len(self.created) + 1}"
        self.created.append(
            {
                "id": intent_id,
                "amount": amount,
                "currency": currency,
                "metadata": metadata,
                "idempotency_key": idempotency_key,
            }
        )
        intent = GatewayIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_test",
            amount=amount,
            status="requires_payment_method",
            metadata=dict(metadata),
        )
        self.intents[intent_id] = intent
        return intent

    async def confirm_intent(
        self, intent_id: str, *, payment_method: str, return_url: str
    ) -> ConfirmationResult:
        self.confirmed.append((intent_id, payment_method))
        if self.confirm_error is not None:
            raise self.confirm_error
        if self.decline_message is not None:
            return ConfirmationResult(
                intent_id=intent_id,
                status="requires_payment_method",
                error_message=self.decline_message,
                error_code="card_declined",
                error_type="card_error",
            )
        if intent_id not in self.intents:
            raise GatewayError(f"No such payment_intent: '{intent_id}'")
        intent = replace(self.intents[intent_id], status=self.confirm_status)
        self.intents[intent_id] = intent
        return ConfirmationResult(
            intent_id=intent_id, status=intent.status, amount=intent.amount
        )

    async def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        self.retrieved.append(intent_id)
        if self.retrieve_error is not None:
            raise self.retrieve_error
        if intent_id not in self.intents:
            raise GatewayError(f"No such payment_intent: '{intent_id}'")
        return self.intents[intent_id]


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_tables() -> AsyncGenerator[None, None]:
    """Create tables for one test, then drop everything."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session(db_tables) -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session


@pytest.fixture
def feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def app(db_tables, feed, gateway):
    async def _test_db():
        async with TestSessionFactory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application = create_app()
    application.dependency_overrides[get_db] = _test_db
    application.dependency_overrides[get_change_feed] = lambda: feed
    application.dependency_overrides[get_gateway] = lambda: gateway
    limiter.reset()
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def api(client) -> CabApiClient:
    return CabApiClient(client)


# ── Helpers ───────────────────────────────────────────────────────────


async def sign_up(
    client: AsyncClient,
    email: str = "rider@example.com",
    password: str = "secret123",
    full_name: str = "Riley Rider",
) -> dict:
    """Register a user and return ``{"headers", "user"}``."""
    resp = await client.post(
        "/api/v1/auth/sign-up",
        json={"email": email, "password": password, "full_name": full_name},
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()
    return {
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
        "user": data["user"],
    }


async def sign_up_admin(client: AsyncClient, email: str = "ops@example.com") -> dict:
    account = await sign_up(client, email=email, full_name="Ops Admin")
    async with TestSessionFactory() as session:
        user = await session.get(UserModel, account["user"]["id"])
        user.is_admin = True
        await session.commit()
    return account


RIDE_FORM = {
    "pickup_location": "HQ, 1 Market St",
    "drop_location": "SFO Terminal 2",
    "date": "2030-05-01",
    "time": "09:30",
    "vehicle_type": "suv",
    "passengers": 2,
}


async def book_ride(client: AsyncClient, headers: dict, **overrides) -> dict:
    resp = await client.post(
        "/api/v1/rides", json={**RIDE_FORM, **overrides}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def wait_until(predicate, timeout: float = 1.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


async def pay_ride(client: AsyncClient, headers: dict, ride: dict) -> dict:
    """Create an intent, confirm it with a test card and record the payment."""
    intent = await client.post(
        "/api/v1/payments/intent",
        json={
            "rideDetails": {
                "rideId": ride["id"],
                "pickupLocation": ride["pickup_location"],
                "dropLocation": ride["drop_location"],
                "vehicleType": ride["vehicle_type"],
            }
        },
        headers=headers,
    )
    assert intent.status_code == 200, intent.text
    confirmed = await client.post(
        "/api/v1/payments/confirm",
        json={
            "rideId": ride["id"],
            "clientSecret": intent.json()["clientSecret"],
            "paymentMethod": "pm_card_visa",
        },
        headers=headers,
    )
    assert confirmed.status_code == 200, confirmed.text
    resp = await client.patch(
        f"/api/v1/rides/{ride['id']}/payment",
        json={"amountMinor": intent.json()["amount"]},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    return resp.json()

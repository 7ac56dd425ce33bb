"""Pytest configuration and fixtures."""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="swapgate-test-"))
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR / 'api.db'}"
os.environ["DEBUG"] = "false"
os.environ["DRY_RUN"] = "true"
os.environ["COORDINATOR_ENABLED"] = "false"
os.environ["ADMIN_TOKEN"] = ""
os.environ["ALLOW_TEST_DEPOSITS"] = "true"

from swapgate.chains import Direction, Network
from swapgate.coordinator.coordinator import SwapCoordinator
from swapgate.orders.models import Base, Order
from swapgate.orders.store import OrderStore
from swapgate.scanner.base import SimulatedObserver
from swapgate.settlement.base import SimulatedSettlementExecutor

ADA_CUSTODY = "addr_test1vz2fxv2umyhttkxyxp8x0dlpdt3k6cwng5pxj3jhsydzerspjrlsz"
ETH_CUSTODY = "0x9f8F72aA9304c8B593d555F12eF6589cC3A579A2"
ADA_RECIPIENT = "addr_test1vpu5vlrf4xkxv2qpwngf6cjhtw542ayty80v8dyr49rf5egfu2p0u"
ETH_RECIPIENT = "0x71C7656EC7ab88b098defB751B7401B5f6d8976F"

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def at(self, seconds: float) -> datetime:
        """Absolute time ``seconds`` after T0."""
        return T0 + timedelta(seconds=seconds)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine, so concurrent sessions see the same data."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def store(session_factory) -> OrderStore:
    return OrderStore(session_factory)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def observers() -> dict[Network, SimulatedObserver]:
    return {network: SimulatedObserver(network) for network in Network}


@pytest.fixture
def executors() -> dict[Network, SimulatedSettlementExecutor]:
    return {network: SimulatedSettlementExecutor(network) for network in Network}


@pytest.fixture
def coordinator(store, observers, executors, clock) -> SwapCoordinator:
    return SwapCoordinator(
        store=store,
        observers=observers,
        executors=executors,
        tolerances={Network.ADA: Decimal("0.1"), Network.ETH: Decimal("0.001")},
        clock=clock,
        indexer_timeout=2.0,
        send_timeout=2.0,
    )


@pytest.fixture
def make_order(store):
    """Insert a pending order directly through the store."""
    counter = {"n": 0}

    async def _make(
        direction: Direction = Direction.ADA_TO_ETH,
        amount: str = "10",
        output: Optional[str] = None,
        created_at: datetime = T0,
        expires_in: float = 1800,
        order_id: Optional[str] = None,
    ) -> Order:
        counter["n"] += 1
        if direction is Direction.ADA_TO_ETH:
            deposit, recipient = ADA_CUSTODY, ETH_RECIPIENT
            default_output = Decimal(amount) * Decimal("0.0005")
        else:
            deposit, recipient = ETH_CUSTODY, ADA_RECIPIENT
            default_output = Decimal(amount) / Decimal("0.0005")

        order = Order(
            id=order_id or f"order-{counter['n']:04d}",
            direction=direction.value,
            requested_amount=Decimal(amount),
            output_amount=Decimal(output) if output else default_output,
            recipient_address=recipient,
            deposit_address=deposit,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=expires_in),
        )
        return await store.create(order)

    return _make

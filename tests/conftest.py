"""Pytest configuration and fixtures."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator, Iterable, Optional
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from arena.api.app import create_api_app
from arena.api.deps import get_contest_service
from arena.contest.config import ContestConfig
from arena.contest.events import InMemoryEventChannel
from arena.contest.ledger import PredictionLedger
from arena.contest.service import ContestService
from arena.core.exceptions import ConflictError, UpstreamUnavailableError
from arena.database.connection import create_schema, create_session_factory
from arena.domain.contest import ContestPeriod, Stock
from arena.domain.price import MarketData, PriceSample
from arena.repositories.contests_orm import ContestRepository


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# Contest window used throughout: opens Monday, locks Wednesday, ends Friday
START = utc(2026, 1, 5, 14, 30)
DEADLINE = utc(2026, 1, 7, 14, 30)
END = utc(2026, 1, 9, 21, 0)
DURING = utc(2026, 1, 6, 12, 0)
AFTER = utc(2026, 1, 10, 12, 0)


class FrozenClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def quote(symbol: str, price: float, previous_close: Optional[float] = None) -> MarketData:
    prev = previous_close if previous_close is not None else price
    return MarketData(
        symbol=symbol,
        price=price,
        change=round(price - prev, 2),
        change_percent=round((price - prev) / prev * 100, 2),
        volume=1_000,
        high=price,
        low=price,
        open=prev,
        previous_close=prev,
    )


def history(closes: Iterable[float]) -> list[PriceSample]:
    samples = []
    previous = None
    for i, close in enumerate(closes):
        samples.append(
            PriceSample(
                timestamp=utc(2025, 10, 1) + timedelta(days=i),
                open=close,
                high=close,
                low=close,
                close=close,
                volume=100,
                previous_close=previous if previous is not None else close,
            )
        )
        previous = close
    return samples


def bars(*points: tuple[datetime, float]) -> list[PriceSample]:
    """Price samples at explicit timestamps."""
    samples = []
    previous = None
    for timestamp, close in points:
        samples.append(
            PriceSample(
                timestamp=timestamp,
                open=close,
                high=close,
                low=close,
                close=close,
                previous_close=previous if previous is not None else close,
            )
        )
        previous = close
    return samples


class FakeMarketData:
    """In-memory market data source."""

    def __init__(self):
        self.quotes: dict[str, MarketData] = {}
        self.histories: dict[str, list[PriceSample]] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []

    def set_price(self, symbol: str, price: float) -> None:
        self.quotes[symbol] = quote(symbol, price)

    def _check(self, symbol: str) -> None:
        self.calls.append(symbol)
        if symbol in self.failing:
            raise UpstreamUnavailableError(details={"symbol": symbol})

    async def get_current(self, symbol: str) -> Optional[MarketData]:
        self._check(symbol)
        return self.quotes.get(symbol)

    async def get_current_batch(self, symbols: Iterable[str]) -> dict[str, Optional[MarketData]]:
        result = {}
        for symbol in symbols:
            try:
                result[symbol] = await self.get_current(symbol)
            except UpstreamUnavailableError:
                result[symbol] = None
        return result

    async def get_history(
        self, symbol: str, interval: str = "1d", range_: str = "3mo"
    ) -> list[PriceSample]:
        self._check(symbol)
        return self.histories.get(symbol, [])


class FakeLocks:
    """Lock factory recording acquisitions; names in ``busy`` are held elsewhere."""

    def __init__(self):
        self.acquired: list[str] = []
        self.busy: set[str] = set()

    def __call__(self, name: str):
        @asynccontextmanager
        async def lock():
            if name in self.busy:
                raise ConflictError(message="Operation already in progress", details={"lock": name})
            self.acquired.append(name)
            yield

        return lock()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(DURING)


@pytest.fixture
def market() -> FakeMarketData:
    fake = FakeMarketData()
    fake.set_price("AAPL", 50.0)
    fake.set_price("MSFT", 400.0)
    return fake


@pytest.fixture
def locks() -> FakeLocks:
    return FakeLocks()


@pytest.fixture
def events() -> InMemoryEventChannel:
    return InMemoryEventChannel()


@pytest.fixture
def config() -> ContestConfig:
    return ContestConfig()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def repo(engine: AsyncEngine) -> ContestRepository:
    repository = ContestRepository(create_session_factory(engine), timeout=5.0)
    await repository.save_stock(
        Stock(id="stk-aapl", symbol="AAPL", company_name="Apple Inc.", is_featured=True)
    )
    await repository.save_stock(
        Stock(id="stk-msft", symbol="MSFT", company_name="Microsoft", is_featured=True)
    )
    await repository.save_stock(
        Stock(id="stk-old", symbol="OLD", company_name="Delisted Co", is_active=False)
    )
    await repository.save_contest_period(
        ContestPeriod(
            id="wk-1",
            name="Week 1",
            start_date=START,
            end_date=END,
            prediction_deadline=DEADLINE,
        )
    )
    return repository


@pytest.fixture
def ledger(repo, market, events, config, clock, locks) -> PredictionLedger:
    return PredictionLedger(
        repo, market, events=events, config=config, clock=clock, lock_factory=locks
    )


@pytest.fixture
def service(repo, market, events, config, clock, locks) -> ContestService:
    return ContestService(
        repo, market, events=events, config=config, clock=clock, lock_factory=locks
    )


@pytest.fixture
def api_service() -> MagicMock:
    """Contest service double for route tests."""
    mock = MagicMock(spec=ContestService)
    mock.clock = FrozenClock(DURING)
    return mock


@pytest.fixture
def client(api_service: MagicMock) -> Generator[TestClient, None, None]:
    """Test client without lifespan; the service dependency is overridden."""
    app = create_api_app()
    app.dependency_overrides[get_contest_service] = lambda: api_service
    yield TestClient(app)
    app.dependency_overrides.clear()

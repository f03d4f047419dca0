"""Pytest fixtures: in-memory quotes, desks and temp stores for deterministic tests."""

from decimal import Decimal
from pathlib import Path

import pytest

from data.quotes import QuoteFetcher, StaticQuoteSource
from data.state_store import StateStore
from execution.desk import TradingDesk
from execution.engine import ExecutionEngine
from execution.guard import PortfolioState, StateGuard
from execution.ledger import Ledger


@pytest.fixture
def prices() -> StaticQuoteSource:
    return StaticQuoteSource({"AAPL": "100", "MSFT": "200"})


@pytest.fixture
def fetcher(prices: StaticQuoteSource):
    f = QuoteFetcher(prices, timeout=2.0)
    yield f
    f.close()


@pytest.fixture
def guard() -> StateGuard:
    return StateGuard(PortfolioState(ledger=Ledger(Decimal("10000"))))


@pytest.fixture
def engine(guard: StateGuard, fetcher: QuoteFetcher) -> ExecutionEngine:
    return ExecutionEngine(guard, fetcher)


@pytest.fixture
def desk(fetcher: QuoteFetcher) -> TradingDesk:
    """Desk with 10,000 cash and no storage."""
    return TradingDesk(PortfolioState(ledger=Ledger(Decimal("10000"))), fetcher, initial_cash=Decimal("10000"))


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state.db")

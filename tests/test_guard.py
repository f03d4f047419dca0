"""Tests for StateGuard under concurrent command and monitor activity."""

import threading
from decimal import Decimal

from data.quotes import QuoteFetcher
from execution.engine import ExecutionEngine
from execution.errors import InsufficientFunds, InsufficientPosition
from execution.guard import PortfolioState, StateGuard
from execution.ledger import Ledger
from execution.models import OpenOrder, OrderType, Side
from execution.monitor import OrderMonitor


def test_version_advances_only_on_commit(guard: StateGuard) -> None:
    with guard.transaction() as state:
        state.ledger.deposit("1")
    assert guard.version == 1
    try:
        with guard.transaction() as state:
            state.ledger.withdraw("1000000")
    except InsufficientFunds:
        pass
    assert guard.version == 1


def test_snapshot_is_detached(guard: StateGuard) -> None:
    with guard.transaction() as state:
        state.ledger.apply_buy("AAPL", 1, "100")
        state.watchlist.append("AAPL")
    snap = guard.snapshot()
    with guard.transaction() as state:
        state.ledger.apply_buy("MSFT", 1, "100")
        state.watchlist.append("MSFT")
    assert [h.symbol for h in snap.holdings] == ["AAPL"]
    assert snap.watchlist == ("AAPL",)
    assert snap.version == 1


def test_replace_state_bumps_version(guard: StateGuard) -> None:
    snap = guard.replace_state(PortfolioState(ledger=Ledger("5")))
    assert snap.version == 1
    assert snap.account.cash_balance == Decimal("5")


def test_market_sell_races_protective_sell(guard: StateGuard, engine: ExecutionEngine, fetcher: QuoteFetcher) -> None:
    engine.execute_market("AAPL", "BUY", 50)
    stop = OpenOrder(OrderType.STOP_LOSS, "AAPL", Decimal("50"), Decimal("150"))
    with guard.transaction() as state:
        stop_id = state.book.place(stop, state.ledger.held_quantity("AAPL"))
    monitor = OrderMonitor(guard, engine, fetcher)

    barrier = threading.Barrier(2)
    outcome: dict[str, object] = {}

    def market_sell() -> None:
        barrier.wait()
        try:
            outcome["market"] = engine.execute_market("AAPL", "SELL", 50)
        except InsufficientPosition as exc:
            outcome["market"] = exc

    def tick() -> None:
        barrier.wait()
        outcome["tick"] = monitor.tick()

    threads = [threading.Thread(target=market_sell), threading.Thread(target=tick)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    with guard.read() as state:
        sells = [t for t in state.ledger.trades() if t.side is Side.SELL]
        assert len(sells) == 1
        assert state.ledger.holding("AAPL") is None
        assert state.ledger.cash_balance == Decimal("10000")
        assert state.ledger.is_conserved()
        stop_still_resting = stop_id in state.book

    market_won = not isinstance(outcome["market"], InsufficientPosition)
    assert market_won == stop_still_resting


def test_concurrent_commands_and_ticks_conserve_cash(
    guard: StateGuard, engine: ExecutionEngine, fetcher: QuoteFetcher
) -> None:
    engine.execute_market("AAPL", "BUY", 20)
    with guard.transaction() as state:
        for _ in range(10):
            state.book.place(OpenOrder(OrderType.LIMIT_BUY, "AAPL", Decimal("1"), Decimal("100")))
            state.book.place(
                OpenOrder(OrderType.TAKE_PROFIT, "AAPL", Decimal("1"), Decimal("100")),
                state.ledger.held_quantity("AAPL"),
            )
    monitor = OrderMonitor(guard, engine, fetcher)
    errors: list[Exception] = []

    def trader() -> None:
        for i in range(25):
            side = "BUY" if i % 2 == 0 else "SELL"
            try:
                engine.execute_market("AAPL", side, 1)
            except (InsufficientFunds, InsufficientPosition):
                pass
            except Exception as exc:
                errors.append(exc)

    def ticker() -> None:
        for _ in range(10):
            try:
                monitor.tick()
            except Exception as exc:
                errors.append(exc)

    threads = [threading.Thread(target=trader) for _ in range(4)] + [threading.Thread(target=ticker)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(30)

    assert errors == []
    with guard.read() as state:
        assert len(state.book) == 0
        assert state.ledger.is_conserved()
        assert state.ledger.cash_balance >= 0
        assert all(h.quantity > 0 for h in state.ledger.holdings())
        bought = sum(t.quantity for t in state.ledger.trades() if t.side is Side.BUY)
        sold = sum(t.quantity for t in state.ledger.trades() if t.side is Side.SELL)
        assert state.ledger.held_quantity("AAPL") == bought - sold


def test_market_order_and_tick_on_different_symbols(
    guard: StateGuard, engine: ExecutionEngine, fetcher: QuoteFetcher
) -> None:
    monitor = OrderMonitor(guard, engine, fetcher)

    for _ in range(5):
        with guard.transaction() as state:
            resting_id = state.book.place(OpenOrder(OrderType.LIMIT_BUY, "AAPL", Decimal("5"), Decimal("150")))
        barrier = threading.Barrier(2)
        outcome: dict[str, object] = {}

        def market_buy() -> None:
            barrier.wait()
            outcome["market"] = engine.execute_market("MSFT", "BUY", 3)

        def tick() -> None:
            barrier.wait()
            outcome["tick"] = monitor.tick()

        threads = [threading.Thread(target=market_buy), threading.Thread(target=tick)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)

        assert outcome["market"].symbol == "MSFT"
        assert outcome["tick"].fills == 1
        with guard.read() as state:
            assert resting_id not in state.book

    with guard.read() as state:
        assert state.ledger.held_quantity("AAPL") == Decimal("25")
        assert state.ledger.held_quantity("MSFT") == Decimal("15")
        assert state.ledger.cash_balance == Decimal("4500")
        assert len(state.ledger.trades()) == 10
        assert state.ledger.is_conserved()

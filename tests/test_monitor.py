"""Tests for the order monitor: ticks, quote failures, market-hours gate, start/stop."""

import threading
from datetime import datetime
from decimal import Decimal

import pytest

from data.quotes import QuoteFetcher, StaticQuoteSource
from execution.engine import ExecutionEngine
from execution.errors import QuoteFailure
from execution.guard import StateGuard
from execution.market_hours import ET
from execution.models import OpenOrder, OrderType
from execution.monitor import OrderMonitor, TickReport


def _place(guard: StateGuard, order_type: OrderType, symbol: str, qty: str, trigger: str) -> str:
    order = OpenOrder(order_type=order_type, symbol=symbol, quantity=Decimal(qty), trigger_price=Decimal(trigger))
    with guard.transaction() as state:
        return state.book.place(order, state.ledger.held_quantity(symbol))


@pytest.fixture
def monitor(guard: StateGuard, engine: ExecutionEngine, fetcher: QuoteFetcher) -> OrderMonitor:
    return OrderMonitor(guard, engine, fetcher, interval=0.01)


def test_tick_with_no_orders_fetches_nothing(monitor: OrderMonitor) -> None:
    report = monitor.tick()
    assert report.symbols == []
    assert report.fills == 0
    assert monitor.ticks == 1


def test_tick_fills_triggered_orders(monitor: OrderMonitor, guard: StateGuard, prices: StaticQuoteSource) -> None:
    prices.set_price("AAPL", "95")
    filled_id = _place(guard, OrderType.LIMIT_BUY, "AAPL", "10", "100")
    resting_id = _place(guard, OrderType.LIMIT_BUY, "MSFT", "1", "150")

    report = monitor.tick()

    assert report.symbols == ["AAPL", "MSFT"]
    assert report.fills == 1
    with guard.read() as state:
        assert filled_id not in state.book
        assert resting_id in state.book
        assert state.ledger.held_quantity("AAPL") == Decimal("10")


def test_unavailable_quote_skips_only_that_symbol(
    monitor: OrderMonitor, guard: StateGuard, prices: StaticQuoteSource
) -> None:
    prices.fail("AAPL", QuoteFailure.TIMEOUT)
    aapl_id = _place(guard, OrderType.LIMIT_BUY, "AAPL", "1", "1000")
    msft_id = _place(guard, OrderType.LIMIT_BUY, "MSFT", "1", "1000")

    report = monitor.tick()

    assert set(report.unavailable) == {"AAPL"}
    assert report.unavailable["AAPL"].reason is QuoteFailure.TIMEOUT
    assert report.fills == 1
    with guard.read() as state:
        assert aapl_id in state.book
        assert msft_id not in state.book


def test_unknown_symbol_reported_not_found(monitor: OrderMonitor, guard: StateGuard) -> None:
    _place(guard, OrderType.LIMIT_BUY, "NOPE", "1", "10")
    report = monitor.tick()
    assert report.unavailable["NOPE"].reason is QuoteFailure.NOT_FOUND


def test_market_hours_gate(guard: StateGuard, engine: ExecutionEngine, fetcher: QuoteFetcher) -> None:
    saturday = datetime(2024, 6, 15, 12, 0, tzinfo=ET)
    gated = OrderMonitor(guard, engine, fetcher, market_hours_only=True, clock=lambda: saturday)
    _place(guard, OrderType.LIMIT_BUY, "AAPL", "1", "1000")

    report = gated.tick()

    assert report.market_closed
    assert report.fills == 0
    with guard.read() as state:
        assert len(state.book) == 1


def test_on_tick_callback_receives_report(guard: StateGuard, engine: ExecutionEngine, fetcher: QuoteFetcher) -> None:
    seen: list[TickReport] = []
    mon = OrderMonitor(guard, engine, fetcher, on_tick=seen.append)
    report = mon.tick()
    assert seen == [report]


def test_background_loop_fills_and_stops(guard: StateGuard, engine: ExecutionEngine, fetcher: QuoteFetcher) -> None:
    filled = threading.Event()

    def on_tick(report: TickReport) -> None:
        if report.fills:
            filled.set()

    mon = OrderMonitor(guard, engine, fetcher, interval=0.01, on_tick=on_tick)
    _place(guard, OrderType.LIMIT_BUY, "AAPL", "1", "150")
    mon.start()
    try:
        assert filled.wait(5.0)
        assert mon.running
    finally:
        assert mon.stop(timeout=5.0)
    assert not mon.running
    assert mon.ticks >= 1


def test_start_twice_raises(monitor: OrderMonitor) -> None:
    monitor.start()
    try:
        with pytest.raises(RuntimeError):
            monitor.start()
    finally:
        monitor.stop(timeout=5.0)


def test_stop_before_start_is_harmless(monitor: OrderMonitor) -> None:
    assert monitor.stop() is True
    assert not monitor.running


def test_failing_tick_does_not_kill_loop(guard: StateGuard, engine: ExecutionEngine, fetcher: QuoteFetcher) -> None:
    calls = []
    second_tick = threading.Event()

    def on_tick(report: TickReport) -> None:
        calls.append(report)
        if len(calls) == 1:
            raise RuntimeError("boom")
        second_tick.set()

    mon = OrderMonitor(guard, engine, fetcher, interval=0.01, on_tick=on_tick)
    mon.start()
    try:
        assert second_tick.wait(5.0)
    finally:
        mon.stop(timeout=5.0)


class GarbledSource:
    """AAPL answers NaN; everything else delegates to *prices*."""

    def __init__(self, prices: StaticQuoteSource) -> None:
        self.prices = prices

    def get_price(self, symbol: str):
        if symbol == "AAPL":
            return Decimal("NaN")
        return self.prices.get_price(symbol)


def test_garbled_quote_skips_only_that_symbol(guard: StateGuard, prices: StaticQuoteSource) -> None:
    fetcher = QuoteFetcher(GarbledSource(prices), timeout=2.0)
    try:
        mon = OrderMonitor(guard, ExecutionEngine(guard, fetcher), fetcher)
        aapl_id = _place(guard, OrderType.LIMIT_BUY, "AAPL", "1", "150")
        msft_id = _place(guard, OrderType.LIMIT_BUY, "MSFT", "1", "250")

        report = mon.tick()
    finally:
        fetcher.close()

    assert report.unavailable["AAPL"].reason is QuoteFailure.ERROR
    assert report.fills == 1
    with guard.read() as state:
        assert aapl_id in state.book
        assert msft_id not in state.book


def test_restart_after_stop(guard: StateGuard, engine: ExecutionEngine, fetcher: QuoteFetcher) -> None:
    ticked = threading.Event()
    mon = OrderMonitor(guard, engine, fetcher, interval=0.01, on_tick=lambda report: ticked.set())
    mon.start()
    assert mon.stop(timeout=5.0)
    ticked.clear()

    mon.start()
    try:
        assert mon.running
        assert ticked.wait(5.0)
    finally:
        assert mon.stop(timeout=5.0)
    assert not mon.running

"""
TradingDesk: the operations exposed to the command line and the monitor host.

Every state-changing operation runs as one StateGuard transaction and is then
saved. A failed save never rolls back an executed trade: the desk retries,
then logs, emits a persistence_warning event and reports unsaved_changes
until a later save (or checkpoint) succeeds. There is no two-phase guarantee
against a crash between a fill and its save.
"""

from __future__ import annotations

import logging
import threading
import time
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Mapping

from execution.engine import ExecutionEngine, parse_order_type
from execution.errors import PersistenceFailure, QuoteUnavailable, TradingError
from execution.guard import PortfolioState, StateGuard
from execution.ledger import Ledger, PnLReport, realized_pnl
from execution.models import (
    Holding,
    OpenOrder,
    OrderType,
    Side,
    Trade,
    as_decimal,
    normalize_symbol,
    positive_decimal,
)
from execution.monitor import OrderMonitor, TickReport

if TYPE_CHECKING:
    from data.quotes import QuoteFetcher
    from data.state_store import StateStore

logger = logging.getLogger("paper.desk")


class TradingDesk:
    """Single-account paper trading desk."""

    def __init__(
        self,
        state: PortfolioState,
        quotes: QuoteFetcher,
        *,
        store: StateStore | None = None,
        journal: Any = None,
        events: Any = None,
        initial_cash: Decimal = Decimal("100000"),
        monitor_interval: float = 5.0,
        market_hours_only: bool = False,
        save_attempts: int = 3,
        retry_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._guard = StateGuard(state)
        self._quotes = quotes
        self._store = store
        self._journal = journal
        self._events = events
        self._initial_cash = as_decimal(initial_cash, "initial_cash")
        self._save_attempts = max(1, save_attempts)
        self._retry_delay = retry_delay
        self._sleep = sleep
        self._save_lock = threading.Lock()
        self._saved_version = -1
        self.engine = ExecutionEngine(self._guard, quotes)
        self.monitor = OrderMonitor(
            self._guard,
            self.engine,
            quotes,
            interval=monitor_interval,
            market_hours_only=market_hours_only,
            on_tick=self._after_tick,
        )

    @classmethod
    def open(
        cls,
        quotes: QuoteFetcher,
        *,
        store: StateStore | None = None,
        initial_cash: Decimal = Decimal("100000"),
        **kwargs: Any,
    ) -> TradingDesk:
        """Restore from *store* if it holds a portfolio, else start fresh with *initial_cash*."""
        snap = store.load() if store is not None else None
        if snap is not None:
            state = PortfolioState.from_snapshot(snap)
            logger.info(
                "Restored portfolio: cash %s, %d holdings, %d open orders",
                snap.account.cash_balance,
                len(snap.holdings),
                len(snap.open_orders),
            )
        else:
            state = PortfolioState(ledger=Ledger(initial_cash))
        desk = cls(state, quotes, store=store, initial_cash=initial_cash, **kwargs)
        if snap is not None:
            desk._saved_version = desk._guard.version
        else:
            desk._persist()
        return desk

    @classmethod
    def from_config(cls, cfg, *, quote_source=None, events: Any = None) -> TradingDesk:
        """Wire a desk from AppConfig. *quote_source* overrides cfg.quotes (tests)."""
        from data import StateStore, QuoteFetcher, build_quote_source
        from journal import JournalWriter

        source = quote_source if quote_source is not None else build_quote_source(cfg.quotes)
        quotes = QuoteFetcher(source, timeout=cfg.quotes.timeout_seconds, max_workers=cfg.quotes.max_workers)
        journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout) if cfg.journal.path else None
        return cls.open(
            quotes,
            store=StateStore(cfg.storage.state_path),
            initial_cash=cfg.account.initial_cash,
            journal=journal,
            events=events,
            monitor_interval=cfg.monitor.interval_seconds,
            market_hours_only=cfg.monitor.market_hours_only,
            save_attempts=cfg.persistence.save_attempts,
            retry_delay=cfg.persistence.retry_delay_seconds,
        )

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def place_order(self, order_type: OrderType | str, symbol: str, quantity, trigger_price) -> str:
        """Rest a LIMIT_BUY / LIMIT_SELL / STOP_LOSS / TAKE_PROFIT order; returns its id."""
        try:
            order = OpenOrder(
                order_type=parse_order_type(order_type),
                symbol=normalize_symbol(symbol),
                quantity=positive_decimal(quantity, "quantity"),
                trigger_price=positive_decimal(trigger_price, "trigger_price"),
            )
            with self._guard.transaction() as state:
                order_id = state.book.place(order, state.ledger.held_quantity(order.symbol))
                placed = state.book.get(order_id)
        except TradingError as exc:
            self._emit("order_rejected", symbol=str(symbol).upper(), reason=str(exc))
            raise
        logger.info("Placed %s %s %s @ %s (%s)", placed.order_type.value, placed.quantity, placed.symbol, placed.trigger_price, order_id)
        self._persist()
        self._write_journal("order_placed", placed)
        self._emit(
            "order_placed",
            order_id=order_id,
            order_type=placed.order_type.value,
            symbol=placed.symbol,
            qty=placed.quantity,
            trigger=placed.trigger_price,
        )
        return order_id

    def cancel_order(self, order_id: str) -> OpenOrder:
        with self._guard.transaction() as state:
            order = state.book.cancel(order_id)
        logger.info("Cancelled %s %s (%s)", order.order_type.value, order.symbol, order_id)
        self._persist()
        self._write_journal("order_cancelled", order)
        return order

    def execute_market(self, symbol: str, side: Side | str, quantity) -> Trade:
        try:
            trade = self.engine.execute_market(symbol, side, quantity)
        except TradingError as exc:
            self._emit("order_rejected", symbol=str(symbol).upper(), reason=str(exc))
            raise
        self._persist()
        self._record_fill(trade)
        return trade

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_cash_balance(self) -> Decimal:
        with self._guard.read() as state:
            return state.ledger.cash_balance

    def get_holdings(self) -> list[Holding]:
        with self._guard.read() as state:
            return state.ledger.holdings()

    def get_trade_history(self, symbol: str | None = None, limit: int | None = None) -> list[Trade]:
        """Trades oldest first; *limit* keeps the most recent ones."""
        with self._guard.read() as state:
            trades = list(state.ledger.trades())
        if symbol:
            sym = normalize_symbol(symbol)
            trades = [t for t in trades if t.symbol == sym]
        if limit is not None:
            trades = trades[-limit:] if limit > 0 else []
        return trades

    def get_open_orders(self, symbol: str | None = None) -> list[OpenOrder]:
        with self._guard.read() as state:
            if symbol:
                return list(state.book.orders_for_symbol(normalize_symbol(symbol)))
            return state.book.all_orders()

    def unrealized_pnl(self, current_prices: Mapping[str, Decimal] | None = None) -> PnLReport:
        """Pure query. Without *current_prices*, quotes are fetched for every holding first."""
        if current_prices is None:
            symbols = [h.symbol for h in self.get_holdings()]
            fetched = self._quotes.get_prices(symbols) if symbols else {}
            current_prices = {s: p for s, p in fetched.items() if not isinstance(p, QuoteUnavailable)}
        with self._guard.read() as state:
            return state.ledger.unrealized_pnl(current_prices)

    def realized_pnl(self) -> dict[str, Decimal]:
        with self._guard.read() as state:
            trades = state.ledger.trades()
        return realized_pnl(trades)

    def get_price(self, symbol: str) -> Decimal:
        return self._quotes.get_price(normalize_symbol(symbol))

    def get_prices(self, symbols) -> dict[str, Decimal | QuoteUnavailable]:
        """Concurrent quotes; failed symbols map to their QuoteUnavailable."""
        return self._quotes.get_prices([normalize_symbol(s) for s in symbols])

    # ------------------------------------------------------------------
    # Cash, watchlist, reset
    # ------------------------------------------------------------------

    def deposit(self, amount) -> Decimal:
        with self._guard.transaction() as state:
            balance = state.ledger.deposit(amount)
        self._persist()
        self._write_journal("cash", "deposit", as_decimal(amount), balance)
        return balance

    def withdraw(self, amount) -> Decimal:
        with self._guard.transaction() as state:
            balance = state.ledger.withdraw(amount)
        self._persist()
        self._write_journal("cash", "withdraw", as_decimal(amount), balance)
        return balance

    def watch(self, symbol: str) -> list[str]:
        sym = normalize_symbol(symbol)
        with self._guard.transaction() as state:
            if sym not in state.watchlist:
                state.watchlist.append(sym)
            watchlist = list(state.watchlist)
        self._persist()
        return watchlist

    def unwatch(self, symbol: str) -> list[str]:
        sym = normalize_symbol(symbol)
        with self._guard.transaction() as state:
            if sym in state.watchlist:
                state.watchlist.remove(sym)
            watchlist = list(state.watchlist)
        self._persist()
        return watchlist

    def watchlist(self) -> list[str]:
        with self._guard.read() as state:
            return list(state.watchlist)

    def reset(self) -> None:
        """Wipe storage (including trade history) and start over with the configured initial cash."""
        with self._save_lock:
            if self._store is not None:
                self._store.reset()
            fresh = self._guard.replace_state(PortfolioState(ledger=Ledger(self._initial_cash)))
            # snapshots taken before the swap must never be written over the wiped store
            self._saved_version = fresh.version - 1
        logger.info("Portfolio reset to %s cash", self._initial_cash)
        self._persist()
        self._write_journal("reset", self._initial_cash)

    # ------------------------------------------------------------------
    # Monitor + durability
    # ------------------------------------------------------------------

    def start_monitor(self) -> None:
        self.monitor.start()

    def stop_monitor(self, timeout: float | None = None) -> bool:
        return self.monitor.stop(timeout)

    @property
    def unsaved_changes(self) -> bool:
        return self._store is not None and self._guard.version > self._saved_version

    def checkpoint(self) -> bool:
        """Save now if anything is unsaved. Returns True when state is durable."""
        if not self.unsaved_changes:
            return True
        return self._persist()

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop the monitor (waiting for an in-flight fill), save, release the quote pool.

        Raises PersistenceFailure if the final save fails.
        """
        self.monitor.stop(timeout)
        durable = self.checkpoint()
        self._quotes.close()
        self._emit("shutdown", ticks=self.monitor.ticks, unsaved_changes=not durable)
        if not durable:
            raise PersistenceFailure("Final save failed; recent changes are not on disk")

    def _persist(self) -> bool:
        if self._store is None:
            return True
        snap = self._guard.snapshot()
        with self._save_lock:
            if snap.version <= self._saved_version:
                return True
            last_error: PersistenceFailure | None = None
            for attempt in range(1, self._save_attempts + 1):
                try:
                    self._store.save(snap)
                except PersistenceFailure as exc:
                    last_error = exc
                    logger.warning("Save attempt %d/%d failed: %s", attempt, self._save_attempts, exc)
                    if attempt < self._save_attempts:
                        self._sleep(self._retry_delay)
                    continue
                self._saved_version = snap.version
                return True
        logger.error("State not saved after %d attempts; in-memory state kept: %s", self._save_attempts, last_error)
        self._emit("persistence_warning", message=str(last_error), attempts=self._save_attempts)
        return False

    def _record_fill(self, trade: Trade, order_id: str | None = None) -> None:
        self._write_journal("fill", trade, order_id=order_id)
        self._emit(
            "fill",
            symbol=trade.symbol,
            side=trade.side.value,
            qty=trade.quantity,
            price=trade.price_per_unit,
            order_type=trade.order_type.value,
        )

    def _after_tick(self, report: TickReport) -> None:
        if report.fills:
            self._persist()
        for result in report.results:
            for order, trade in result.filled:
                self._record_fill(trade, order_id=order.id)
            for order, reason in result.rejected:
                self._emit("order_rejected", symbol=order.symbol, reason=reason)
        for symbol, exc in report.unavailable.items():
            self._emit("quote_unavailable", symbol=symbol, reason=exc.reason.value)
        if report.symbols:
            self._emit("tick_complete", symbols=len(report.symbols), fills=report.fills, unavailable=len(report.unavailable))

    # Journal and event sinks run after the state is saved; a failing sink is
    # logged and never undoes or blocks the operation that produced the entry.

    def _write_journal(self, entry: str, *args: Any, **kwargs: Any) -> None:
        if self._journal is None:
            return
        try:
            getattr(self._journal, entry)(*args, **kwargs)
        except OSError:
            logger.exception("Journal write failed for %s entry", entry)

    def _emit(self, event: str, **fields: Any) -> None:
        if self._events is None:
            return
        try:
            getattr(self._events, event)(**fields)
        except OSError:
            logger.exception("Structured event %s could not be written", event)

"""
Order monitor: background loop that fills resting orders against live quotes.

Each tick: collect symbols with resting orders, fetch their quotes
concurrently (outside the lock), then evaluate symbols one at a time. A
failed quote skips that symbol for this tick only. Stop is cooperative and
takes effect between ticks; stop() waits for an in-flight tick to finish.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from execution.engine import EvaluationResult, ExecutionEngine
from execution.errors import QuoteUnavailable
from execution.guard import StateGuard
from execution.market_hours import is_market_open

if TYPE_CHECKING:
    from data.quotes import QuoteFetcher

logger = logging.getLogger("paper.monitor")


@dataclass
class TickReport:
    symbols: list[str] = field(default_factory=list)
    results: list[EvaluationResult] = field(default_factory=list)
    unavailable: dict[str, QuoteUnavailable] = field(default_factory=dict)
    market_closed: bool = False

    @property
    def fills(self) -> int:
        return sum(len(r.filled) for r in self.results)


class OrderMonitor:
    """Periodic resting-order evaluation on a daemon thread. Can be restarted after stop()."""

    def __init__(
        self,
        guard: StateGuard,
        engine: ExecutionEngine,
        quotes: QuoteFetcher,
        *,
        interval: float = 5.0,
        market_hours_only: bool = False,
        on_tick: Callable[[TickReport], None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._guard = guard
        self._engine = engine
        self._quotes = quotes
        self._interval = interval
        self._market_hours_only = market_hours_only
        self._on_tick = on_tick
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._ticks = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def ticks(self) -> int:
        return self._ticks

    def start(self) -> None:
        if self.running:
            raise RuntimeError("Order monitor already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="order-monitor", daemon=True)
        self._thread.start()
        logger.info("Order monitor started (interval %.1fs)", self._interval)

    def stop(self, timeout: float | None = None) -> bool:
        """Request stop and wait for the loop to exit. Returns True once the thread is gone."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Order monitor still finishing a tick after %.1fs", timeout or 0)
                return False
        logger.info("Order monitor stopped after %d tick(s)", self._ticks)
        return True

    def tick(self) -> TickReport:
        """One evaluation cycle. Safe to call directly (tests, one-shot CLI)."""
        report = TickReport()
        if self._market_hours_only:
            now = self._clock() if self._clock else None
            if not is_market_open(now):
                report.market_closed = True
                self._finish(report)
                return report

        with self._guard.read() as state:
            report.symbols = state.book.symbols()
        if not report.symbols:
            self._finish(report)
            return report

        quotes = self._quotes.get_prices(report.symbols)
        for symbol in report.symbols:
            quote = quotes[symbol]
            if isinstance(quote, QuoteUnavailable):
                logger.warning("Skipping %s this tick: %s", symbol, quote)
                report.unavailable[symbol] = quote
                continue
            report.results.append(self._engine.evaluate(symbol, quote))
        self._finish(report)
        return report

    def _finish(self, report: TickReport) -> None:
        self._ticks += 1
        if self._on_tick is not None:
            self._on_tick(report)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                # a bad tick must not kill the monitor; next tick retries
                logger.exception("Order monitor tick failed")
            if self._stop.wait(self._interval):
                break

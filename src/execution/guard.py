"""
StateGuard: Ledger + OrderBook behind one lock.

Both the foreground command path and the order monitor enter here. The lock
is held for one command or one order fill, never across a quote fetch or a
storage write.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from execution.ledger import Ledger
from execution.models import PortfolioSnapshot
from execution.order_book import OrderBook


@dataclass
class PortfolioState:
    ledger: Ledger
    book: OrderBook = field(default_factory=OrderBook)
    watchlist: list[str] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snap: PortfolioSnapshot) -> PortfolioState:
        acct = snap.account
        ledger = Ledger(
            acct.cash_balance,
            holdings=snap.holdings,
            trades=snap.trades,
            net_deposits=acct.net_deposits,
            account_id=acct.id,
            updated_at=acct.updated_at,
        )
        return cls(ledger=ledger, book=OrderBook(snap.open_orders), watchlist=list(snap.watchlist))


class StateGuard:
    """Single exclusive-access section around the portfolio state."""

    def __init__(self, state: PortfolioState) -> None:
        self._state = state
        self._lock = threading.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        """Number of committed mutations since construction."""
        return self._version

    @contextmanager
    def transaction(self) -> Iterator[PortfolioState]:
        """Mutating unit. The version advances only if the body completes without raising."""
        with self._lock:
            yield self._state
            self._version += 1

    @contextmanager
    def read(self) -> Iterator[PortfolioState]:
        """Consistent read-only view. Callers must not mutate inside."""
        with self._lock:
            yield self._state

    def snapshot(self) -> PortfolioSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def replace_state(self, state: PortfolioState) -> PortfolioSnapshot:
        """Swap in a whole new state (reset / reload); returns the resulting snapshot."""
        with self._lock:
            self._state = state
            self._version += 1
            return self._snapshot_locked()

    def _snapshot_locked(self) -> PortfolioSnapshot:
        s = self._state
        return PortfolioSnapshot(
            account=s.ledger.account,
            holdings=tuple(s.ledger.holdings()),
            trades=s.ledger.trades(),
            open_orders=tuple(s.book.all_orders()),
            watchlist=tuple(s.watchlist),
            version=self._version,
        )

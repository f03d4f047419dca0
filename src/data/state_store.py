"""
Persist and load the portfolio (SQLite). Timestamps in UTC, decimals as TEXT.

Tables: account, holdings, trades, open_orders, watchlist. Trades are
append-only (INSERT OR IGNORE by id) and rows missing from the snapshot are
dropped; the other tables are rewritten on each save. Every save is one
SQLite transaction.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from execution.errors import PersistenceFailure
from execution.models import (
    Account,
    Holding,
    OpenOrder,
    OrderType,
    PortfolioSnapshot,
    Side,
    Trade,
)

logger = logging.getLogger("paper.store")


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _ts_out(ts: datetime) -> str:
    return _utc(ts).isoformat()


def _ts_in(raw: str) -> datetime:
    return _utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))


class StateStore:
    """SQLite-backed portfolio storage. One file per path, one account per file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceFailure(f"Cannot open state store {self._path}: {exc}") from exc

    @property
    def path(self) -> Path:
        return self._path

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS account (
                    id INTEGER PRIMARY KEY,
                    cash_balance TEXT NOT NULL,
                    net_deposits TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS holdings (
                    symbol TEXT NOT NULL,
                    quantity TEXT NOT NULL,
                    average_cost TEXT NOT NULL,
                    account_id INTEGER NOT NULL,
                    PRIMARY KEY (account_id, symbol)
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS trades (
                    id TEXT PRIMARY KEY,
                    seq INTEGER NOT NULL,
                    symbol TEXT NOT NULL,
                    quantity TEXT NOT NULL,
                    price_per_unit TEXT NOT NULL,
                    side TEXT NOT NULL,
                    order_type TEXT NOT NULL,
                    ts_utc TEXT NOT NULL,
                    account_id INTEGER NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS open_orders (
                    id TEXT PRIMARY KEY,
                    seq INTEGER NOT NULL,
                    order_type TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    quantity TEXT NOT NULL,
                    trigger_price TEXT NOT NULL,
                    ts_utc TEXT NOT NULL,
                    account_id INTEGER NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS watchlist (
                    symbol TEXT PRIMARY KEY,
                    seq INTEGER NOT NULL
                )
                """
            )

    def load(self) -> PortfolioSnapshot | None:
        """Return the stored portfolio, or None if nothing has been saved yet."""
        try:
            with self._conn() as c:
                acct = c.execute(
                    "SELECT id, cash_balance, net_deposits, updated_at FROM account ORDER BY id LIMIT 1"
                ).fetchone()
                if not acct:
                    return None
                account_id = acct[0]
                holdings = c.execute(
                    "SELECT symbol, quantity, average_cost FROM holdings WHERE account_id = ? ORDER BY symbol",
                    (account_id,),
                ).fetchall()
                trades = c.execute(
                    "SELECT id, symbol, quantity, price_per_unit, side, order_type, ts_utc, account_id "
                    "FROM trades WHERE account_id = ? ORDER BY seq ASC",
                    (account_id,),
                ).fetchall()
                orders = c.execute(
                    "SELECT id, order_type, symbol, quantity, trigger_price, ts_utc, account_id "
                    "FROM open_orders WHERE account_id = ? ORDER BY seq ASC",
                    (account_id,),
                ).fetchall()
                watch = c.execute("SELECT symbol FROM watchlist ORDER BY seq ASC").fetchall()
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to load state from {self._path}: {exc}") from exc

        return PortfolioSnapshot(
            account=Account(
                cash_balance=Decimal(acct[1]),
                net_deposits=Decimal(acct[2]),
                updated_at=_ts_in(acct[3]),
                id=account_id,
            ),
            holdings=tuple(Holding(symbol=r[0], quantity=Decimal(r[1]), average_cost=Decimal(r[2])) for r in holdings),
            trades=tuple(
                Trade(
                    id=r[0],
                    symbol=r[1],
                    quantity=Decimal(r[2]),
                    price_per_unit=Decimal(r[3]),
                    side=Side(r[4]),
                    order_type=OrderType(r[5]),
                    timestamp=_ts_in(r[6]),
                    account_id=r[7],
                )
                for r in trades
            ),
            open_orders=tuple(
                OpenOrder(
                    id=r[0],
                    order_type=OrderType(r[1]),
                    symbol=r[2],
                    quantity=Decimal(r[3]),
                    trigger_price=Decimal(r[4]),
                    timestamp=_ts_in(r[5]),
                    account_id=r[6],
                )
                for r in orders
            ),
            watchlist=tuple(r[0] for r in watch),
        )

    def save(self, snap: PortfolioSnapshot) -> None:
        """Write *snap* atomically. Raises PersistenceFailure; nothing is written on failure."""
        acct = snap.account
        try:
            with self._conn() as c:
                c.execute(
                    """INSERT INTO account (id, cash_balance, net_deposits, updated_at) VALUES (?, ?, ?, ?)
                       ON CONFLICT(id) DO UPDATE SET cash_balance = excluded.cash_balance,
                       net_deposits = excluded.net_deposits, updated_at = excluded.updated_at""",
                    (acct.id, str(acct.cash_balance), str(acct.net_deposits), _ts_out(acct.updated_at)),
                )
                c.execute("DELETE FROM holdings WHERE account_id = ?", (acct.id,))
                c.executemany(
                    "INSERT INTO holdings (symbol, quantity, average_cost, account_id) VALUES (?, ?, ?, ?)",
                    [(h.symbol, str(h.quantity), str(h.average_cost), acct.id) for h in snap.holdings],
                )
                # trades are append-only in memory; rows the snapshot lacks predate a reset
                known = {t.id for t in snap.trades}
                stale = [
                    (row[0],)
                    for row in c.execute("SELECT id FROM trades WHERE account_id = ?", (acct.id,)).fetchall()
                    if row[0] not in known
                ]
                c.executemany("DELETE FROM trades WHERE id = ?", stale)
                c.executemany(
                    """INSERT OR IGNORE INTO trades
                       (id, seq, symbol, quantity, price_per_unit, side, order_type, ts_utc, account_id)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    [
                        (
                            t.id,
                            i,
                            t.symbol,
                            str(t.quantity),
                            str(t.price_per_unit),
                            t.side.value,
                            t.order_type.value,
                            _ts_out(t.timestamp),
                            t.account_id,
                        )
                        for i, t in enumerate(snap.trades)
                    ],
                )
                c.execute("DELETE FROM open_orders WHERE account_id = ?", (acct.id,))
                c.executemany(
                    """INSERT INTO open_orders
                       (id, seq, order_type, symbol, quantity, trigger_price, ts_utc, account_id)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    [
                        (
                            o.id,
                            i,
                            o.order_type.value,
                            o.symbol,
                            str(o.quantity),
                            str(o.trigger_price),
                            _ts_out(o.timestamp),
                            o.account_id,
                        )
                        for i, o in enumerate(snap.open_orders)
                    ],
                )
                c.execute("DELETE FROM watchlist")
                c.executemany(
                    "INSERT INTO watchlist (symbol, seq) VALUES (?, ?)",
                    [(sym, i) for i, sym in enumerate(snap.watchlist)],
                )
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to save state to {self._path}: {exc}") from exc
        logger.debug("Saved state v%d (%d trades, %d open orders)", snap.version, len(snap.trades), len(snap.open_orders))

    def reset(self) -> None:
        """Delete everything, including the append-only trade log."""
        try:
            with self._conn() as c:
                for table in ("account", "holdings", "trades", "open_orders", "watchlist"):
                    c.execute(f"DELETE FROM {table}")
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Failed to reset state in {self._path}: {exc}") from exc

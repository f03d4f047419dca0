"""
Interactive command session over one TradingDesk.

The shell keeps a single desk (and its background order monitor) alive
between commands, so resting orders fill while the user types. Each line
is split shell-style and dispatched to a desk operation; the rendered text
is returned for the caller to print.
"""

from __future__ import annotations

import shlex
from functools import partial
from typing import Callable

from cli.output import (
    format_account,
    format_holdings,
    format_orders,
    format_pnl,
    format_tick,
    format_trade,
    format_trades,
    format_watchlist,
)
from execution.desk import TradingDesk
from execution.errors import TradingError

ORDER_TYPES = ("limit-buy", "limit-sell", "stop-loss", "take-profit")

HELP_TEXT = """\
Commands:
  balance                              cash, cost basis, open order count
  fund AMOUNT | withdraw AMOUNT        move cash in or out
  price SYMBOL                         latest quote
  buy SYMBOL QTY | sell SYMBOL QTY     market order at the current quote
  limit-buy|limit-sell|stop-loss|take-profit SYMBOL QTY PRICE
                                       place a resting order
  cancel ORDER_ID                      cancel a resting order
  orders [SYMBOL]                      open orders
  holdings                             positions with average cost
  history [SYMBOL] [LIMIT]             trade history, oldest first
  pnl                                  unrealized and realized P&L
  watch [SYMBOL] | unwatch SYMBOL      watchlist (no symbol: show with prices)
  tick                                 evaluate resting orders now
  monitor [start|stop]                 background order monitor (no argument: status)
  save                                 retry saving unsaved changes
  reset                                wipe everything and start over
  help | exit | quit"""


class UsageError(Exception):
    pass


class ShellSession:
    """Parses command lines and runs them against *desk*."""

    def __init__(self, desk: TradingDesk, *, confirm: Callable[[str], bool] | None = None) -> None:
        self.desk = desk
        self._confirm = confirm or (lambda _prompt: True)
        self.finished = False
        self._commands: dict[str, Callable[[list[str]], str]] = {
            "help": lambda args: HELP_TEXT,
            "balance": self._balance,
            "fund": self._fund,
            "withdraw": self._withdraw,
            "price": self._price,
            "buy": self._buy,
            "sell": self._sell,
            "cancel": self._cancel,
            "orders": self._orders,
            "holdings": self._holdings,
            "history": self._history,
            "pnl": self._pnl,
            "watch": self._watch,
            "unwatch": self._unwatch,
            "tick": self._tick,
            "monitor": self._monitor,
            "save": self._save,
            "reset": self._reset,
        }

    def execute(self, line: str) -> str | None:
        """Run one command line. Returns text to print, or None for a blank line."""
        try:
            argv = shlex.split(line)
        except ValueError as exc:
            return f"Error: {exc}"
        if not argv:
            return None
        name, args = argv[0].lower(), argv[1:]
        if name in ("exit", "quit"):
            self.finished = True
            return "Shutting down."
        if name in ORDER_TYPES:
            handler = partial(self._place, name)
        else:
            handler = self._commands.get(name)
        if handler is None:
            return f"Unknown command: {name} (try 'help')"
        try:
            text = handler(args)
        except UsageError as exc:
            return f"Usage: {exc}"
        except TradingError as exc:
            return f"Error: {exc}"
        if self.desk.unsaved_changes:
            text += "\nWARNING: latest changes are not saved yet (try 'save')."
        return text

    # -- handlers -------------------------------------------------------

    def _balance(self, args: list[str]) -> str:
        return format_account(
            self.desk.get_cash_balance(),
            self.desk.get_holdings(),
            len(self.desk.get_open_orders()),
        )

    def _fund(self, args: list[str]) -> str:
        (amount,) = _expect(args, 1, "fund AMOUNT")
        balance = self.desk.deposit(amount)
        return f"Deposited {amount}. Cash: ${balance:,.2f}"

    def _withdraw(self, args: list[str]) -> str:
        (amount,) = _expect(args, 1, "withdraw AMOUNT")
        balance = self.desk.withdraw(amount)
        return f"Withdrew {amount}. Cash: ${balance:,.2f}"

    def _price(self, args: list[str]) -> str:
        (symbol,) = _expect(args, 1, "price SYMBOL")
        return f"{symbol.upper()}: {self.desk.get_price(symbol):.2f}"

    def _buy(self, args: list[str]) -> str:
        symbol, qty = _expect(args, 2, "buy SYMBOL QTY")
        return "Filled: " + format_trade(self.desk.execute_market(symbol, "BUY", qty))

    def _sell(self, args: list[str]) -> str:
        symbol, qty = _expect(args, 2, "sell SYMBOL QTY")
        return "Filled: " + format_trade(self.desk.execute_market(symbol, "SELL", qty))

    def _place(self, order_type: str, args: list[str]) -> str:
        symbol, qty, price = _expect(args, 3, f"{order_type} SYMBOL QTY PRICE")
        order_id = self.desk.place_order(order_type, symbol, qty, price)
        return f"Placed {order_type} {qty} {symbol.upper()} @ {price}: {order_id}"

    def _cancel(self, args: list[str]) -> str:
        (order_id,) = _expect(args, 1, "cancel ORDER_ID")
        order = self.desk.cancel_order(order_id)
        return f"Cancelled {order.order_type.value} {order.symbol} ({order_id})"

    def _orders(self, args: list[str]) -> str:
        return format_orders(self.desk.get_open_orders(args[0] if args else None))

    def _holdings(self, args: list[str]) -> str:
        return format_holdings(self.desk.get_holdings())

    def _history(self, args: list[str]) -> str:
        symbol = None
        limit = None
        for arg in args:
            if arg.isdigit():
                limit = int(arg)
            else:
                symbol = arg
        return format_trades(self.desk.get_trade_history(symbol, limit))

    def _pnl(self, args: list[str]) -> str:
        return format_pnl(self.desk.unrealized_pnl(), self.desk.realized_pnl())

    def _watch(self, args: list[str]) -> str:
        if not args:
            symbols = self.desk.watchlist()
            prices = self.desk.get_prices(symbols) if symbols else {}
            return format_watchlist(symbols, prices)
        watchlist = self.desk.watch(args[0])
        return "Watching: " + ", ".join(watchlist)

    def _unwatch(self, args: list[str]) -> str:
        (symbol,) = _expect(args, 1, "unwatch SYMBOL")
        watchlist = self.desk.unwatch(symbol)
        return "Watching: " + (", ".join(watchlist) if watchlist else "(nothing)")

    def _tick(self, args: list[str]) -> str:
        return format_tick(self.desk.monitor.tick())

    def _monitor(self, args: list[str]) -> str:
        monitor = self.desk.monitor
        action = args[0].lower() if args else "status"
        if action == "start":
            if not monitor.running:
                self.desk.start_monitor()
            return f"Background monitor running (every {monitor.interval:g}s)."
        if action == "stop":
            if not self.desk.stop_monitor(timeout=10.0):
                return "Background monitor is finishing a tick; it will stop after it."
            return "Background monitor stopped."
        if action != "status" or len(args) > 1:
            raise UsageError("monitor [start|stop]")
        state = "running" if monitor.running else "stopped"
        return f"Background monitor {state}, {monitor.ticks} tick(s) so far."

    def _save(self, args: list[str]) -> str:
        if self.desk.checkpoint():
            return "State saved."
        return "Save failed; changes are still in memory."

    def _reset(self, args: list[str]) -> str:
        if not self._confirm("Wipe all holdings, orders and trade history?"):
            return "Reset cancelled."
        self.desk.reset()
        return f"Portfolio reset. Cash: ${self.desk.get_cash_balance():,.2f}"


def _expect(args: list[str], count: int, usage: str) -> list[str]:
    if len(args) != count:
        raise UsageError(usage)
    return args

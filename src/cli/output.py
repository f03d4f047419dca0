"""
Human-readable terminal output for the paper desk.

Every CLI command (one-shot or from the shell) renders through these
formatters. The journal receives the same facts as JSON.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from execution.market_hours import next_market_open

if TYPE_CHECKING:
    from execution.ledger import PnLReport
    from execution.models import Holding, OpenOrder, Trade
    from execution.monitor import TickReport


def _money(value: Decimal) -> str:
    return f"${value:,.2f}"


def _signed_money(value: Decimal) -> str:
    sign = "+" if value >= 0 else "-"
    return f"{sign}${abs(value):,.2f}"


def _qty(value: Decimal) -> str:
    return f"{value.normalize():f}"


def format_account(cash: Decimal, holdings: list[Holding], open_orders: int) -> str:
    """Cash, cost basis and open-order count."""
    invested = sum((h.cost_basis for h in holdings), Decimal("0"))
    lines = [
        "=== Account ===",
        f"Cash         : {_money(cash)}",
        f"Cost basis   : {_money(invested)} across {len(holdings)} holding(s)",
        f"Open orders  : {open_orders}",
        "===",
    ]
    return "\n".join(lines)


def format_holdings(holdings: list[Holding]) -> str:
    if not holdings:
        return "No holdings."
    lines = [f"  {'Symbol':8s} {'Qty':>12s} {'Avg cost':>12s} {'Cost basis':>14s}"]
    for h in holdings:
        lines.append(f"  {h.symbol:8s} {_qty(h.quantity):>12s} {h.average_cost:>12.2f} {_money(h.cost_basis):>14s}")
    return "\n".join(lines)


def format_trade(trade: Trade) -> str:
    return (
        f"{trade.side.value} {_qty(trade.quantity)} {trade.symbol} @ {trade.price_per_unit:.2f}"
        f"  [{trade.order_type.value}]  {trade.timestamp.isoformat()}"
    )


def format_trades(trades: list[Trade]) -> str:
    if not trades:
        return "No trades yet."
    return "\n".join(f"  {format_trade(t)}" for t in trades)


def format_order(order: OpenOrder) -> str:
    return f"{order.id}  {order.order_type.value:11s} {_qty(order.quantity)} {order.symbol} @ {order.trigger_price:.2f}"


def format_orders(orders: list[OpenOrder]) -> str:
    if not orders:
        return "No open orders."
    return "\n".join(f"  {format_order(o)}" for o in orders)


def format_pnl(report: PnLReport, realized: dict[str, Decimal] | None = None) -> str:
    """Unrealized P&L per holding at current prices, plus realized P&L when given."""
    lines = ["=== P&L ==="]
    if not report.lines and not report.unpriced:
        lines.append("No holdings.")
    for line in report.lines:
        lines.append(
            f"  {line.symbol:8s} {_qty(line.quantity):>10s} @ {line.current_price:>10.2f}"
            f"  value {_money(line.market_value):>14s}  unrealized {_signed_money(line.unrealized_pnl)}"
        )
    for symbol in report.unpriced:
        lines.append(f"  {symbol:8s} (no quote; excluded from total)")
    lines.append(f"Unrealized   : {_signed_money(report.total)}")
    if realized is not None:
        lines.append(f"Realized     : {_signed_money(sum(realized.values(), Decimal('0')))}")
    lines.append("===")
    return "\n".join(lines)


def format_watchlist(symbols: Iterable[str], prices: dict | None = None) -> str:
    """Watched symbols, with a price column when quotes were fetched."""
    symbols = list(symbols)
    if not symbols:
        return "Watchlist is empty."
    lines = []
    for sym in symbols:
        if prices is None:
            lines.append(f"  {sym}")
            continue
        price = prices.get(sym)
        shown = f"{price:.2f}" if isinstance(price, Decimal) else f"unavailable ({price})"
        lines.append(f"  {sym:8s} {shown}")
    return "\n".join(lines)


def format_tick(report: TickReport) -> str:
    if report.market_closed:
        return f"Market closed; no orders evaluated. Next open {next_market_open():%Y-%m-%d %H:%M} ET."
    parts = [f"Tick: {len(report.symbols)} symbol(s), {report.fills} fill(s)"]
    for result in report.results:
        for order, trade in result.filled:
            parts.append(f"  FILLED {order.order_type.value} {format_trade(trade)}")
        for order, reason in result.rejected:
            parts.append(f"  LEFT RESTING {order.id}: {reason}")
    for symbol, exc in report.unavailable.items():
        parts.append(f"  {symbol}: quote unavailable ({exc.reason.value})")
    return "\n".join(parts)

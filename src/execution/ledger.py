"""
Ledger: cash balance, holdings (symbol -> quantity, average cost) and the
append-only trade log.

Mutations are all-or-nothing: the new cash, holding and trade are computed
first and committed only when every check has passed. The accounting itself
lives in free functions over immutable values so it can be tested without a
Ledger instance.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping

from execution.errors import InsufficientFunds, InsufficientPosition
from execution.models import (
    DEFAULT_ACCOUNT_ID,
    Account,
    Holding,
    OrderType,
    Side,
    Trade,
    as_decimal,
    normalize_symbol,
    positive_decimal,
    utc_now,
)

ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Pure accounting
# ---------------------------------------------------------------------------


def weighted_average_cost(
    held_qty: Decimal, average_cost: Decimal, lot_qty: Decimal, lot_price: Decimal
) -> Decimal:
    """Average cost after adding a lot: (q1*p1 + q2*p2) / (q1 + q2)."""
    total_qty = held_qty + lot_qty
    if total_qty <= 0:
        raise ValueError("Combined quantity must be positive")
    return (held_qty * average_cost + lot_qty * lot_price) / total_qty


def signed_cash_flow(trade: Trade) -> Decimal:
    """Cash effect of one trade: buys are negative, sells positive."""
    return -trade.notional if trade.side is Side.BUY else trade.notional


def net_cash_flow(trades: Iterable[Trade]) -> Decimal:
    return sum((signed_cash_flow(t) for t in trades), ZERO)


def expected_cash(net_deposits: Decimal, trades: Iterable[Trade]) -> Decimal:
    """Conservation law: cash must always equal deposits netted with every fill."""
    return net_deposits + net_cash_flow(trades)


def realized_pnl(trades: Iterable[Trade]) -> dict[str, Decimal]:
    """Replay the trade log with average-cost accounting; realized P&L per symbol."""
    positions: dict[str, tuple[Decimal, Decimal]] = {}
    realized: dict[str, Decimal] = {}
    for t in trades:
        qty, avg = positions.get(t.symbol, (ZERO, ZERO))
        if t.side is Side.BUY:
            positions[t.symbol] = (qty + t.quantity, weighted_average_cost(qty, avg, t.quantity, t.price_per_unit))
        else:
            realized[t.symbol] = realized.get(t.symbol, ZERO) + (t.price_per_unit - avg) * t.quantity
            remaining = qty - t.quantity
            positions[t.symbol] = (remaining, avg if remaining > 0 else ZERO)
    return realized


@dataclass(frozen=True)
class PnLLine:
    symbol: str
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    market_value: Decimal
    unrealized_pnl: Decimal


@dataclass(frozen=True)
class PnLReport:
    lines: tuple[PnLLine, ...]
    total: Decimal
    unpriced: tuple[str, ...] = ()

    def for_symbol(self, symbol: str) -> PnLLine | None:
        for line in self.lines:
            if line.symbol == symbol:
                return line
        return None


def unrealized_pnl(holdings: Iterable[Holding], prices: Mapping[str, Decimal]) -> PnLReport:
    """Sum of (price - average_cost) * quantity. Holdings without a price are listed as unpriced."""
    lines: list[PnLLine] = []
    unpriced: list[str] = []
    for h in sorted(holdings, key=lambda h: h.symbol):
        price = prices.get(h.symbol)
        if price is None:
            unpriced.append(h.symbol)
            continue
        price = as_decimal(price, "price")
        lines.append(
            PnLLine(
                symbol=h.symbol,
                quantity=h.quantity,
                average_cost=h.average_cost,
                current_price=price,
                market_value=price * h.quantity,
                unrealized_pnl=(price - h.average_cost) * h.quantity,
            )
        )
    total = sum((line.unrealized_pnl for line in lines), ZERO)
    return PnLReport(lines=tuple(lines), total=total, unpriced=tuple(unpriced))


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class Ledger:
    """Cash + holdings + trade log for the single account. Not thread-safe; wrap in StateGuard."""

    def __init__(
        self,
        cash_balance: Decimal | int | str,
        *,
        holdings: Iterable[Holding] = (),
        trades: Iterable[Trade] = (),
        net_deposits: Decimal | int | str | None = None,
        account_id: int = DEFAULT_ACCOUNT_ID,
        updated_at: datetime | None = None,
    ) -> None:
        cash = as_decimal(cash_balance, "cash_balance")
        if cash < 0:
            raise ValueError(f"cash_balance must be non-negative, got {cash}")
        self._account = Account(
            cash_balance=cash,
            updated_at=updated_at or utc_now(),
            net_deposits=cash if net_deposits is None else as_decimal(net_deposits, "net_deposits"),
            id=account_id,
        )
        self._holdings: dict[str, Holding] = {h.symbol: h for h in holdings if h.quantity > 0}
        self._trades: list[Trade] = list(trades)

    # -- queries --

    @property
    def account(self) -> Account:
        return self._account

    @property
    def cash_balance(self) -> Decimal:
        return self._account.cash_balance

    def holding(self, symbol: str) -> Holding | None:
        return self._holdings.get(symbol)

    def held_quantity(self, symbol: str) -> Decimal:
        h = self._holdings.get(symbol)
        return h.quantity if h else ZERO

    def holdings(self) -> list[Holding]:
        return sorted(self._holdings.values(), key=lambda h: h.symbol)

    def trades(self) -> tuple[Trade, ...]:
        return tuple(self._trades)

    def unrealized_pnl(self, current_prices: Mapping[str, Decimal]) -> PnLReport:
        return unrealized_pnl(self._holdings.values(), current_prices)

    def is_conserved(self) -> bool:
        return self.cash_balance == expected_cash(self._account.net_deposits, self._trades)

    # -- mutations --

    def apply_buy(self, symbol: str, quantity, price, order_type: OrderType = OrderType.MARKET) -> Trade:
        symbol = normalize_symbol(symbol)
        quantity = positive_decimal(quantity, "quantity")
        price = positive_decimal(price, "price")
        cost = quantity * price
        if cost > self.cash_balance:
            raise InsufficientFunds(cost, self.cash_balance)

        existing = self._holdings.get(symbol)
        if existing:
            new_holding = Holding(
                symbol=symbol,
                quantity=existing.quantity + quantity,
                average_cost=weighted_average_cost(existing.quantity, existing.average_cost, quantity, price),
            )
        else:
            new_holding = Holding(symbol=symbol, quantity=quantity, average_cost=price)
        trade = self._new_trade(symbol, quantity, price, Side.BUY, order_type)

        self._holdings[symbol] = new_holding
        self._trades.append(trade)
        self._set_cash(self.cash_balance - cost, trade.timestamp)
        return trade

    def apply_sell(self, symbol: str, quantity, price, order_type: OrderType = OrderType.MARKET) -> Trade:
        symbol = normalize_symbol(symbol)
        quantity = positive_decimal(quantity, "quantity")
        price = positive_decimal(price, "price")
        held = self.held_quantity(symbol)
        if quantity > held:
            raise InsufficientPosition(symbol, quantity, held)

        remaining = held - quantity
        trade = self._new_trade(symbol, quantity, price, Side.SELL, order_type)

        if remaining == 0:
            del self._holdings[symbol]
        else:
            self._holdings[symbol] = replace(self._holdings[symbol], quantity=remaining)
        self._trades.append(trade)
        self._set_cash(self.cash_balance + quantity * price, trade.timestamp)
        return trade

    def deposit(self, amount) -> Decimal:
        amount = positive_decimal(amount, "amount")
        self._account = replace(self._account, net_deposits=self._account.net_deposits + amount)
        self._set_cash(self.cash_balance + amount)
        return self.cash_balance

    def withdraw(self, amount) -> Decimal:
        amount = positive_decimal(amount, "amount")
        if amount > self.cash_balance:
            raise InsufficientFunds(amount, self.cash_balance)
        self._account = replace(self._account, net_deposits=self._account.net_deposits - amount)
        self._set_cash(self.cash_balance - amount)
        return self.cash_balance

    def _set_cash(self, balance: Decimal, ts: datetime | None = None) -> None:
        self._account = replace(self._account, cash_balance=balance, updated_at=ts or utc_now())

    def _new_trade(self, symbol: str, quantity: Decimal, price: Decimal, side: Side, order_type: OrderType) -> Trade:
        return Trade(
            id=str(uuid.uuid4()),
            symbol=symbol,
            quantity=quantity,
            price_per_unit=price,
            side=side,
            order_type=order_type,
            timestamp=utc_now(),
            account_id=self._account.id,
        )

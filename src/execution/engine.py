"""
Execution engine: market orders and resting-order evaluation.

Quotes are fetched before entering the StateGuard. Each market order, and
each individual resting-order fill, is one guarded unit: the ledger update
and the order removal happen together or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from execution.errors import InsufficientFunds, InsufficientPosition, InvalidOrderParameters
from execution.guard import StateGuard
from execution.models import OpenOrder, OrderType, Side, Trade, normalize_symbol, positive_decimal
from execution.order_book import is_triggered

if TYPE_CHECKING:
    from data.quotes import QuoteFetcher

logger = logging.getLogger("paper.engine")


@dataclass
class EvaluationResult:
    """Outcome of evaluating one symbol at one price."""

    symbol: str
    price: Decimal
    filled: list[tuple[OpenOrder, Trade]] = field(default_factory=list)
    rejected: list[tuple[OpenOrder, str]] = field(default_factory=list)

    @property
    def trades(self) -> list[Trade]:
        return [t for _, t in self.filled]


class ExecutionEngine:
    """Validates and applies fills against the guarded Ledger / OrderBook."""

    def __init__(self, guard: StateGuard, quotes: QuoteFetcher) -> None:
        self._guard = guard
        self._quotes = quotes

    def execute_market(self, symbol: str, side: Side | str, quantity) -> Trade:
        """Fill immediately at the current quote. Raises QuoteUnavailable before touching state."""
        symbol = normalize_symbol(symbol)
        side = _parse_side(side)
        quantity = positive_decimal(quantity, "quantity")

        price = self._quotes.get_price(symbol)

        with self._guard.transaction() as state:
            if side is Side.BUY:
                trade = state.ledger.apply_buy(symbol, quantity, price)
            else:
                trade = state.ledger.apply_sell(symbol, quantity, price)
        logger.info("Market %s %s %s @ %s", side.value, trade.quantity, symbol, price)
        return trade

    def evaluate(self, symbol: str, current_price) -> EvaluationResult:
        """Fill every triggered resting order on *symbol* at *current_price*, oldest first.

        An order that can no longer be filled (cash or position used up by an
        earlier fill or a concurrent command) stays resting for the next tick.
        """
        symbol = normalize_symbol(symbol)
        price = positive_decimal(current_price, "current_price")
        result = EvaluationResult(symbol=symbol, price=price)

        with self._guard.read() as state:
            candidates = [o for o in state.book.orders_for_symbol(symbol) if is_triggered(o, price)]

        for order in candidates:
            try:
                with self._guard.transaction() as state:
                    if order.id not in state.book:
                        # cancelled or filled by someone else since the scan
                        continue
                    trade = self._fill(state.ledger, order, price)
                    state.book.remove(order.id)
            except (InsufficientFunds, InsufficientPosition) as exc:
                logger.info("Order %s %s %s left resting: %s", order.id, order.order_type.value, symbol, exc)
                result.rejected.append((order, str(exc)))
                continue
            logger.info(
                "Filled %s %s %s @ %s (trigger %s)",
                order.order_type.value,
                order.quantity,
                symbol,
                price,
                order.trigger_price,
            )
            result.filled.append((order, trade))
        return result

    @staticmethod
    def _fill(ledger, order: OpenOrder, price: Decimal) -> Trade:
        if order.side is Side.BUY:
            return ledger.apply_buy(order.symbol, order.quantity, price, order.order_type)
        return ledger.apply_sell(order.symbol, order.quantity, price, order.order_type)


def _parse_side(side: Side | str) -> Side:
    if isinstance(side, Side):
        return side
    try:
        return Side(str(side).strip().upper())
    except ValueError:
        raise InvalidOrderParameters(f"Unknown side: {side!r}") from None


def parse_order_type(order_type: OrderType | str) -> OrderType:
    """Accept 'limit_buy', 'LIMIT-BUY', OrderType.LIMIT_BUY, ... for resting orders."""
    if isinstance(order_type, OrderType):
        ot = order_type
    else:
        try:
            ot = OrderType(str(order_type).strip().upper().replace("-", "_"))
        except ValueError:
            raise InvalidOrderParameters(f"Unknown order type: {order_type!r}") from None
    if not ot.is_resting:
        raise InvalidOrderParameters("MARKET orders execute immediately; use execute_market")
    return ot

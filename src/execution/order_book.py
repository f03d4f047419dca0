"""
Order book: resting limit / stop-loss / take-profit orders.

Storage and matching predicates only; fills happen in ExecutionEngine.
Orders keep placement order (oldest first), which is the fill order when
several orders on one symbol trigger on the same tick.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Iterable, Iterator

from execution.errors import InsufficientPosition, InvalidOrderParameters, OrderNotFound
from execution.models import OpenOrder, OrderType, Side, normalize_symbol, positive_decimal

# price <= trigger for buy-below / stop-below, price >= trigger for sell-above
_TRIGGERS: dict[OrderType, Callable[[Decimal, Decimal], bool]] = {
    OrderType.LIMIT_BUY: lambda price, trigger: price <= trigger,
    OrderType.LIMIT_SELL: lambda price, trigger: price >= trigger,
    OrderType.STOP_LOSS: lambda price, trigger: price <= trigger,
    OrderType.TAKE_PROFIT: lambda price, trigger: price >= trigger,
}


def is_triggered(order: OpenOrder, current_price: Decimal) -> bool:
    """True if *current_price* satisfies the order's trigger condition."""
    return _TRIGGERS[order.order_type](current_price, order.trigger_price)


class OrderBook:
    """Resting orders keyed by id. Insertion order == placement order."""

    def __init__(self, orders: Iterable[OpenOrder] = ()) -> None:
        self._orders: dict[str, OpenOrder] = {}
        for o in orders:
            if not o.id:
                raise ValueError("Restored orders must carry an id")
            self._orders[o.id] = o

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: str) -> bool:
        return order_id in self._orders

    def place(self, order: OpenOrder, held_quantity: Decimal = Decimal("0")) -> str:
        """Validate and store *order*; return its new id.

        Sell-side orders need ``held_quantity >= order.quantity`` at placement
        time. Other resting sells on the same symbol are not reserved against;
        the fill re-validates.
        """
        if order.order_type not in _TRIGGERS:
            raise InvalidOrderParameters(f"{order.order_type.value} cannot rest in the order book")
        symbol = normalize_symbol(order.symbol)
        quantity = positive_decimal(order.quantity, "quantity")
        trigger = positive_decimal(order.trigger_price, "trigger_price")
        if order.side is Side.SELL and quantity > held_quantity:
            raise InsufficientPosition(symbol, quantity, held_quantity)

        order_id = str(uuid.uuid4())
        self._orders[order_id] = replace(order, id=order_id, symbol=symbol, quantity=quantity, trigger_price=trigger)
        return order_id

    def cancel(self, order_id: str) -> OpenOrder:
        try:
            return self._orders.pop(order_id)
        except KeyError:
            raise OrderNotFound(order_id) from None

    def remove(self, order_id: str) -> OpenOrder:
        """Remove a filled order. Same as cancel; separate name for the fill path."""
        return self.cancel(order_id)

    def get(self, order_id: str) -> OpenOrder | None:
        return self._orders.get(order_id)

    def orders_for_symbol(self, symbol: str) -> Iterator[OpenOrder]:
        """Resting orders on *symbol*, oldest first. Iterates over a copy, so removal during iteration is safe."""
        for order in list(self._orders.values()):
            if order.symbol == symbol:
                yield order

    def symbols(self) -> list[str]:
        """Distinct symbols with at least one resting order, in first-placement order."""
        return list(dict.fromkeys(o.symbol for o in self._orders.values()))

    def all_orders(self) -> list[OpenOrder]:
        return list(self._orders.values())

"""
Error taxonomy for the trading engine.

Validation errors are raised before any state changes. QuoteUnavailable and
PersistenceFailure come from external collaborators (quote source, storage).
"""

from __future__ import annotations

from enum import Enum


class TradingError(Exception):
    """Base class for every engine error surfaced to callers."""


class InvalidOrderParameters(TradingError):
    """Non-positive quantity, price or amount, or an unknown side/order type."""


class InsufficientFunds(TradingError):
    def __init__(self, required, available) -> None:
        self.required = required
        self.available = available
        super().__init__(f"Insufficient funds: need {required}, have {available}")


class InsufficientPosition(TradingError):
    def __init__(self, symbol: str, requested, held) -> None:
        self.symbol = symbol
        self.requested = requested
        self.held = held
        super().__init__(f"Insufficient position in {symbol}: requested {requested}, held {held}")


class OrderNotFound(TradingError):
    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class QuoteFailure(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    ERROR = "ERROR"


class QuoteUnavailable(TradingError):
    def __init__(self, symbol: str, reason: QuoteFailure = QuoteFailure.ERROR, detail: str = "") -> None:
        self.symbol = symbol
        self.reason = reason
        self.detail = detail
        msg = f"Quote unavailable for {symbol} ({reason.value})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class PersistenceFailure(TradingError):
    """Storage could not load or save state. In-memory state is left as is."""

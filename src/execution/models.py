"""Account, Holding, Trade, OpenOrder for the paper trading desk. Aligned with the SQLite schema."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from execution.errors import InvalidOrderParameters

DEFAULT_ACCOUNT_ID = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    """Resting order types. MARKET is only ever recorded on trades."""

    MARKET = "MARKET"
    LIMIT_BUY = "LIMIT_BUY"
    LIMIT_SELL = "LIMIT_SELL"
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"

    @property
    def side(self) -> Side:
        return Side.BUY if self is OrderType.LIMIT_BUY else Side.SELL

    @property
    def is_resting(self) -> bool:
        return self is not OrderType.MARKET


def as_decimal(value, name: str = "value") -> Decimal:
    """Coerce int/str/Decimal/float input to a finite Decimal. Floats go through str()."""
    if isinstance(value, bool):
        raise InvalidOrderParameters(f"{name} must be a number, got {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        dec = value if isinstance(value, Decimal) else Decimal(value)
    except (ArithmeticError, ValueError, TypeError) as exc:
        raise InvalidOrderParameters(f"{name} must be a number, got {value!r}") from exc
    if not dec.is_finite():
        raise InvalidOrderParameters(f"{name} must be finite, got {value!r}")
    return dec


def positive_decimal(value, name: str) -> Decimal:
    dec = as_decimal(value, name)
    if dec <= 0:
        raise InvalidOrderParameters(f"{name} must be positive, got {dec}")
    return dec


def normalize_symbol(symbol: str) -> str:
    sym = (symbol or "").strip().upper()
    if not sym:
        raise InvalidOrderParameters("Symbol must not be empty")
    return sym


@dataclass(frozen=True)
class Account:
    cash_balance: Decimal
    updated_at: datetime
    net_deposits: Decimal  # initial cash + deposits - withdrawals
    id: int = DEFAULT_ACCOUNT_ID


@dataclass(frozen=True)
class Holding:
    symbol: str
    quantity: Decimal
    average_cost: Decimal

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.average_cost


@dataclass(frozen=True)
class Trade:
    """One fill. Never mutated after creation."""

    id: str
    symbol: str
    quantity: Decimal
    price_per_unit: Decimal
    side: Side
    order_type: OrderType
    timestamp: datetime
    account_id: int = DEFAULT_ACCOUNT_ID

    @property
    def notional(self) -> Decimal:
        return self.quantity * self.price_per_unit


@dataclass(frozen=True)
class OpenOrder:
    order_type: OrderType
    symbol: str
    quantity: Decimal
    trigger_price: Decimal
    timestamp: datetime = field(default_factory=utc_now)
    account_id: int = DEFAULT_ACCOUNT_ID
    id: str | None = None  # assigned by OrderBook.place

    @property
    def side(self) -> Side:
        return self.order_type.side


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Immutable copy of everything StateStore persists. ``version`` orders concurrent saves."""

    account: Account
    holdings: tuple[Holding, ...]
    trades: tuple[Trade, ...]
    open_orders: tuple[OpenOrder, ...]
    watchlist: tuple[str, ...] = ()
    version: int = 0

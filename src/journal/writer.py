"""
Audit journal: append-only JSON lines. One record per fill, placement, cancellation or cash movement.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any

from execution.models import OpenOrder, Trade


def _serialize(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class JournalWriter:
    """Append-only journal. Each line is a JSON object with event type and payload."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def fill(self, trade: Trade, order_id: str | None = None, **extra: Any) -> None:
        self._write(
            "fill",
            {
                "trade_id": trade.id,
                "order_id": order_id,
                "symbol": trade.symbol,
                "side": trade.side,
                "qty": trade.quantity,
                "price": trade.price_per_unit,
                "order_type": trade.order_type,
                **extra,
            },
        )

    def order_placed(self, order: OpenOrder, **extra: Any) -> None:
        self._write(
            "order_placed",
            {
                "order_id": order.id,
                "order_type": order.order_type,
                "symbol": order.symbol,
                "qty": order.quantity,
                "trigger_price": order.trigger_price,
                **extra,
            },
        )

    def order_cancelled(self, order: OpenOrder, **extra: Any) -> None:
        self._write("order_cancelled", {"order_id": order.id, "symbol": order.symbol, "order_type": order.order_type, **extra})

    def cash(self, kind: str, amount: Decimal, balance: Decimal, **extra: Any) -> None:
        self._write("cash", {"kind": kind, "amount": amount, "balance": balance, **extra})

    def reset(self, initial_cash: Decimal, **extra: Any) -> None:
        self._write("reset", {"initial_cash": initial_cash, **extra})

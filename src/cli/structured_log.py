"""
Structured JSON event logger for Docker observability.

Emits one JSON object per line to stderr. Events are designed to be
parsed by log aggregators (Grafana Loki, CloudWatch, ELK).

Optional webhook: when configured, trade-level events (fill,
order_rejected, persistence_warning, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

logger = logging.getLogger("paper.events")


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr
        self._ALERT_EVENTS = {
            "fill",
            "order_rejected",
            "persistence_warning",
            "error",
        }

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            **{k: _jsonable(v) for k, v in fields.items()},
        }
        if self._enabled:
            self._stream.write(json.dumps(record) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in self._ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def order_placed(self, order_id: str, order_type: str, symbol: str, qty: Decimal, trigger: Decimal) -> dict:
        return self._emit(
            "order_placed",
            order_id=order_id,
            order_type=order_type,
            symbol=symbol,
            qty=qty,
            trigger=trigger,
        )

    def fill(self, symbol: str, side: str, qty: Decimal, price: Decimal, order_type: str) -> dict:
        return self._emit(
            "fill",
            symbol=symbol,
            side=side,
            qty=qty,
            price=price,
            order_type=order_type,
        )

    def order_rejected(self, symbol: str, reason: str) -> dict:
        return self._emit("order_rejected", symbol=symbol, reason=reason)

    def quote_unavailable(self, symbol: str, reason: str) -> dict:
        return self._emit("quote_unavailable", symbol=symbol, reason=reason)

    def tick_complete(self, symbols: int, fills: int, unavailable: int) -> dict:
        return self._emit(
            "tick_complete",
            symbols=symbols,
            fills=fills,
            unavailable=unavailable,
        )

    def persistence_warning(self, message: str, attempts: int) -> dict:
        return self._emit("persistence_warning", message=message, attempts=attempts)

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)

    def shutdown(self, ticks: int, unsaved_changes: bool) -> dict:
        return self._emit("shutdown", ticks=ticks, unsaved_changes=unsaved_changes)

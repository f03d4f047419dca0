"""
Quote sources: given a symbol, return the latest price or raise QuoteUnavailable.

QuoteFetcher wraps any source with a per-call timeout and a small thread pool
so the order monitor can fetch several symbols at once. Fetches never run
while the StateGuard lock is held.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from decimal import Decimal
from typing import Iterable, Mapping, Protocol

from execution.errors import InvalidOrderParameters, QuoteFailure, QuoteUnavailable
from execution.models import as_decimal, normalize_symbol

logger = logging.getLogger("paper.quotes")


class QuoteSource(Protocol):
    """Protocol for price providers. Implement per vendor (Alpaca, static, ...)."""

    def get_price(self, symbol: str) -> Decimal:
        """Latest trade price for *symbol*. Raises QuoteUnavailable on failure."""
        ...


class StaticQuoteSource:
    """In-memory prices; for tests and offline use. Unknown symbols are NOT_FOUND."""

    def __init__(self, prices: Mapping[str, Decimal | int | str] | None = None) -> None:
        self._prices: dict[str, Decimal] = {}
        self._failures: dict[str, QuoteFailure] = {}
        for sym, price in (prices or {}).items():
            self.set_price(sym, price)

    def set_price(self, symbol: str, price: Decimal | int | str) -> None:
        sym = normalize_symbol(symbol)
        self._prices[sym] = as_decimal(price, "price")
        self._failures.pop(sym, None)

    def fail(self, symbol: str, reason: QuoteFailure = QuoteFailure.ERROR) -> None:
        """Make subsequent lookups of *symbol* raise QuoteUnavailable(reason)."""
        self._failures[normalize_symbol(symbol)] = reason

    def get_price(self, symbol: str) -> Decimal:
        sym = normalize_symbol(symbol)
        if sym in self._failures:
            raise QuoteUnavailable(sym, self._failures[sym])
        if sym not in self._prices:
            raise QuoteUnavailable(sym, QuoteFailure.NOT_FOUND)
        return self._prices[sym]


class QuoteFetcher:
    """Timeout-bounded, optionally concurrent access to a QuoteSource."""

    def __init__(self, source: QuoteSource, *, timeout: float = 5.0, max_workers: int = 4) -> None:
        self._source = source
        self._timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="quote")

    @property
    def source(self) -> QuoteSource:
        return self._source

    def get_price(self, symbol: str) -> Decimal:
        symbol = normalize_symbol(symbol)
        future = self._executor.submit(self._source.get_price, symbol)
        return self._result(symbol, future)

    def get_prices(self, symbols: Iterable[str]) -> dict[str, Decimal | QuoteUnavailable]:
        """Fetch all *symbols* concurrently. Failures are returned, not raised."""
        futures = {normalize_symbol(s): None for s in symbols}
        for sym in futures:
            futures[sym] = self._executor.submit(self._source.get_price, sym)
        out: dict[str, Decimal | QuoteUnavailable] = {}
        for sym, future in futures.items():
            try:
                out[sym] = self._result(sym, future)
            except QuoteUnavailable as exc:
                out[sym] = exc
        return out

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _result(self, symbol: str, future) -> Decimal:
        try:
            price = future.result(timeout=self._timeout)
        except FutureTimeout:
            future.cancel()
            raise QuoteUnavailable(symbol, QuoteFailure.TIMEOUT, f"no answer within {self._timeout}s") from None
        except QuoteUnavailable:
            raise
        except Exception as exc:
            logger.debug("Quote source error for %s", symbol, exc_info=True)
            raise QuoteUnavailable(symbol, QuoteFailure.ERROR, str(exc)) from exc
        try:
            price = as_decimal(price, "price")
        except InvalidOrderParameters as exc:
            raise QuoteUnavailable(symbol, QuoteFailure.ERROR, str(exc)) from exc
        if price <= 0:
            raise QuoteUnavailable(symbol, QuoteFailure.ERROR, f"non-positive price {price}")
        return price

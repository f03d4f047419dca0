"""
Alpaca quote source: implements QuoteSource using the alpaca-py SDK.

Uses the latest trade for a symbol. Free tier uses IEX data; SIP requires
Algo Trader Plus subscription.
"""

import logging
from decimal import Decimal

from execution.errors import QuoteFailure, QuoteUnavailable

logger = logging.getLogger(__name__)


def _classify(exc: Exception) -> QuoteFailure:
    """Map an SDK / HTTP error onto the quote failure kinds."""
    status = getattr(exc, "status_code", None)
    if status == 429:
        return QuoteFailure.RATE_LIMITED
    if status in (404, 422):
        return QuoteFailure.NOT_FOUND
    if isinstance(exc, TimeoutError) or "timeout" in type(exc).__name__.lower():
        return QuoteFailure.TIMEOUT
    return QuoteFailure.ERROR


class AlpacaQuoteSource:
    """
    Latest trade prices from Alpaca Market Data API.

    Uses StockHistoricalDataClient from alpaca-py.
    API keys via constructor (typically from AppConfig, sourced from env vars).
    """

    def __init__(self, api_key: str, api_secret: str, *, feed: str = "iex") -> None:
        if not api_key or not api_secret:
            raise ValueError(
                "Alpaca API key and secret are required. "
                "Set APCA_API_KEY_ID and APCA_API_SECRET_KEY environment variables."
            )
        try:
            from alpaca.data.historical import StockHistoricalDataClient
        except ImportError:
            raise ImportError(
                "alpaca-py is required for AlpacaQuoteSource. "
                "Install with: pip install 'paper-desk[data]'"
            )
        self._client = StockHistoricalDataClient(api_key, api_secret)
        self._feed = feed.lower()

    def get_price(self, symbol: str) -> Decimal:
        from alpaca.data.enums import DataFeed
        from alpaca.data.requests import StockLatestTradeRequest

        request = StockLatestTradeRequest(symbol_or_symbols=symbol, feed=DataFeed(self._feed))
        try:
            response = self._client.get_stock_latest_trade(request)
        except Exception as exc:
            reason = _classify(exc)
            logger.warning("Alpaca latest trade failed for %s: %s (%s)", symbol, exc, reason.value)
            raise QuoteUnavailable(symbol, reason, str(exc)) from exc

        trade = response.get(symbol) if hasattr(response, "get") else None
        if trade is None or getattr(trade, "price", None) is None:
            raise QuoteUnavailable(symbol, QuoteFailure.NOT_FOUND, "no latest trade")
        price = Decimal(str(trade.price))
        logger.debug("Latest trade %s @ %s", symbol, price)
        return price

"""
Market data and persistence collaborators: quote sources and the SQLite state store.

Depends on execution.models / execution.errors for value types; nothing in
execution.ledger or execution.order_book depends back on data.
"""

from data.quotes import QuoteFetcher, QuoteSource, StaticQuoteSource
from data.state_store import StateStore

__all__ = [
    "QuoteFetcher",
    "QuoteSource",
    "StateStore",
    "StaticQuoteSource",
    "build_quote_source",
    "get_alpaca_quote_source",
]


def get_alpaca_quote_source(api_key: str, api_secret: str, *, feed: str = "iex"):
    """Lazy import to avoid requiring alpaca-py when not used."""
    from data.alpaca_quotes import AlpacaQuoteSource

    return AlpacaQuoteSource(api_key, api_secret, feed=feed)


def build_quote_source(quotes_cfg) -> QuoteSource:
    """QuoteSource for a QuotesConfig: 'static' uses configured prices, 'alpaca' the live API."""
    if quotes_cfg.source == "static":
        return StaticQuoteSource(quotes_cfg.static_prices)
    return get_alpaca_quote_source(quotes_cfg.api_key, quotes_cfg.api_secret, feed=quotes_cfg.feed)

"""Tests for quote sources and the timeout-bounded fetcher."""

import threading
from decimal import Decimal

import pytest

from config import QuotesConfig
from data import build_quote_source
from data.quotes import QuoteFetcher, StaticQuoteSource
from execution.errors import QuoteFailure, QuoteUnavailable


class SlowSource:
    def __init__(self) -> None:
        self.release = threading.Event()

    def get_price(self, symbol: str) -> Decimal:
        self.release.wait(5)
        return Decimal("1")


class BrokenSource:
    def __init__(self, value) -> None:
        self.value = value

    def get_price(self, symbol: str):
        if isinstance(self.value, Exception):
            raise self.value
        return self.value


def test_static_source_lookup_and_failures() -> None:
    src = StaticQuoteSource({"aapl": 101.5})
    assert src.get_price("AAPL") == Decimal("101.5")
    with pytest.raises(QuoteUnavailable) as exc_info:
        src.get_price("MSFT")
    assert exc_info.value.reason is QuoteFailure.NOT_FOUND
    src.fail("AAPL", QuoteFailure.RATE_LIMITED)
    with pytest.raises(QuoteUnavailable):
        src.get_price("aapl")
    src.set_price("AAPL", "102")
    assert src.get_price("AAPL") == Decimal("102")


def test_fetcher_times_out() -> None:
    slow = SlowSource()
    fetcher = QuoteFetcher(slow, timeout=0.05)
    try:
        with pytest.raises(QuoteUnavailable) as exc_info:
            fetcher.get_price("AAPL")
        assert exc_info.value.reason is QuoteFailure.TIMEOUT
    finally:
        slow.release.set()
        fetcher.close()


@pytest.mark.parametrize(
    "value", [RuntimeError("connection reset"), Decimal("0"), Decimal("-3"), Decimal("NaN"), None, "n/a"]
)
def test_fetcher_maps_bad_answers_to_error(value) -> None:
    fetcher = QuoteFetcher(BrokenSource(value))
    try:
        with pytest.raises(QuoteUnavailable) as exc_info:
            fetcher.get_price("AAPL")
        assert exc_info.value.reason is QuoteFailure.ERROR
    finally:
        fetcher.close()


def test_get_prices_collects_failures() -> None:
    src = StaticQuoteSource({"AAPL": "100", "MSFT": "200"})
    src.fail("MSFT", QuoteFailure.TIMEOUT)
    fetcher = QuoteFetcher(src)
    try:
        out = fetcher.get_prices(["aapl", "msft", "nope"])
    finally:
        fetcher.close()
    assert out["AAPL"] == Decimal("100")
    assert out["MSFT"].reason is QuoteFailure.TIMEOUT
    assert out["NOPE"].reason is QuoteFailure.NOT_FOUND


def test_build_static_source_from_config() -> None:
    src = build_quote_source(QuotesConfig(source="static", static_prices={"SPY": Decimal("500")}))
    assert isinstance(src, StaticQuoteSource)
    assert src.get_price("spy") == Decimal("500")


def test_build_alpaca_source_requires_keys() -> None:
    with pytest.raises(ValueError, match="APCA_API_KEY_ID"):
        build_quote_source(QuotesConfig(source="alpaca", api_key="", api_secret=""))

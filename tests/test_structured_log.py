"""Tests for structured JSON event logger."""

import io
import json
from decimal import Decimal
from unittest.mock import patch

import pytest

from cli.structured_log import StructuredEventLogger


@pytest.fixture
def buf() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(buf: io.StringIO) -> StructuredEventLogger:
    return StructuredEventLogger(enabled=True, stream=buf)


class TestEmit:
    """Basic event emission and format."""

    def test_fill_json(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.fill(symbol="AAPL", side="BUY", qty=Decimal("10"), price=Decimal("187.43"), order_type="MARKET")
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "fill"
        assert record["symbol"] == "AAPL"
        assert record["qty"] == "10"
        assert record["price"] == "187.43"
        assert "ts" in record

    def test_one_line_per_event(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.order_placed("id-1", "LIMIT_BUY", "AAPL", Decimal("1"), Decimal("100"))
        logger.quote_unavailable("MSFT", "TIMEOUT")
        logger.tick_complete(symbols=2, fills=0, unavailable=1)
        logger.shutdown(ticks=3, unsaved_changes=False)
        lines = buf.getvalue().strip().split("\n")
        assert [json.loads(x)["event"] for x in lines] == [
            "order_placed",
            "quote_unavailable",
            "tick_complete",
            "shutdown",
        ]

    def test_returns_record(self, logger: StructuredEventLogger) -> None:
        record = logger.persistence_warning("disk full", attempts=3)
        assert record["event"] == "persistence_warning"
        assert record["attempts"] == 3

    def test_disabled_writes_nothing(self, buf: io.StringIO) -> None:
        quiet = StructuredEventLogger(enabled=False, stream=buf)
        record = quiet.error("boom", detail="trace")
        assert buf.getvalue() == ""
        assert record["message"] == "boom"


class TestWebhook:
    """Alert events go to the webhook; routine events do not."""

    def test_alert_event_posted(self, buf: io.StringIO) -> None:
        events = StructuredEventLogger(webhook_url="https://hooks.example.test/x", stream=buf)
        with patch("cli.structured_log.urllib.request.urlopen") as urlopen:
            events.order_rejected("AAPL", "Insufficient funds")
        urlopen.assert_called_once()
        request = urlopen.call_args[0][0]
        assert json.loads(request.data)["event"] == "order_rejected"

    def test_routine_event_not_posted(self, buf: io.StringIO) -> None:
        events = StructuredEventLogger(webhook_url="https://hooks.example.test/x", stream=buf)
        with patch("cli.structured_log.urllib.request.urlopen") as urlopen:
            events.tick_complete(symbols=1, fills=0, unavailable=0)
        urlopen.assert_not_called()

    def test_webhook_failure_is_logged_not_raised(self, buf: io.StringIO) -> None:
        events = StructuredEventLogger(webhook_url="https://hooks.example.test/x", stream=buf)
        with patch("cli.structured_log.urllib.request.urlopen", side_effect=OSError("unreachable")):
            events.error("boom")
        assert json.loads(buf.getvalue())["event"] == "error"

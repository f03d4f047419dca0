"""Tests for the interactive shell command dispatcher."""

from decimal import Decimal

from cli.shell import ShellSession
from execution.desk import TradingDesk


def test_usage_errors(desk: TradingDesk) -> None:
    session = ShellSession(desk)
    assert session.execute("buy AAPL") == "Usage: buy SYMBOL QTY"
    assert session.execute("stop-loss AAPL 1") == "Usage: stop-loss SYMBOL QTY PRICE"
    assert session.execute("   ") is None
    assert session.execute('price "unterminated').startswith("Error:")


def test_order_commands_and_history(desk: TradingDesk) -> None:
    session = ShellSession(desk)
    session.execute("buy aapl 2")
    out = session.execute("take-profit AAPL 2 150")
    assert out.startswith("Placed take-profit 2 AAPL @ 150: ")
    assert "TAKE_PROFIT" in session.execute("orders AAPL")
    assert "BUY 2 AAPL" in session.execute("history AAPL 5")
    assert "Error: Insufficient position" in session.execute("sell AAPL 3")


def test_reset_needs_confirmation(desk: TradingDesk) -> None:
    answers = [False, True]
    session = ShellSession(desk, confirm=lambda _prompt: answers.pop(0))
    session.execute("buy AAPL 1")
    assert session.execute("reset") == "Reset cancelled."
    assert desk.get_cash_balance() == Decimal("9900")
    assert session.execute("reset") == "Portfolio reset. Cash: $10,000.00"


def test_exit_finishes(desk: TradingDesk) -> None:
    session = ShellSession(desk)
    assert not session.finished
    session.execute("QUIT")
    assert session.finished


def test_help_lists_commands(desk: TradingDesk) -> None:
    text = ShellSession(desk).execute("help")
    for word in ("fund", "limit-buy", "cancel", "pnl", "watch", "tick"):
        assert word in text


def test_monitor_stop_and_restart(desk: TradingDesk) -> None:
    session = ShellSession(desk)
    try:
        assert session.execute("monitor start") == "Background monitor running (every 5s)."
        assert desk.monitor.running
        assert session.execute("monitor stop") == "Background monitor stopped."
        assert not desk.monitor.running
        assert session.execute("monitor").startswith("Background monitor stopped, ")
        session.execute("monitor start")
        assert desk.monitor.running
    finally:
        desk.stop_monitor(timeout=5.0)
    assert session.execute("monitor sideways") == "Usage: monitor [start|stop]"

"""
CLI entry point: paper fund | buy | sell | order | cancel | orders | holdings | pnl | monitor | shell | ...

Every command loads config from --config (default config.yaml), opens the
persisted desk, runs one operation and saves. `shell` keeps one desk open
with the order monitor running in the background.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Iterator

import click
from dotenv import load_dotenv

from config import ConfigError, load_config

load_dotenv()

logger = logging.getLogger("paper")


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """paper-desk: simulated single-account stock trading with resting orders."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _load(ctx: click.Context):
    try:
        return load_config(ctx.obj["config_path"])
    except (FileNotFoundError, ConfigError) as exc:
        raise click.ClickException(str(exc)) from None


def _build_desk(cfg):
    from cli.structured_log import StructuredEventLogger
    from execution import TradingDesk, TradingError

    events = StructuredEventLogger(enabled=cfg.alerting.structured_logs, webhook_url=cfg.alerting.webhook_url)
    try:
        return TradingDesk.from_config(cfg, events=events)
    except (TradingError, ValueError) as exc:
        raise click.ClickException(f"Could not open desk: {exc}") from None


def _shutdown(desk, timeout: float | None = None) -> None:
    from execution import PersistenceFailure

    try:
        desk.shutdown(timeout)
    except PersistenceFailure as exc:
        raise click.ClickException(str(exc)) from None


@contextmanager
def _desk_session(cfg) -> Iterator:
    """Desk for one command. TradingError becomes a clean CLI error; state is saved on the way out."""
    from execution import TradingError

    desk = _build_desk(cfg)
    try:
        yield desk
    except TradingError as exc:
        raise click.ClickException(str(exc)) from None
    finally:
        if desk.unsaved_changes:
            click.echo("WARNING: changes are not saved yet; retrying on exit.", err=True)
        _shutdown(desk)


def _open_desk(ctx: click.Context):
    return _desk_session(_load(ctx))


# ---------- cash ----------


@cli.command()
@click.argument("amount")
@click.pass_context
def fund(ctx: click.Context, amount: str) -> None:
    """Deposit AMOUNT of cash."""
    with _open_desk(ctx) as desk:
        balance = desk.deposit(amount)
        click.echo(f"Deposited {amount}. Cash: ${balance:,.2f}")


@cli.command()
@click.argument("amount")
@click.pass_context
def withdraw(ctx: click.Context, amount: str) -> None:
    """Withdraw AMOUNT of cash (never below zero)."""
    with _open_desk(ctx) as desk:
        balance = desk.withdraw(amount)
        click.echo(f"Withdrew {amount}. Cash: ${balance:,.2f}")


@cli.command()
@click.pass_context
def balance(ctx: click.Context) -> None:
    """Show cash, cost basis and open order count."""
    from cli.output import format_account

    with _open_desk(ctx) as desk:
        click.echo(format_account(desk.get_cash_balance(), desk.get_holdings(), len(desk.get_open_orders())))


# ---------- market data ----------


@cli.command()
@click.argument("symbols", nargs=-1, required=True)
@click.pass_context
def price(ctx: click.Context, symbols: tuple[str, ...]) -> None:
    """Latest price for one or more SYMBOLS."""
    from execution import QuoteUnavailable

    with _open_desk(ctx) as desk:
        for sym, quote in desk.get_prices(symbols).items():
            if isinstance(quote, QuoteUnavailable):
                click.echo(f"{sym}: unavailable ({quote.reason.value})")
            else:
                click.echo(f"{sym}: {quote:.2f}")


# ---------- market orders ----------


@cli.command()
@click.argument("symbol")
@click.argument("quantity")
@click.pass_context
def buy(ctx: click.Context, symbol: str, quantity: str) -> None:
    """Market buy QUANTITY of SYMBOL at the current quote."""
    from cli.output import format_trade

    with _open_desk(ctx) as desk:
        trade = desk.execute_market(symbol, "BUY", quantity)
        click.echo(f"Filled: {format_trade(trade)}")


@cli.command()
@click.argument("symbol")
@click.argument("quantity")
@click.pass_context
def sell(ctx: click.Context, symbol: str, quantity: str) -> None:
    """Market sell QUANTITY of SYMBOL at the current quote."""
    from cli.output import format_trade

    with _open_desk(ctx) as desk:
        trade = desk.execute_market(symbol, "SELL", quantity)
        click.echo(f"Filled: {format_trade(trade)}")


# ---------- resting orders ----------


@cli.command()
@click.argument("order_type", type=click.Choice(["limit-buy", "limit-sell", "stop-loss", "take-profit"], case_sensitive=False))
@click.argument("symbol")
@click.argument("quantity")
@click.argument("trigger_price")
@click.pass_context
def order(ctx: click.Context, order_type: str, symbol: str, quantity: str, trigger_price: str) -> None:
    """Place a resting ORDER_TYPE order for QUANTITY of SYMBOL at TRIGGER_PRICE.

    limit-buy and stop-loss fire when the price falls to the trigger;
    limit-sell and take-profit fire when it rises to the trigger.
    Fills happen at the price observed by the order monitor.
    """
    with _open_desk(ctx) as desk:
        order_id = desk.place_order(order_type, symbol, quantity, trigger_price)
        click.echo(f"Placed {order_type} {quantity} {symbol.upper()} @ {trigger_price}")
        click.echo(f"Order id: {order_id}")


@cli.command()
@click.argument("order_id")
@click.pass_context
def cancel(ctx: click.Context, order_id: str) -> None:
    """Cancel the resting order ORDER_ID."""
    with _open_desk(ctx) as desk:
        cancelled = desk.cancel_order(order_id)
        click.echo(f"Cancelled {cancelled.order_type.value} {cancelled.symbol} ({order_id})")


@cli.command()
@click.option("--symbol", default=None, help="Only orders for this symbol.")
@click.pass_context
def orders(ctx: click.Context, symbol: str | None) -> None:
    """List resting orders, oldest first."""
    from cli.output import format_orders

    with _open_desk(ctx) as desk:
        click.echo(format_orders(desk.get_open_orders(symbol)))


# ---------- portfolio ----------


@cli.command()
@click.pass_context
def holdings(ctx: click.Context) -> None:
    """Show holdings with quantity and average cost."""
    from cli.output import format_holdings

    with _open_desk(ctx) as desk:
        click.echo(format_holdings(desk.get_holdings()))


@cli.command()
@click.option("--symbol", default=None, help="Only trades for this symbol.")
@click.option("--limit", default=None, type=int, help="Show only the most recent N trades.")
@click.pass_context
def history(ctx: click.Context, symbol: str | None, limit: int | None) -> None:
    """Show trade history, oldest first."""
    from cli.output import format_trades

    with _open_desk(ctx) as desk:
        click.echo(format_trades(desk.get_trade_history(symbol, limit)))


@cli.command()
@click.pass_context
def pnl(ctx: click.Context) -> None:
    """Unrealized P&L at current quotes, plus realized P&L from trade history."""
    from cli.output import format_pnl

    with _open_desk(ctx) as desk:
        click.echo(format_pnl(desk.unrealized_pnl(), desk.realized_pnl()))


# ---------- watchlist ----------


@cli.command()
@click.argument("symbol", required=False)
@click.pass_context
def watch(ctx: click.Context, symbol: str | None) -> None:
    """Add SYMBOL to the watchlist, or show the watchlist with prices."""
    from cli.output import format_watchlist

    with _open_desk(ctx) as desk:
        if symbol:
            click.echo("Watching: " + ", ".join(desk.watch(symbol)))
            return
        symbols = desk.watchlist()
        click.echo(format_watchlist(symbols, desk.get_prices(symbols) if symbols else {}))


@cli.command()
@click.argument("symbol")
@click.pass_context
def unwatch(ctx: click.Context, symbol: str) -> None:
    """Remove SYMBOL from the watchlist."""
    with _open_desk(ctx) as desk:
        remaining = desk.unwatch(symbol)
        click.echo("Watching: " + (", ".join(remaining) if remaining else "(nothing)"))


@cli.command()
@click.option("--yes", is_flag=True, default=False, help="Skip the confirmation prompt.")
@click.pass_context
def reset(ctx: click.Context, yes: bool) -> None:
    """Wipe holdings, orders, watchlist and trade history; restore initial cash."""
    if not yes:
        click.confirm("Wipe all holdings, orders and trade history?", abort=True)
    with _open_desk(ctx) as desk:
        desk.reset()
        click.echo(f"Portfolio reset. Cash: ${desk.get_cash_balance():,.2f}")


# ---------- order monitor ----------


@cli.command()
@click.option("--once", is_flag=True, default=False, help="Evaluate resting orders once and exit.")
@click.option("--interval", default=None, type=float, help="Override monitor.interval_seconds.")
@click.pass_context
def monitor(ctx: click.Context, once: bool, interval: float | None) -> None:
    """Run the order monitor in the foreground until Ctrl+C."""
    from dataclasses import replace

    from cli.output import format_tick

    cfg = _load(ctx)
    if interval is not None:
        cfg = replace(cfg, monitor=replace(cfg.monitor, interval_seconds=interval))

    if once:
        with _desk_session(cfg) as desk:
            click.echo(format_tick(desk.monitor.tick()))
        return

    desk = _build_desk(cfg)
    click.echo(f"Order monitor running every {cfg.monitor.interval_seconds:.1f}s  |  Ctrl+C to stop\n")
    desk.start_monitor()
    try:
        while desk.monitor.running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        click.echo("\nStopping order monitor ...")
    _shutdown(desk)
    click.echo(f"Stopped after {desk.monitor.ticks} tick(s).")


# ---------- interactive shell ----------


@cli.command()
@click.option("--no-monitor", is_flag=True, default=False, help="Do not start the background order monitor.")
@click.pass_context
def shell(ctx: click.Context, no_monitor: bool) -> None:
    """Interactive session; resting orders fill in the background while you type."""
    from cli.shell import ShellSession

    cfg = _load(ctx)
    desk = _build_desk(cfg)
    session = ShellSession(desk, confirm=lambda prompt: click.confirm(prompt, default=False))
    if cfg.monitor.autostart and not no_monitor:
        desk.start_monitor()
    click.echo("paper-desk shell. Type 'help' for commands, 'exit' to quit.")
    try:
        while not session.finished:
            try:
                line = click.prompt("paper", prompt_suffix="> ", default="", show_default=False)
            except click.Abort:
                click.echo("")
                break
            text = session.execute(line)
            if text:
                click.echo(text)
    finally:
        _shutdown(desk)


# ---------- health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, state store, quote source, journal path.

    Exit code 0 = healthy, 1 = unhealthy. Designed for Docker HEALTHCHECK.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded (quotes={cfg.quotes.source})"))
    except Exception as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        from data import StateStore

        snap = StateStore(cfg.storage.state_path).load()
        if snap is None:
            checks.append(("state", True, f"empty store at {cfg.storage.state_path}"))
        else:
            checks.append(
                ("state", True, f"cash {snap.account.cash_balance}, {len(snap.holdings)} holdings, {len(snap.open_orders)} open orders")
            )
    except Exception as e:
        checks.append(("state", False, str(e)))

    try:
        from data import build_quote_source

        source = build_quote_source(cfg.quotes)
        checks.append(("quotes", True, type(source).__name__))
    except Exception as e:
        checks.append(("quotes", False, str(e)))

    try:
        from journal import JournalWriter

        writer = JournalWriter(cfg.journal.path)
        checks.append(("journal", True, str(writer.path)))
    except Exception as e:
        checks.append(("journal", False, str(e)))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()

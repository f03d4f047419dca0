"""
Simulated execution: ledger, order book, execution engine, order monitor.
Single account, paper only. No live capital.
"""

from execution.desk import TradingDesk
from execution.engine import EvaluationResult, ExecutionEngine
from execution.errors import (
    InsufficientFunds,
    InsufficientPosition,
    InvalidOrderParameters,
    OrderNotFound,
    PersistenceFailure,
    QuoteFailure,
    QuoteUnavailable,
    TradingError,
)
from execution.guard import PortfolioState, StateGuard
from execution.ledger import Ledger, PnLReport
from execution.models import Account, Holding, OpenOrder, OrderType, Side, Trade
from execution.monitor import OrderMonitor, TickReport
from execution.order_book import OrderBook, is_triggered

__all__ = [
    "Account",
    "EvaluationResult",
    "ExecutionEngine",
    "Holding",
    "InsufficientFunds",
    "InsufficientPosition",
    "InvalidOrderParameters",
    "Ledger",
    "OpenOrder",
    "OrderBook",
    "OrderMonitor",
    "OrderNotFound",
    "OrderType",
    "PersistenceFailure",
    "PnLReport",
    "PortfolioState",
    "QuoteFailure",
    "QuoteUnavailable",
    "Side",
    "StateGuard",
    "TickReport",
    "Trade",
    "TradingDesk",
    "TradingError",
    "is_triggered",
]

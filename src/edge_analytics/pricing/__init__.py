"""Mark-to-market for open trades.

PriceStore             Owned ``trade_id -> price`` map with priority gating
PriceSource            Capability interface of a price upstream
LivePriceReconciler    Timer-driven source cascade with cancellation
mark_open_trades       Apply reconciled prices to open trades
"""

from .marks import current_price_for, mark_open_trades, unrealized_pnl
from .reconciler import LivePriceReconciler, SourceHealth
from .sources import (
    LiveAgentSource,
    MarketDataSource,
    MarketSimulator,
    PriceSource,
    ReconcileContext,
    SimulatedMarketSource,
    best_pair_price,
    match_positions,
)
from .store import PriceQuote, PriceStore

__all__ = [
    "PriceQuote",
    "PriceStore",
    "PriceSource",
    "ReconcileContext",
    "MarketSimulator",
    "SimulatedMarketSource",
    "LiveAgentSource",
    "MarketDataSource",
    "best_pair_price",
    "match_positions",
    "LivePriceReconciler",
    "SourceHealth",
    "mark_open_trades",
    "current_price_for",
    "unrealized_pnl",
]

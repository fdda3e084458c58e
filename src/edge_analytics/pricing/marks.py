"""Mark open trades to market from the reconciled price map."""

from __future__ import annotations

from collections.abc import Iterable

from edge_analytics.core.models import TradeRecord
from edge_analytics.journal.record import dedupe_trades

from .store import PriceStore


def current_price_for(trade: TradeRecord, store: PriceStore) -> float:
    """Reconciled price, else the trade's own last mark, else its entry price."""
    price = store.get(trade.id)
    if price is not None:
        return price
    if trade.current_price is not None and trade.current_price > 0:
        return trade.current_price
    return trade.entry_price


def mark_open_trades(
    trades: Iterable[TradeRecord], store: PriceStore
) -> list[TradeRecord]:
    """Re-mark every OPEN trade; closed and failed trades pass through.

    An unpriced open trade is marked at its entry price (zero unrealized
    P&L) rather than being dropped, so summaries never block on a missing
    price.
    """
    return [
        t.with_mark(current_price_for(t, store)) if t.is_open else t
        for t in dedupe_trades(trades)
    ]


def unrealized_pnl(trades: Iterable[TradeRecord], store: PriceStore) -> float:
    """Total unrealized dollar P&L across the open trades."""
    return sum(
        t.pnl_usd for t in mark_open_trades(trades, store) if t.is_open
    )

"""Selection helpers over batches of normalized trade records.

Every analytics entry point runs its input through :func:`dedupe_trades`
first: upstream refreshes may deliver the same trade twice (once from the
cached batch, once from the live sync), and the later copy is the truth.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from edge_analytics.core.enums import TradeStatus
from edge_analytics.core.models import TradeRecord


def coerce_trades(
    rows: Iterable[TradeRecord | Mapping[str, Any]],
) -> list[TradeRecord]:
    """Validate raw dict rows into :class:`TradeRecord` instances.

    Already-validated records pass through unchanged.
    """
    return [
        row if isinstance(row, TradeRecord) else TradeRecord.model_validate(row)
        for row in rows
    ]


def dedupe_trades(trades: Iterable[TradeRecord]) -> list[TradeRecord]:
    """Collapse duplicate ids, last write wins.

    Each id keeps the position of its first appearance so that the
    relative order of distinct trades is preserved.
    """
    by_id: dict[str, TradeRecord] = {}
    for trade in trades:
        by_id[trade.id] = trade
    return list(by_id.values())


def closed_trades(trades: Iterable[TradeRecord]) -> list[TradeRecord]:
    """Trades with status CLOSED."""
    return [t for t in trades if t.status == TradeStatus.CLOSED]


def open_trades(trades: Iterable[TradeRecord]) -> list[TradeRecord]:
    """Trades with status OPEN."""
    return [t for t in trades if t.status == TradeStatus.OPEN]


def chronological(trades: Iterable[TradeRecord]) -> list[TradeRecord]:
    """Sort ascending by exit time (else execution time).

    ``sorted`` is stable, so ties keep their input order.
    """
    return sorted(trades, key=lambda t: t.event_time)

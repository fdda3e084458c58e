"""Segment aggregation: group trades by a dimension, summarise each group.

Answers questions like "which agent has the best edge?", "which signal
types pay?" or "does a strength-5 signal really beat a strength-2 one on
risk:reward?".

Trades whose key is missing are grouped under :data:`UNKNOWN_KEY`
instead of being dropped, so the segments always partition the input.
Minimum-sample filtering is opt-in per call; dropped groups still count
in the ungrouped total reported by :func:`segment_report`.

Usage::

    segments = aggregate_by(trades, by_signal_type, min_samples=3)
    for seg in segments:
        print(seg.key, seg.summary.expectancy)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field, fields
from typing import Any

from edge_analytics.core.models import TradeRecord

from .record import dedupe_trades
from .statistics import Summary, compute_summary

logger = logging.getLogger(__name__)

UNKNOWN_KEY = "?"

KeyFn = Callable[[TradeRecord], Hashable]

_SUMMARY_METRICS = frozenset(
    f.name for f in fields(Summary)
)


# ---------------------------------------------------------------------------
# Key functions
# ---------------------------------------------------------------------------

def by_agent(trade: TradeRecord) -> Hashable:
    return trade.agent_id or UNKNOWN_KEY


def by_signal_type(trade: TradeRecord) -> Hashable:
    return trade.signal_type or UNKNOWN_KEY


def by_signal_strength(trade: TradeRecord) -> Hashable:
    return trade.signal_strength if trade.signal_strength is not None else UNKNOWN_KEY


def by_token(trade: TradeRecord) -> Hashable:
    return trade.token or UNKNOWN_KEY


def by_mode(trade: TradeRecord) -> Hashable:
    return trade.mode.value


def by_hour(trade: TradeRecord) -> Hashable:
    """UTC hour of day (0-23) of the trade's event time."""
    return trade.event_time.hour


def by_month(trade: TradeRecord) -> Hashable:
    """Calendar month of the trade's event time, ``YYYY-MM``."""
    return trade.event_time.strftime("%Y-%m")


KEY_FUNCTIONS: dict[str, KeyFn] = {
    "agent": by_agent,
    "signal_type": by_signal_type,
    "signal_strength": by_signal_strength,
    "token": by_token,
    "mode": by_mode,
    "hour": by_hour,
    "month": by_month,
}


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Segment:
    """A group of trades sharing a key, with its own summary."""

    key: Hashable
    summary: Summary

    def to_dict(self) -> dict[str, Any]:
        key = list(self.key) if isinstance(self.key, tuple) else self.key
        return {"key": key, **self.summary.to_dict()}


@dataclass(frozen=True)
class StrengthBucket:
    """Risk:reward profile of one signal-strength bucket."""

    strength: Hashable
    summary: Summary
    avg_win_pct: float
    avg_loss_pct: float
    rr: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "strength": self.strength,
            "trades": self.summary.n,
            "win_rate": self.summary.win_rate,
            "avg_win_pct": self.avg_win_pct,
            "avg_loss_pct": self.avg_loss_pct,
            "rr": self.rr,
            "expectancy": self.summary.expectancy,
        }


@dataclass(frozen=True)
class SegmentReport:
    """Segments plus the ungrouped total over the same input."""

    total: Summary
    segments: list[Segment] = field(default_factory=list)
    dropped_keys: list[Hashable] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def _key_order(key: Hashable) -> tuple:
    """Total order over mixed key types: numbers, then text, sentinel last."""
    if isinstance(key, tuple):
        return tuple(_key_order(k) for k in key)
    if key == UNKNOWN_KEY:
        return (2, "")
    if isinstance(key, (int, float)) and not isinstance(key, bool):
        return (0, key)
    return (1, str(key))


def _check_metric(sort_by: str) -> None:
    if sort_by not in _SUMMARY_METRICS:
        raise ValueError(
            f"Unknown sort metric {sort_by!r}. "
            f"Supported: {sorted(_SUMMARY_METRICS)}"
        )


def _sort_segments(
    segments: list[Segment], sort_by: str, descending: bool
) -> list[Segment]:
    sign = -1.0 if descending else 1.0
    return sorted(
        segments,
        key=lambda s: (sign * getattr(s.summary, sort_by), _key_order(s.key)),
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def group_trades(
    trades: Iterable[TradeRecord], key_fn: KeyFn
) -> dict[Hashable, list[TradeRecord]]:
    """Partition trades by ``key_fn``.  Empty keys map to :data:`UNKNOWN_KEY`."""
    groups: dict[Hashable, list[TradeRecord]] = {}
    for trade in trades:
        key = key_fn(trade)
        if key is None or key == "":
            key = UNKNOWN_KEY
        groups.setdefault(key, []).append(trade)
    return groups


def segment_report(
    trades: Iterable[TradeRecord],
    key_fn: KeyFn,
    *,
    min_samples: int = 1,
    sort_by: str = "expectancy",
    descending: bool = True,
) -> SegmentReport:
    """Group, summarise and sort; keep the ungrouped total alongside."""
    _check_metric(sort_by)
    batch = dedupe_trades(trades)

    segments: list[Segment] = []
    dropped: list[Hashable] = []
    for key, members in group_trades(batch, key_fn).items():
        if len(members) < min_samples:
            dropped.append(key)
            continue
        segments.append(Segment(key=key, summary=compute_summary(members)))

    if dropped:
        logger.debug(
            "Dropped %d segments below min_samples=%d", len(dropped), min_samples
        )

    return SegmentReport(
        total=compute_summary(batch),
        segments=_sort_segments(segments, sort_by, descending),
        dropped_keys=sorted(dropped, key=_key_order),
    )


def aggregate_by(
    trades: Iterable[TradeRecord],
    key_fn: KeyFn,
    *,
    min_samples: int = 1,
    sort_by: str = "expectancy",
    descending: bool = True,
) -> list[Segment]:
    """Summarise trades per ``key_fn`` group.

    Groups smaller than ``min_samples`` are omitted.  Segments are
    ordered by ``sort_by`` (a :class:`Summary` field name), ties broken
    by ascending key.
    """
    return segment_report(
        trades,
        key_fn,
        min_samples=min_samples,
        sort_by=sort_by,
        descending=descending,
    ).segments


def cross_tabulate(
    trades: Iterable[TradeRecord],
    row_fn: KeyFn,
    col_fn: KeyFn,
    *,
    min_samples: int = 3,
    sort_by: str = "avg_return",
    descending: bool = True,
) -> list[Segment]:
    """Two-dimensional breakdown keyed by ``(row, col)`` tuples.

    Single-trade cells are noise, hence the higher default threshold.
    """

    def pair(trade: TradeRecord) -> Hashable:
        row = row_fn(trade)
        col = col_fn(trade)
        return (
            UNKNOWN_KEY if row in (None, "") else row,
            UNKNOWN_KEY if col in (None, "") else col,
        )

    return aggregate_by(
        trades, pair, min_samples=min_samples, sort_by=sort_by, descending=descending
    )


def aggregate_by_signal_strength(
    trades: Iterable[TradeRecord],
    *,
    min_samples: int = 1,
) -> list[StrengthBucket]:
    """Per-strength risk:reward profile, ordered by ascending strength."""
    segments = aggregate_by(trades, by_signal_strength, min_samples=min_samples)
    buckets = [
        StrengthBucket(
            strength=seg.key,
            summary=seg.summary,
            avg_win_pct=seg.summary.avg_win_pct,
            avg_loss_pct=seg.summary.avg_loss_pct,
            rr=seg.summary.rr,
        )
        for seg in segments
    ]
    return sorted(buckets, key=lambda b: _key_order(b.strength))


def rank_agents(
    trades: Iterable[TradeRecord],
    *,
    min_samples: int = 1,
) -> list[Segment]:
    """Agent leaderboard, best edge score first."""
    return aggregate_by(
        trades, by_agent, min_samples=min_samples, sort_by="edge_score"
    )

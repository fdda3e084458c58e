"""Statistics engine: one trade set in, one :class:`Summary` out.

Pure and deterministic.  Every ratio has an explicit zero fallback so
the result never contains ``NaN`` or ``inf`` for finite input, and an
empty input yields the all-zero summary.

Sign conventions
----------------
* A trade is a win when ``pnl_usd > 0`` and a loss when ``pnl_usd < 0``.
  Break-even trades are in neither set but still count towards ``n``,
  which lowers every rate-based metric.
* ``win_rate`` is reported in percent (0-100).  ``expectancy`` weights
  the average win/loss *percentages* by the win rate as a fraction
  (0-1); mixing the two scales gives values 100x too large.
* ``edge_score`` is dampened linearly until :data:`EDGE_CONFIDENCE_TRADES`
  trades have been observed.

Example::

    summary = compute_summary(trades)
    print(summary.win_rate, summary.expectancy, summary.edge_score)
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from typing import Any

from edge_analytics.core.models import TradeRecord

from .record import dedupe_trades

# Sample size at which the edge score is no longer dampened.
EDGE_CONFIDENCE_TRADES = 20

# Floor applied to the profit factor before taking log10.
_PROFIT_FACTOR_FLOOR = 0.01


@dataclass(frozen=True)
class Summary:
    """Performance summary for a set of trades.  Recomputed, never mutated."""

    # Counts
    n: int = 0
    wins: int = 0
    losses: int = 0
    breakeven: int = 0

    # Rates
    win_rate: float = 0.0  # percent

    # Magnitudes
    avg_win_pct: float = 0.0
    avg_loss_pct: float = 0.0  # negative or zero
    avg_win_usd: float = 0.0
    avg_loss_usd: float = 0.0  # negative or zero
    gross_win: float = 0.0
    gross_loss: float = 0.0  # absolute value
    largest_win: float = 0.0
    largest_loss: float = 0.0

    # Composites
    profit_factor: float = 0.0
    expectancy: float = 0.0  # percent per trade
    rr: float = 0.0
    edge_score: float = 0.0

    # Totals
    total_pnl: float = 0.0
    avg_return: float = 0.0  # percent per trade
    avg_return_usd: float = 0.0
    avg_hold_seconds: float = 0.0

    @property
    def win_fraction(self) -> float:
        return self.win_rate / 100.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


EMPTY_SUMMARY = Summary()


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _finite(value: float) -> float:
    # Ratios of extreme magnitudes can overflow.
    return value if math.isfinite(value) else 0.0


def profit_factor(gross_win: float, gross_loss: float) -> float:
    """``gross_win / gross_loss``, or 0 when there were no losses."""
    return _finite(gross_win / gross_loss) if gross_loss > 0 else 0.0


def risk_reward(avg_win_pct: float, avg_loss_pct: float) -> float:
    """``|avg_win_pct / avg_loss_pct|``, or 0 without losses."""
    return _finite(abs(avg_win_pct / avg_loss_pct)) if avg_loss_pct != 0 else 0.0


def expectancy(win_fraction: float, avg_win_pct: float, avg_loss_pct: float) -> float:
    """Probability-weighted percentage return per trade."""
    return win_fraction * avg_win_pct + (1.0 - win_fraction) * avg_loss_pct


def edge_score(expectancy_pct: float, pf: float, n: int) -> float:
    """Expectancy scaled by profit-factor quality and sample confidence."""
    quality = 1.0 + math.log10(max(pf, _PROFIT_FACTOR_FLOOR))
    confidence = min(n / EDGE_CONFIDENCE_TRADES, 1.0)
    return expectancy_pct * quality * confidence


def compute_summary(trades: Iterable[TradeRecord]) -> Summary:
    """Compute the performance summary of ``trades``.

    The input is de-duplicated by id (last write wins) before any
    counting.  No status filtering is applied: callers pass closed trades
    for realized statistics, or mark-to-market open trades as well for
    an unrealized view.
    """
    batch = dedupe_trades(trades)
    n = len(batch)
    if n == 0:
        return EMPTY_SUMMARY

    wins = [t for t in batch if t.pnl_usd > 0]
    losses = [t for t in batch if t.pnl_usd < 0]

    win_fraction = len(wins) / n
    avg_win_pct = _mean([t.pnl_percent for t in wins])
    avg_loss_pct = _mean([t.pnl_percent for t in losses])
    gross_win = sum(t.pnl_usd for t in wins)
    gross_loss = abs(sum(t.pnl_usd for t in losses))

    pf = profit_factor(gross_win, gross_loss)
    exp = expectancy(win_fraction, avg_win_pct, avg_loss_pct)
    total_pnl = sum(t.pnl_usd for t in batch)

    holds = [h for h in (t.hold_seconds for t in batch) if h is not None]

    return Summary(
        n=n,
        wins=len(wins),
        losses=len(losses),
        breakeven=n - len(wins) - len(losses),
        win_rate=win_fraction * 100.0,
        avg_win_pct=avg_win_pct,
        avg_loss_pct=avg_loss_pct,
        avg_win_usd=_mean([t.pnl_usd for t in wins]),
        avg_loss_usd=_mean([t.pnl_usd for t in losses]),
        gross_win=gross_win,
        gross_loss=gross_loss,
        largest_win=max((t.pnl_usd for t in wins), default=0.0),
        largest_loss=min((t.pnl_usd for t in losses), default=0.0),
        profit_factor=pf,
        expectancy=exp,
        rr=risk_reward(avg_win_pct, avg_loss_pct),
        edge_score=edge_score(exp, pf, n),
        total_pnl=total_pnl,
        avg_return=sum(t.pnl_percent for t in batch) / n,
        avg_return_usd=total_pnl / n,
        avg_hold_seconds=_mean(holds),
    )

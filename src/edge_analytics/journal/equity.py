"""Equity curves, drawdown, streaks and risk-adjusted return ratios.

Turns a trade stream into cumulative-balance series and the risk
metrics derived from them.  All functions are pure and re-derivable
from the current trade set.

Ordering: trades are sorted ascending by exit time (falling back to the
execution timestamp) with a stable sort, so simultaneous trades keep
their input order.

Example::

    curve = build_equity_curve(trades, baseline=1_000.0)
    dd = compute_drawdown(curve, baseline=1_000.0)
    print(dd.max_drawdown, dd.max_drawdown_percent)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

import numpy as np

from edge_analytics.core.models import TradeRecord

from .record import chronological, closed_trades, dedupe_trades

logger = logging.getLogger(__name__)

_FLAT_TOLERANCE = 1e-12


@dataclass(frozen=True)
class EquityPoint:
    """Cumulative balance after one trade."""

    sequence_index: int
    cumulative_pnl: float
    trade_id: str = ""
    agent_id: str = ""
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat() if self.timestamp else None
        return d


@dataclass(frozen=True)
class DailyEquity:
    """End-of-day balance for one calendar day (UTC)."""

    day: date
    balance: float
    pnl: float
    trades: int


@dataclass(frozen=True)
class Drawdown:
    """Largest peak-to-trough decline of a curve."""

    max_drawdown: float = 0.0
    max_drawdown_percent: float = 0.0  # relative to the peak it fell from
    peak: float = 0.0
    trough: float = 0.0


@dataclass(frozen=True)
class Streaks:
    """Win/loss runs.  Positive = consecutive wins, negative = losses."""

    current: int = 0
    best: int = 0
    worst: int = 0


@dataclass(frozen=True)
class EquityReport:
    """Curve plus every metric derived from it."""

    curve: list[EquityPoint] = field(default_factory=list)
    drawdown: Drawdown = field(default_factory=Drawdown)
    streaks: Streaks = field(default_factory=Streaks)
    sharpe: float = 0.0
    sortino: float = 0.0
    calmar: float = 0.0
    final_balance: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "curve": [p.to_dict() for p in self.curve],
            "drawdown": asdict(self.drawdown),
            "streaks": asdict(self.streaks),
            "sharpe": self.sharpe,
            "sortino": self.sortino,
            "calmar": self.calmar,
            "final_balance": self.final_balance,
        }


# ---------------------------------------------------------------------------
# Curves
# ---------------------------------------------------------------------------

def _prepare(trades: Iterable[TradeRecord], closed_only: bool) -> list[TradeRecord]:
    batch = dedupe_trades(trades)
    if closed_only:
        batch = closed_trades(batch)
    return chronological(batch)


def build_equity_curve(
    trades: Iterable[TradeRecord],
    *,
    baseline: float = 0.0,
    closed_only: bool = True,
) -> list[EquityPoint]:
    """One point per trade, accumulating ``pnl_usd`` on top of ``baseline``."""
    balance = baseline
    curve: list[EquityPoint] = []
    for index, trade in enumerate(_prepare(trades, closed_only)):
        balance += trade.pnl_usd
        curve.append(
            EquityPoint(
                sequence_index=index,
                cumulative_pnl=balance,
                trade_id=trade.id,
                agent_id=trade.agent_id,
                timestamp=trade.event_time,
            )
        )
    return curve


def build_agent_curves(
    trades: Iterable[TradeRecord],
    agent_ids: Iterable[str],
    *,
    baseline: float = 0.0,
    closed_only: bool = True,
) -> dict[str, list[EquityPoint]]:
    """Independent running totals per agent.

    Only agents listed in ``agent_ids`` get a curve; trades from any other
    agent are skipped rather than pooled.
    """
    curves: dict[str, list[EquityPoint]] = {aid: [] for aid in agent_ids}
    balances: dict[str, float] = {aid: baseline for aid in curves}
    skipped = 0

    for trade in _prepare(trades, closed_only):
        curve = curves.get(trade.agent_id)
        if curve is None:
            skipped += 1
            continue
        balances[trade.agent_id] += trade.pnl_usd
        curve.append(
            EquityPoint(
                sequence_index=len(curve),
                cumulative_pnl=balances[trade.agent_id],
                trade_id=trade.id,
                agent_id=trade.agent_id,
                timestamp=trade.event_time,
            )
        )

    if skipped:
        logger.debug("Skipped %d trades from agents outside the view", skipped)
    return curves


def daily_equity(
    trades: Iterable[TradeRecord],
    *,
    baseline: float = 0.0,
) -> list[DailyEquity]:
    """Collapse the closed-trade curve to one point per UTC calendar day."""
    days: dict[date, list[TradeRecord]] = {}
    for trade in _prepare(trades, closed_only=True):
        days.setdefault(trade.event_time.date(), []).append(trade)

    balance = baseline
    out: list[DailyEquity] = []
    for day in sorted(days):
        day_pnl = sum(t.pnl_usd for t in days[day])
        balance += day_pnl
        out.append(
            DailyEquity(day=day, balance=balance, pnl=day_pnl, trades=len(days[day]))
        )
    return out


# ---------------------------------------------------------------------------
# Risk metrics
# ---------------------------------------------------------------------------

def compute_drawdown(
    curve: Sequence[EquityPoint],
    *,
    baseline: float | None = None,
) -> Drawdown:
    """Maximum peak-to-trough decline of ``curve``.

    ``max_drawdown_percent`` is the largest dollar drop expressed against
    the peak it fell from, so the same dollar loss weighs less after the
    curve has grown.  When ``baseline`` is given it seeds the running
    peak, so a losing first trade already counts as a drawdown.
    """
    if not curve:
        return Drawdown()

    peak = baseline if baseline is not None else curve[0].cumulative_pnl
    best = Drawdown()
    for point in curve:
        value = point.cumulative_pnl
        if value > peak:
            peak = value
        dd = peak - value
        if dd > best.max_drawdown:
            pct = dd / peak * 100.0 if peak > 0 else 0.0
            best = Drawdown(
                max_drawdown=dd, max_drawdown_percent=pct, peak=peak, trough=value
            )
    return best


def compute_streaks(trades: Iterable[TradeRecord]) -> Streaks:
    """Consecutive win/loss runs over closed trades in time order.

    Break-even trades neither extend nor reset the running streak.
    """
    run = 0
    best = 0
    worst = 0
    for trade in _prepare(trades, closed_only=True):
        if trade.pnl_usd > 0:
            run = run + 1 if run > 0 else 1
        elif trade.pnl_usd < 0:
            run = run - 1 if run < 0 else -1
        else:
            continue
        best = max(best, run)
        worst = min(worst, run)
    return Streaks(current=run, best=best, worst=worst)


def _flat(values: np.ndarray) -> bool:
    # Identical inputs can still leave a rounding-sized std (e.g. 0.1 * 3).
    spread = float(np.ptp(values))
    scale = max(1.0, float(np.max(np.abs(values))))
    return spread <= _FLAT_TOLERANCE * scale


def sharpe_ratio(
    returns: Sequence[float],
    *,
    risk_free_rate: float = 0.0,
) -> float:
    """Mean excess period return over its sample standard deviation.

    Returns 0.0 for fewer than two observations or zero variance.
    """
    if len(returns) < 2:
        return 0.0
    excess = np.asarray(returns, dtype=float) - risk_free_rate
    if _flat(excess):
        return 0.0
    std = float(np.std(excess, ddof=1))
    if not np.isfinite(std) or std == 0.0:
        return 0.0
    return _finite(float(np.mean(excess)) / std)


def sortino_ratio(
    returns: Sequence[float],
    *,
    risk_free_rate: float = 0.0,
) -> float:
    """Mean excess return over the downside deviation.

    The downside deviation is the root mean square of the negative excess
    returns taken over all observations.  With no downside there is
    nothing to divide by and the ratio is 0.0, never infinity.
    """
    if len(returns) < 2:
        return 0.0
    excess = np.asarray(returns, dtype=float) - risk_free_rate
    downside = np.minimum(excess, 0.0)
    if not np.any(downside < 0):
        return 0.0
    deviation = float(np.sqrt(np.mean(downside**2)))
    if not np.isfinite(deviation) or deviation <= _FLAT_TOLERANCE:
        return 0.0
    return _finite(float(np.mean(excess)) / deviation)


def calmar_ratio(total_return: float, max_drawdown: float) -> float:
    """Total dollar return per dollar of maximum drawdown.

    0.0 when the curve never drew down.
    """
    if max_drawdown <= 0:
        return 0.0
    return _finite(total_return / max_drawdown)


def _finite(value: float) -> float:
    return value if np.isfinite(value) else 0.0


def equity_report(
    trades: Iterable[TradeRecord],
    *,
    baseline: float = 0.0,
    risk_free_rate: float = 0.0,
) -> EquityReport:
    """Curve, drawdown, streaks and per-trade risk ratios in one pass."""
    batch = _prepare(trades, closed_only=True)
    curve = build_equity_curve(batch, baseline=baseline)
    drawdown = compute_drawdown(curve, baseline=baseline)
    returns = [t.pnl_percent for t in batch]
    final_balance = curve[-1].cumulative_pnl if curve else baseline
    return EquityReport(
        curve=curve,
        drawdown=drawdown,
        streaks=compute_streaks(batch),
        sharpe=sharpe_ratio(returns, risk_free_rate=risk_free_rate),
        sortino=sortino_ratio(returns, risk_free_rate=risk_free_rate),
        calmar=calmar_ratio(final_balance - baseline, drawdown.max_drawdown),
        final_balance=final_balance,
    )

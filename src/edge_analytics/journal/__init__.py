"""Trade journal analytics.

Key components
--------------
compute_summary       Win rate, expectancy, profit factor, edge score
aggregate_by          Per-agent / per-signal segment summaries
cross_tabulate        Two-dimensional segment breakdown
build_equity_curve    Cumulative balance series
compute_drawdown      Peak-relative maximum drawdown
compute_streaks       Consecutive win / loss runs
sharpe_ratio          Mean over standard deviation of period returns
sortino_ratio         Mean over downside deviation of period returns
calmar_ratio          Total return per unit of maximum drawdown
"""

from .equity import (
    DailyEquity,
    Drawdown,
    EquityPoint,
    EquityReport,
    Streaks,
    build_agent_curves,
    build_equity_curve,
    calmar_ratio,
    compute_drawdown,
    compute_streaks,
    daily_equity,
    equity_report,
    sharpe_ratio,
    sortino_ratio,
)
from .record import chronological, closed_trades, coerce_trades, dedupe_trades, open_trades
from .segments import (
    KEY_FUNCTIONS,
    UNKNOWN_KEY,
    Segment,
    SegmentReport,
    StrengthBucket,
    aggregate_by,
    aggregate_by_signal_strength,
    by_agent,
    by_signal_strength,
    by_signal_type,
    cross_tabulate,
    rank_agents,
    segment_report,
)
from .statistics import EMPTY_SUMMARY, Summary, compute_summary

__all__ = [
    "Summary",
    "EMPTY_SUMMARY",
    "compute_summary",
    "Segment",
    "SegmentReport",
    "StrengthBucket",
    "UNKNOWN_KEY",
    "KEY_FUNCTIONS",
    "aggregate_by",
    "aggregate_by_signal_strength",
    "cross_tabulate",
    "segment_report",
    "rank_agents",
    "by_agent",
    "by_signal_type",
    "by_signal_strength",
    "EquityPoint",
    "DailyEquity",
    "Drawdown",
    "Streaks",
    "EquityReport",
    "build_equity_curve",
    "build_agent_curves",
    "daily_equity",
    "compute_drawdown",
    "compute_streaks",
    "sharpe_ratio",
    "sortino_ratio",
    "calmar_ratio",
    "equity_report",
    "coerce_trades",
    "dedupe_trades",
    "closed_trades",
    "open_trades",
    "chronological",
]

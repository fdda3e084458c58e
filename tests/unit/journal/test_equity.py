"""Tests for equity curves, drawdown, streaks and return ratios."""

from datetime import date, timedelta

import pytest

from edge_analytics.core.enums import TradeStatus
from edge_analytics.journal.equity import (
    Drawdown,
    EquityPoint,
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


def _curve(*values: float) -> list[EquityPoint]:
    return [EquityPoint(sequence_index=i, cumulative_pnl=v) for i, v in enumerate(values)]


class TestBuildEquityCurve:
    def test_one_point_per_closed_trade(self, make_trade, make_open_trade):
        trades = [make_trade(10), make_open_trade(), make_trade(-4), make_trade(6)]
        curve = build_equity_curve(trades)

        assert len(curve) == 3
        assert [p.cumulative_pnl for p in curve] == [10, 6, 12]
        assert [p.sequence_index for p in curve] == [0, 1, 2]

    def test_failed_trades_excluded(self, make_trade):
        curve = build_equity_curve([make_trade(5), make_trade(7, status=TradeStatus.FAILED)])
        assert len(curve) == 1

    def test_include_open_when_asked(self, make_trade, make_open_trade):
        curve = build_equity_curve([make_trade(10), make_open_trade()], closed_only=False)
        assert len(curve) == 2

    def test_baseline_offsets_every_point(self, make_trade):
        curve = build_equity_curve([make_trade(10), make_trade(-5)], baseline=1000)
        assert [p.cumulative_pnl for p in curve] == [1010, 1005]

    def test_sorted_by_exit_time(self, make_trade, base_time):
        late = make_trade(1, id="late", exit_time=base_time + timedelta(hours=2))
        early = make_trade(2, id="early", exit_time=base_time + timedelta(hours=1))
        curve = build_equity_curve([late, early])
        assert [p.trade_id for p in curve] == ["early", "late"]

    def test_simultaneous_trades_keep_input_order(self, make_trade):
        trades = [make_trade(1, id=f"x{i}", minutes=0) for i in range(5)]
        curve = build_equity_curve(trades)
        assert [p.trade_id for p in curve] == ["x0", "x1", "x2", "x3", "x4"]

    def test_empty(self):
        assert build_equity_curve([]) == []

    def test_point_to_dict(self, make_trade, base_time):
        point = build_equity_curve([make_trade(3, id="a")])[0]
        d = point.to_dict()
        assert d["trade_id"] == "a"
        assert d["timestamp"] == base_time.isoformat()


class TestAgentCurves:
    def test_independent_running_totals(self, make_trade):
        trades = [
            make_trade(10, agent_id="alpha"),
            make_trade(5, agent_id="beta"),
            make_trade(-3, agent_id="alpha"),
        ]
        curves = build_agent_curves(trades, ["alpha", "beta"])

        assert [p.cumulative_pnl for p in curves["alpha"]] == [10, 7]
        assert [p.cumulative_pnl for p in curves["beta"]] == [5]
        assert curves["beta"][0].sequence_index == 0

    def test_unknown_agent_skipped(self, make_trade):
        trades = [make_trade(10, agent_id="alpha"), make_trade(99, agent_id="ghost")]
        curves = build_agent_curves(trades, ["alpha"])
        assert set(curves) == {"alpha"}
        assert curves["alpha"][-1].cumulative_pnl == 10

    def test_listed_agent_without_trades_has_empty_curve(self, make_trade):
        curves = build_agent_curves([make_trade(1, agent_id="alpha")], ["alpha", "idle"])
        assert curves["idle"] == []


class TestDrawdown:
    def test_non_decreasing_curve_has_none(self):
        assert compute_drawdown(_curve(0, 5, 5, 12)) == Drawdown()

    def test_empty_curve(self):
        assert compute_drawdown([]) == Drawdown()

    def test_peak_to_trough(self):
        dd = compute_drawdown(_curve(100, 150, 120, 90, 160))
        assert dd.max_drawdown == pytest.approx(60.0)
        assert dd.peak == 150
        assert dd.trough == 90
        assert dd.max_drawdown_percent == pytest.approx(40.0)

    def test_percent_is_relative_to_the_peak_of_the_largest_drop(self):
        # 50 off a 100 peak, then 60 off a 400 peak
        dd = compute_drawdown(_curve(100, 50, 400, 340))
        assert dd.max_drawdown == pytest.approx(60.0)
        assert dd.max_drawdown_percent == pytest.approx(15.0)

    def test_baseline_seeds_peak(self):
        assert compute_drawdown(_curve(80, 90)) == Drawdown()
        dd = compute_drawdown(_curve(80, 90), baseline=100.0)
        assert dd.max_drawdown == pytest.approx(20.0)
        assert dd.max_drawdown_percent == pytest.approx(20.0)

    def test_non_positive_peak_gives_zero_percent(self):
        dd = compute_drawdown(_curve(0, -25))
        assert dd.max_drawdown == pytest.approx(25.0)
        assert dd.max_drawdown_percent == 0.0


class TestStreaks:
    def test_runs(self, make_trade):
        pnls = [5, 5, 5, -1, -1, 2, -3, -3, -3, -3, 4]
        streaks = compute_streaks([make_trade(p) for p in pnls])
        assert streaks.best == 3
        assert streaks.worst == -4
        assert streaks.current == 1

    def test_breakeven_does_not_break_a_run(self, make_trade):
        streaks = compute_streaks([make_trade(p) for p in (3, 0, 3, 0, 3)])
        assert streaks.best == 3
        assert streaks.current == 3

    def test_open_trades_ignored(self, make_trade, make_open_trade):
        streaks = compute_streaks([make_trade(-1), make_open_trade(), make_trade(-1)])
        assert streaks.current == -2

    def test_empty(self):
        streaks = compute_streaks([])
        assert (streaks.current, streaks.best, streaks.worst) == (0, 0, 0)


class TestSharpe:
    def test_too_few_points(self):
        assert sharpe_ratio([]) == 0.0
        assert sharpe_ratio([3.0]) == 0.0

    def test_zero_variance(self):
        assert sharpe_ratio([2.0, 2.0, 2.0]) == 0.0

    def test_sample_std(self):
        # mean 2, sample std 1
        assert sharpe_ratio([1.0, 2.0, 3.0]) == pytest.approx(2.0)

    def test_risk_free_rate_subtracted(self):
        assert sharpe_ratio([1.0, 2.0, 3.0], risk_free_rate=1.0) == pytest.approx(1.0)

    @pytest.mark.parametrize("value", [0.1, 0.7, 3.3, -1.1])
    def test_constant_inexact_returns_are_zero(self, value):
        # np.std of three 0.1s is not exactly 0
        assert sharpe_ratio([value] * 3) == 0.0
        assert sharpe_ratio([value] * 3, risk_free_rate=0.03) == 0.0

    def test_tiny_real_spread_still_scores(self):
        assert sharpe_ratio([0.1, 0.1, 0.1001]) > 0


class TestSortino:
    def test_too_few_points(self):
        assert sortino_ratio([]) == 0.0
        assert sortino_ratio([-2.0]) == 0.0

    def test_no_downside_is_zero(self):
        assert sortino_ratio([1.0, 2.0, 3.0]) == 0.0

    def test_downside_deviation_over_all_returns(self):
        # mean 1, downside sqrt(1/3)
        assert sortino_ratio([2.0, -1.0, 2.0]) == pytest.approx(3 ** 0.5)

    def test_risk_free_rate_moves_the_target(self):
        # excess [1, -1, 0]: mean 0
        assert sortino_ratio([2.0, 0.0, 1.0], risk_free_rate=1.0) == 0.0
        assert sortino_ratio([2.0, 0.0, 1.0]) == 0.0

    def test_losing_set_is_negative(self):
        assert sortino_ratio([-1.0, -3.0]) < 0


class TestCalmar:
    def test_return_over_drawdown(self):
        assert calmar_ratio(60.0, 30.0) == pytest.approx(2.0)
        assert calmar_ratio(-15.0, 30.0) == pytest.approx(-0.5)

    def test_no_drawdown_is_zero(self):
        assert calmar_ratio(100.0, 0.0) == 0.0
        assert calmar_ratio(-5.0, 0.0) == 0.0


class TestDailyEquity:
    def test_groups_by_utc_day(self, make_trade, base_time):
        trades = [
            make_trade(10),
            make_trade(-4),
            make_trade(7, exit_time=base_time + timedelta(days=1)),
        ]
        days = daily_equity(trades, baseline=100)

        assert [d.day for d in days] == [date(2024, 1, 1), date(2024, 1, 2)]
        assert [d.balance for d in days] == [106, 113]
        assert [d.pnl for d in days] == [6, 7]
        assert [d.trades for d in days] == [2, 1]


class TestEquityReport:
    def test_combines_metrics(self, make_trade):
        trades = [make_trade(10, 1), make_trade(-30, -3), make_trade(5, 2)]
        report = equity_report(trades, baseline=100)

        assert len(report.curve) == 3
        assert report.final_balance == pytest.approx(85.0)
        assert report.drawdown.max_drawdown == pytest.approx(30.0)
        assert report.streaks.current == 1
        assert report.sharpe == pytest.approx(sharpe_ratio([1.0, -3.0, 2.0]))
        assert report.sortino == pytest.approx(sortino_ratio([1.0, -3.0, 2.0]))
        # -15 total against a 30 drawdown
        assert report.calmar == pytest.approx(-0.5)

    def test_identical_returns_give_zero_ratios(self, make_trade):
        report = equity_report([make_trade(1, 0.1) for _ in range(3)], baseline=100)
        assert report.sharpe == 0.0
        assert report.sortino == 0.0
        assert report.calmar == 0.0

    def test_empty_report_keeps_baseline(self):
        report = equity_report([], baseline=50)
        assert report.final_balance == 50
        assert report.to_dict()["curve"] == []

    def test_to_dict_carries_every_ratio(self, make_trade):
        d = equity_report([make_trade(5, 1), make_trade(-2, -1)]).to_dict()
        assert {"sharpe", "sortino", "calmar"} <= d.keys()

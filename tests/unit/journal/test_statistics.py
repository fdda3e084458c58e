"""Tests for compute_summary and its ratio helpers."""

import math

import pytest

from edge_analytics.journal.statistics import (
    EDGE_CONFIDENCE_TRADES,
    EMPTY_SUMMARY,
    Summary,
    compute_summary,
    edge_score,
    expectancy,
    profit_factor,
    risk_reward,
)


def _assert_all_finite(summary: Summary) -> None:
    for name, value in summary.to_dict().items():
        assert math.isfinite(value), f"{name} is {value}"


class TestEmptyInput:
    def test_empty_returns_zero_summary(self):
        summary = compute_summary([])
        assert summary == EMPTY_SUMMARY
        assert all(v == 0 for v in summary.to_dict().values())

    def test_empty_generator(self):
        assert compute_summary(iter(())) == EMPTY_SUMMARY


class TestScenarios:
    def test_one_win_one_loss(self, make_trade):
        summary = compute_summary([make_trade(100, 20), make_trade(-50, -10)])

        assert summary.n == 2
        assert summary.wins == 1
        assert summary.losses == 1
        assert summary.win_rate == pytest.approx(50.0)
        assert summary.avg_win_usd == pytest.approx(100.0)
        assert summary.avg_loss_usd == pytest.approx(-50.0)
        assert summary.gross_win == pytest.approx(100.0)
        assert summary.gross_loss == pytest.approx(50.0)
        assert summary.profit_factor == pytest.approx(2.0)
        assert summary.avg_win_pct == pytest.approx(20.0)
        assert summary.avg_loss_pct == pytest.approx(-10.0)
        assert summary.rr == pytest.approx(2.0)
        assert summary.expectancy == pytest.approx(5.0)
        assert summary.total_pnl == pytest.approx(50.0)
        assert summary.avg_return == pytest.approx(5.0)
        assert summary.avg_return_usd == pytest.approx(25.0)

    def test_all_losing(self, make_trade):
        summary = compute_summary([make_trade(-10, -5), make_trade(-20, -8)])

        assert summary.win_rate == 0.0
        assert summary.profit_factor == 0.0
        assert summary.avg_loss_pct == pytest.approx(-6.5)
        assert summary.expectancy == pytest.approx(-6.5)
        assert summary.rr == 0.0
        _assert_all_finite(summary)

    def test_all_winning_has_no_infinite_profit_factor(self, make_trade):
        summary = compute_summary([make_trade(10, 5), make_trade(30, 15)])

        assert summary.win_rate == pytest.approx(100.0)
        assert summary.gross_loss == 0.0
        assert summary.profit_factor == 0.0
        assert summary.rr == 0.0
        assert summary.expectancy == pytest.approx(10.0)
        _assert_all_finite(summary)

    def test_all_breakeven(self, make_trade):
        summary = compute_summary([make_trade(0, 0) for _ in range(4)])

        assert summary.n == 4
        assert summary.wins == 0
        assert summary.losses == 0
        assert summary.breakeven == 4
        assert summary.expectancy == 0.0
        _assert_all_finite(summary)


class TestBreakevenCounting:
    """Break-even trades count towards n and dilute every rate."""

    def test_breakeven_in_denominator(self, make_trade):
        summary = compute_summary(
            [make_trade(100, 20), make_trade(-50, -10), make_trade(0, 0), make_trade(0, 0)]
        )
        assert summary.n == 4
        assert summary.wins + summary.losses == 2
        assert summary.win_rate == pytest.approx(25.0)
        # 0.25 * 20 + 0.75 * -10
        assert summary.expectancy == pytest.approx(-2.5)
        assert summary.avg_return_usd == pytest.approx(12.5)

    def test_breakeven_with_nonzero_percent_is_not_a_win(self, make_trade):
        summary = compute_summary([make_trade(0, 3.0)])
        assert summary.wins == 0
        assert summary.breakeven == 1
        assert summary.avg_return == pytest.approx(3.0)


class TestEdgeScore:
    def test_dampened_below_confidence_sample(self, make_trade):
        trades = [make_trade(100, 20), make_trade(-50, -10)]
        summary = compute_summary(trades)
        undampened = 5.0 * (1 + math.log10(2.0))
        assert summary.edge_score == pytest.approx(undampened * 2 / EDGE_CONFIDENCE_TRADES)

    def test_full_weight_at_confidence_sample(self, make_trade):
        trades = []
        for _ in range(EDGE_CONFIDENCE_TRADES // 2):
            trades += [make_trade(100, 20), make_trade(-50, -10)]
        summary = compute_summary(trades)
        assert summary.n == EDGE_CONFIDENCE_TRADES
        assert summary.edge_score == pytest.approx(5.0 * (1 + math.log10(2.0)))

    def test_zero_profit_factor_is_floored(self):
        # log10(0.01) == -2, so quality == -1
        assert edge_score(4.0, 0.0, 40) == pytest.approx(-4.0)

    def test_helpers_guard_division(self):
        assert profit_factor(10.0, 0.0) == 0.0
        assert risk_reward(10.0, 0.0) == 0.0
        assert expectancy(0.0, 0.0, -3.0) == -3.0


class TestDedupeAndIdempotence:
    def test_duplicate_ids_last_write_wins(self, make_trade):
        first = make_trade(-40, -8, id="dup")
        second = make_trade(60, 12, id="dup")
        summary = compute_summary([first, make_trade(10, 2), second])
        assert summary.n == 2
        assert summary.losses == 0
        assert summary.total_pnl == pytest.approx(70.0)

    def test_repeated_calls_identical(self, make_trade):
        trades = [make_trade(12, 3), make_trade(-7, -2), make_trade(0, 0)]
        assert compute_summary(trades) == compute_summary(trades)

    def test_input_not_mutated(self, make_trade):
        trades = [make_trade(12, 3), make_trade(-7, -2)]
        snapshot = [t.model_dump() for t in trades]
        compute_summary(trades)
        assert [t.model_dump() for t in trades] == snapshot


class TestMagnitudes:
    def test_largest_win_and_loss(self, make_trade):
        summary = compute_summary(
            [make_trade(5, 1), make_trade(50, 10), make_trade(-3, -1), make_trade(-30, -6)]
        )
        assert summary.largest_win == pytest.approx(50.0)
        assert summary.largest_loss == pytest.approx(-30.0)

    def test_hold_time_only_counts_timed_trades(self, make_trade, base_time):
        from datetime import timedelta

        timed = make_trade(
            5, 1, entry_time=base_time, exit_time=base_time + timedelta(minutes=10)
        )
        untimed = make_trade(-5, -1)
        summary = compute_summary([timed, untimed])
        assert summary.avg_hold_seconds == pytest.approx(600.0)

    def test_missing_numerics_count_as_zero(self):
        from edge_analytics.core.models import TradeRecord

        trade = TradeRecord.model_validate(
            {"id": "x", "pnlUsd": None, "pnlPercent": "n/a", "status": "closed"}
        )
        summary = compute_summary([trade])
        assert summary.n == 1
        assert summary.breakeven == 1
        _assert_all_finite(summary)

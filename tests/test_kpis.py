"""Tests for the trade aggregator (analytics.kpis)."""

from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import make_trade
from tradeo.analytics.kpis import (
    GroupPerformance,
    SessionStats,
    TradeStats,
    apply_filters,
    best_group,
    compute_stats,
    filter_window,
    stats_frame,
    win_rate_pct,
)
from tradeo.domain.models import (
    SetupGrade,
    TimeWindow,
    TradeFilters,
    TradeResult,
    TradeSession,
)

TP = TradeResult.TAKE_PROFIT
SL = TradeResult.STOPPED_OUT
BE = TradeResult.BREAK_EVEN


# ═══════════════════════════════════════════════════════════════════════
# Win rate
# ═══════════════════════════════════════════════════════════════════════


class TestWinRate:
    def test_zero_total_is_zero(self):
        assert win_rate_pct(0, 0) == 0

    def test_one_of_three_rounds_down(self):
        assert win_rate_pct(1, 3) == 33

    def test_two_of_three_rounds_up(self):
        assert win_rate_pct(2, 3) == 67

    def test_half_rounds_up(self):
        # 1/8 = 12.5%
        assert win_rate_pct(1, 8) == 13

    def test_all_wins(self):
        assert win_rate_pct(5, 5) == 100

    def test_stats_win_rate_in_range(self, now):
        trades = [make_trade(result=r) for r in (TP, SL, SL, BE, TP, TP, TP)]
        stats = compute_stats(trades, now=now)
        assert 0 <= stats.win_rate <= 100
        assert stats.win_rate == 57


# ═══════════════════════════════════════════════════════════════════════
# Worked examples
# ═══════════════════════════════════════════════════════════════════════


class TestExamples:
    def test_three_results_example(self, now):
        trades = [
            make_trade(result=TP, profit_amount=100, open_time=now - timedelta(hours=3)),
            make_trade(result=SL, profit_amount=-40, open_time=now - timedelta(hours=2)),
            make_trade(result=BE, profit_amount=0, open_time=now - timedelta(hours=1)),
        ]
        stats = compute_stats(trades, now=now)

        assert stats.total_trades == 3
        assert stats.win_rate == 33
        assert stats.result_distribution == {TP: 1, SL: 1, BE: 1}
        assert stats.profit_over_time[-1].cumulative == pytest.approx(60.0)
        assert stats.total_profit == pytest.approx(60.0)

    def test_empty_collection(self, now):
        stats = compute_stats([], now=now)

        assert stats.total_trades == 0
        assert stats.win_rate == 0
        assert stats.best_instrument is None
        assert stats.best_timeframe is None
        assert stats.grade_distribution == {g: 0 for g in SetupGrade}
        assert stats.result_distribution == {r: 0 for r in TradeResult}
        assert all(s.total == 0 and s.win_rate is None for s in stats.session_performance.values())
        assert all(g.total == 0 for g in stats.grade_win_rates.values())
        assert stats.trades_over_time == []
        assert stats.profit_over_time == []
        assert stats.total_profit == 0.0
        assert stats.this_week_count == 0

    def test_default_stats_are_empty(self):
        stats = TradeStats()
        assert stats.total_trades == 0
        assert stats.total_profit == 0.0


# ═══════════════════════════════════════════════════════════════════════
# Grades
# ═══════════════════════════════════════════════════════════════════════


class TestGrades:
    def test_distribution_sums_to_graded_count(self, now):
        trades = [
            make_trade(setup_grade="A+"),
            make_trade(setup_grade="A"),
            make_trade(setup_grade="A"),
            make_trade(setup_grade=None),
            make_trade(setup_grade="C"),
        ]
        stats = compute_stats(trades, now=now)

        assert sum(stats.grade_distribution.values()) == 4
        assert stats.grade_distribution[SetupGrade.A] == 2
        assert stats.grade_distribution[SetupGrade.B] == 0

    def test_average_rebuckets_mean_score(self, now):
        grades = ["A+", "A+", "C"]
        stats = compute_stats([make_trade(setup_grade=g) for g in grades], now=now)

        assert stats.average_grade_score == pytest.approx(11 / 3)
        # 3.667 >= 3.5
        assert stats.average_grade == SetupGrade.A

    def test_average_on_threshold_takes_upper_grade(self, now):
        stats = compute_stats([make_trade(setup_grade="A"), make_trade(setup_grade="A-")], now=now)
        assert stats.average_grade_score == pytest.approx(3.5)
        assert stats.average_grade == SetupGrade.A

    def test_no_graded_trades_is_c(self, now):
        stats = compute_stats([make_trade(setup_grade=None)], now=now)
        assert stats.average_grade_score == 0.0
        assert stats.average_grade == SetupGrade.C

    def test_grade_win_rates(self, now):
        trades = [
            make_trade(setup_grade="A+", result=TP),
            make_trade(setup_grade="A+", result=TP),
            make_trade(setup_grade="A+", result=SL),
            make_trade(setup_grade="B", result=SL),
        ]
        rates = compute_stats(trades, now=now).grade_win_rates

        assert rates[SetupGrade.A_PLUS] == GroupPerformance(name="A+", wins=2, total=3)
        assert rates[SetupGrade.A_PLUS].win_rate == 67
        assert rates[SetupGrade.B].win_rate == 0
        assert rates[SetupGrade.A].total == 0


# ═══════════════════════════════════════════════════════════════════════
# Sessions / best groups
# ═══════════════════════════════════════════════════════════════════════


class TestGroups:
    def test_session_performance(self, now):
        trades = [
            make_trade(session="london", result=TP),
            make_trade(session="london", result=SL),
            make_trade(session="asia", result=TP),
            make_trade(session=None, result=TP),
        ]
        perf = compute_stats(trades, now=now).session_performance

        assert perf[TradeSession.LONDON] == SessionStats(wins=1, total=2)
        assert perf[TradeSession.LONDON].win_rate == 50
        assert perf[TradeSession.ASIA].win_rate == 100
        assert perf[TradeSession.NEW_YORK_AM].win_rate is None
        assert set(perf) == set(TradeSession)

    def test_best_instrument_highest_rate(self, now):
        trades = [
            make_trade(instrument="EURUSD", result=SL),
            make_trade(instrument="XAUUSD", result=TP),
            make_trade(instrument="EURUSD", result=TP),
        ]
        best = compute_stats(trades, now=now).best_instrument

        assert best.name == "XAUUSD"
        assert best.win_rate == 100

    def test_best_instrument_tie_goes_to_first_seen(self, now):
        trades = [
            make_trade(instrument="NAS100", result=TP),
            make_trade(instrument="EURUSD", result=TP),
            make_trade(instrument="NAS100", result=SL),
            make_trade(instrument="EURUSD", result=SL),
        ]
        assert compute_stats(trades, now=now).best_instrument.name == "NAS100"
        assert compute_stats(list(reversed(trades)), now=now).best_instrument.name == "EURUSD"

    def test_best_timeframe(self, now):
        trades = [
            make_trade(timeframe="1h", result=SL),
            make_trade(timeframe="4h", result=TP),
        ]
        best = compute_stats(trades, now=now).best_timeframe
        assert best.name == "4h"

    def test_best_group_with_no_wins_still_selected(self, now):
        best = compute_stats([make_trade(instrument="US30", result=SL)], now=now).best_instrument
        assert best == GroupPerformance(name="US30", wins=0, total=1)

    def test_best_group_skips_empty_groups(self):
        groups = [GroupPerformance("EMPTY", 0, 0), GroupPerformance("GBPUSD", 0, 2)]
        assert best_group(groups).name == "GBPUSD"

    def test_best_group_none(self):
        assert best_group([]) is None
        assert best_group([GroupPerformance("EMPTY", 0, 0)]) is None


# ═══════════════════════════════════════════════════════════════════════
# Filters / windows
# ═══════════════════════════════════════════════════════════════════════


class TestFilters:
    def test_empty_filters_keep_everything(self):
        trades = [make_trade(), make_trade()]
        assert apply_filters(trades, TradeFilters()) == trades
        assert apply_filters(trades, None) == trades

    def test_filters_combine(self):
        keep = make_trade(result=TP, setup_grade="A", session="asia", instrument="XAUUSD")
        trades = [
            keep,
            make_trade(result=SL, setup_grade="A", session="asia", instrument="XAUUSD"),
            make_trade(result=TP, setup_grade="B", session="asia", instrument="XAUUSD"),
            make_trade(result=TP, setup_grade="A", session="london", instrument="XAUUSD"),
            make_trade(result=TP, setup_grade="A", session="asia", instrument="EURUSD"),
        ]
        filters = TradeFilters(result=TP, setup_grade="A", session="asia", instrument="xau")
        assert apply_filters(trades, filters) == [keep]

    def test_instrument_is_case_insensitive_substring(self):
        trades = [make_trade(instrument="EURUSD"), make_trade(instrument="GBPUSD"), make_trade(instrument="XAUUSD")]
        out = apply_filters(trades, TradeFilters(instrument="usd"))
        assert len(out) == 3
        out = apply_filters(trades, TradeFilters(instrument="Eur"))
        assert [t.instrument for t in out] == ["EURUSD"]

    def test_filtered_stats_match_filtered_collection(self, now):
        trades = [make_trade(result=TP), make_trade(result=SL), make_trade(result=SL)]
        stats = compute_stats(trades, now=now, filters=TradeFilters(result=SL))
        assert stats.total_trades == 2
        assert stats.win_rate == 0

    @pytest.mark.parametrize(
        "window,expected",
        [
            (TimeWindow.WEEK, 1),
            (TimeWindow.MONTH, 2),
            (TimeWindow.YEAR, 3),
            (TimeWindow.ALL, 4),
        ],
    )
    def test_window_lower_bound(self, now, window, expected):
        trades = [
            make_trade(open_time=now - timedelta(days=2)),
            make_trade(open_time=now - timedelta(days=20)),
            make_trade(open_time=now - timedelta(days=200)),
            make_trade(open_time=now - timedelta(days=800)),
        ]
        assert len(filter_window(trades, window, now)) == expected
        assert compute_stats(trades, now=now, window=window).total_trades == expected

    def test_window_has_no_upper_bound(self, now):
        future = make_trade(open_time=now + timedelta(days=1))
        assert filter_window([future], TimeWindow.WEEK, now) == [future]

    def test_window_accepts_naive_now(self, now):
        trades = [make_trade(open_time=now - timedelta(days=1))]
        assert len(filter_window(trades, TimeWindow.WEEK, now.replace(tzinfo=None))) == 1

    def test_this_week_counts_open_time(self, now):
        trades = [
            make_trade(open_time=now - timedelta(days=1), created_at=now - timedelta(days=30)),
            make_trade(open_time=now - timedelta(days=10), created_at=now),
        ]
        assert compute_stats(trades, now=now).this_week_count == 1


# ═══════════════════════════════════════════════════════════════════════
# Time series
# ═══════════════════════════════════════════════════════════════════════


class TestSeries:
    def test_trades_over_time_sorted_by_day(self, now):
        trades = [
            make_trade(open_time=now),
            make_trade(open_time=now - timedelta(days=2)),
            make_trade(open_time=now - timedelta(days=2, hours=1)),
        ]
        series = compute_stats(trades, now=now).trades_over_time

        assert [(p.day, p.count) for p in series] == [(date(2024, 6, 13), 2), (date(2024, 6, 15), 1)]

    def test_day_bucket_uses_timezone(self, now):
        # 02:00 UTC del 15 es el 14 en Nueva York
        late = datetime(2024, 6, 15, 2, 0, tzinfo=timezone.utc)
        trades = [make_trade(open_time=late)]

        utc = compute_stats(trades, now=now, tz="UTC").trades_over_time
        ny = compute_stats(trades, now=now, tz="America/New_York").trades_over_time
        assert utc[0].day == date(2024, 6, 15)
        assert ny[0].day == date(2024, 6, 14)

    def test_unknown_timezone_falls_back_to_utc(self, now):
        late = datetime(2024, 6, 15, 2, 0, tzinfo=timezone.utc)
        stats = compute_stats([make_trade(open_time=late)], now=now, tz="Mars/Olympus")

        assert stats.total_trades == 1
        assert stats.trades_over_time[0].day == date(2024, 6, 15)

    def test_zone_outside_curated_list_is_honoured(self, now):
        late = datetime(2024, 6, 15, 2, 0, tzinfo=timezone.utc)
        stats = compute_stats([make_trade(open_time=late)], now=now, tz="America/Halifax")
        assert stats.trades_over_time[0].day == date(2024, 6, 14)

    def test_profit_over_time_accumulates(self, now):
        trades = [
            make_trade(result=TP, profit_amount=50, open_time=now - timedelta(days=1, hours=2)),
            make_trade(result=SL, profit_amount=-20, open_time=now - timedelta(days=1)),
            make_trade(result=TP, profit_amount=None, open_time=now - timedelta(hours=5)),
            make_trade(result=TP, profit_amount=10, open_time=now),
        ]
        series = compute_stats(trades, now=now).profit_over_time

        assert [(p.day, p.profit, p.cumulative) for p in series] == [
            (date(2024, 6, 14), 30.0, 30.0),
            (date(2024, 6, 15), 10.0, 40.0),
        ]

    def test_cumulative_non_decreasing_with_positive_profits(self, now):
        trades = [
            make_trade(result=TP, profit_amount=amount, open_time=now - timedelta(days=d))
            for d, amount in [(5, 10), (3, 0), (2, 25), (1, 5)]
        ]
        series = compute_stats(trades, now=now).profit_over_time
        cumulative = [p.cumulative for p in series]

        assert cumulative == sorted(cumulative)
        assert cumulative[-1] == pytest.approx(40.0)

    def test_no_profits_no_curve(self, now):
        assert compute_stats([make_trade(profit_amount=None)], now=now).profit_over_time == []


class TestStatsFrame:
    def test_columns_and_order(self):
        trades = [make_trade(instrument="B"), make_trade(instrument="A")]
        df = stats_frame(trades)
        assert list(df["instrument"]) == ["B", "A"]
        assert str(df["open_time"].dt.tz) == "UTC"

    def test_empty_frame_has_columns(self):
        df = stats_frame([])
        assert df.empty
        assert "profit_amount" in df.columns

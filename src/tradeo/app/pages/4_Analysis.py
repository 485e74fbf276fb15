from __future__ import annotations

import pandas as pd
import streamlit as st

from tradeo.analytics import charts
from tradeo.analytics.kpis import compute_stats
from tradeo.app.utils import fmt_money, load_trades, now_utc, require_user, user_timezone
from tradeo.domain.models import SESSION_LABELS, SetupGrade, TimeWindow

st.set_page_config(page_title="Analysis", page_icon="📈", layout="wide")
st.title("📈 Analysis")
st.caption("Deep dive into your trading performance")

user, profile = require_user()
tz = user_timezone(profile)

WINDOW_LABELS = {
    TimeWindow.WEEK: "Last 7 days",
    TimeWindow.MONTH: "Last 30 days",
    TimeWindow.YEAR: "Last 365 days",
    TimeWindow.ALL: "All time",
}

window = st.radio(
    "Period",
    options=list(TimeWindow),
    index=list(TimeWindow).index(TimeWindow.ALL),
    format_func=lambda w: WINDOW_LABELS[w],
    horizontal=True,
)

trades = load_trades(user["id"])
stats = compute_stats(trades, now=now_utc(), window=window, tz=tz)


# ----------------------------
# KPIs
# ----------------------------
a1, a2, a3, a4, a5 = st.columns(5)
a1.metric("Trades", stats.total_trades)
a2.metric("Win rate", f"{stats.win_rate}%")
a3.metric(
    "Average grade",
    stats.average_grade.value if stats.total_trades else "—",
    f"{stats.average_grade_score:.2f} / 5" if stats.total_trades else None,
    delta_color="off",
)
a4.metric("This week", f"{stats.this_week_count} trades")
a5.metric("P&L", fmt_money(stats.total_profit))

if stats.total_trades == 0:
    st.info("No trades in this period.")
    st.stop()


# ----------------------------
# Insights
# ----------------------------
st.subheader("💡 Insights")
i1, i2, i3 = st.columns(3)
with i1:
    best = stats.best_instrument
    st.metric("Best instrument", best.name if best else "N/A", f"{best.win_rate}% win rate" if best else None)
with i2:
    best = stats.best_timeframe
    st.metric("Best timeframe", best.name if best else "N/A", f"{best.win_rate}% win rate" if best else None)
with i3:
    a_plus = stats.grade_win_rates[SetupGrade.A_PLUS]
    b = stats.grade_win_rates[SetupGrade.B]
    st.metric("A+ vs B win rate", f"{a_plus.win_rate}% vs {b.win_rate}%")

if a_plus.total and b.total and a_plus.win_rate > b.win_rate:
    st.success(
        f"Your A+ setups win {a_plus.win_rate - b.win_rate} points more often than B setups. "
        "Stay selective."
    )


# ----------------------------
# Grades / sessions
# ----------------------------
g1, g2 = st.columns(2)
with g1:
    st.markdown("### Win rate by grade")
    grade_table = pd.DataFrame(
        [
            {"grade": g.value, "trades": perf.total, "wins": perf.wins, "win_rate_%": perf.win_rate}
            for g, perf in stats.grade_win_rates.items()
        ]
    )
    st.dataframe(grade_table, use_container_width=True, hide_index=True)
    fig = charts.grade_distribution(stats)
    if fig is not None:
        st.plotly_chart(fig, use_container_width=True)

with g2:
    st.markdown("### Sessions")
    session_table = pd.DataFrame(
        [
            {
                "session": SESSION_LABELS[s],
                "trades": perf.total,
                "wins": perf.wins,
                "win_rate_%": perf.win_rate if perf.win_rate is not None else "—",
            }
            for s, perf in stats.session_performance.items()
        ]
    )
    st.dataframe(session_table, use_container_width=True, hide_index=True)
    fig = charts.session_performance(stats)
    if fig is not None:
        st.plotly_chart(fig, use_container_width=True)


# ----------------------------
# Series
# ----------------------------
st.subheader("📉 Over time")
s1, s2 = st.columns(2)
with s1:
    fig = charts.trades_over_time(stats)
    if fig is None:
        st.info("No trades in this period.")
    else:
        st.plotly_chart(fig, use_container_width=True)
with s2:
    fig = charts.equity_curve(stats)
    if fig is None:
        st.info("No trades with a P&L amount in this period.")
    else:
        st.plotly_chart(fig, use_container_width=True)

fig = charts.result_distribution(stats)
if fig is not None:
    st.plotly_chart(fig, use_container_width=True)

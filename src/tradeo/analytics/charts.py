from __future__ import annotations

import pandas as pd
import plotly.express as px

from tradeo.analytics.kpis import TradeStats
from tradeo.domain.models import RESULT_LABELS, SESSION_LABELS

_LAYOUT = dict(height=320, margin=dict(l=10, r=10, t=50, b=10))

RESULT_COLORS = {
    "Take Profit": "#10b981",
    "Stopped Out": "#ef4444",
    "Break Even": "#9ca3af",
}


def grade_distribution(stats: TradeStats):
    df = pd.DataFrame(
        [{"grade": g.value, "trades": n} for g, n in stats.grade_distribution.items()]
    )
    if df.empty or df["trades"].sum() == 0:
        return None
    fig = px.bar(df, x="grade", y="trades", title="Grade distribution")
    fig.update_layout(**_LAYOUT)
    return fig


def result_distribution(stats: TradeStats):
    df = pd.DataFrame(
        [{"result": RESULT_LABELS[r], "trades": n} for r, n in stats.result_distribution.items()]
    )
    if df.empty or df["trades"].sum() == 0:
        return None
    fig = px.pie(
        df,
        names="result",
        values="trades",
        hole=0.5,
        title="Results",
        color="result",
        color_discrete_map=RESULT_COLORS,
    )
    fig.update_layout(**_LAYOUT)
    return fig


def session_performance(stats: TradeStats):
    rows = [
        {
            "session": SESSION_LABELS[s],
            "win_rate": perf.win_rate,
            "trades": perf.total,
        }
        for s, perf in stats.session_performance.items()
        if perf.total > 0
    ]
    if not rows:
        return None
    df = pd.DataFrame(rows)
    fig = px.bar(df, x="session", y="win_rate", hover_data=["trades"], title="Win rate by session (%)")
    fig.update_layout(yaxis_range=[0, 100], **_LAYOUT)
    return fig


def trades_over_time(stats: TradeStats):
    if not stats.trades_over_time:
        return None
    df = pd.DataFrame([{"day": d.day, "trades": d.count} for d in stats.trades_over_time])
    fig = px.bar(df, x="day", y="trades", title="Trades per day")
    fig.update_layout(**_LAYOUT)
    return fig


def equity_curve(stats: TradeStats):
    if not stats.profit_over_time:
        return None
    df = pd.DataFrame(
        [{"day": d.day, "daily": d.profit, "cum_pnl": d.cumulative} for d in stats.profit_over_time]
    )
    fig = px.line(df, x="day", y="cum_pnl", markers=True, hover_data=["daily"], title="Cumulative P&L")
    fig.update_layout(**_LAYOUT)
    return fig

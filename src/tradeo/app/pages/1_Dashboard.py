from __future__ import annotations

import streamlit as st

from tradeo.analytics import charts
from tradeo.analytics.kpis import compute_stats
from tradeo.app.utils import fmt_local, fmt_money, load_trades, now_utc, require_user, user_timezone
from tradeo.domain.models import RESULT_LABELS, SESSION_LABELS

st.set_page_config(page_title="Dashboard", page_icon="📊", layout="wide")
st.title("📊 Dashboard")
st.caption("Track your mechanical trading journey")

user, profile = require_user()
tz = user_timezone(profile)

trades = load_trades(user["id"])
stats = compute_stats(trades, now=now_utc(), tz=tz)


# ----------------------------
# KPIs
# ----------------------------
k1, k2, k3, k4, k5 = st.columns(5)
k1.metric("Total trades", stats.total_trades)
k2.metric("Win rate", f"{stats.win_rate}%")
k3.metric("Average grade", stats.average_grade.value if stats.total_trades else "—")
k4.metric("This week", stats.this_week_count)
k5.metric("P&L", fmt_money(stats.total_profit))


# ----------------------------
# Charts
# ----------------------------
c1, c2, c3 = st.columns(3)
for col, fig, empty_msg in (
    (c1, charts.grade_distribution(stats), "No graded trades yet."),
    (c2, charts.result_distribution(stats), "No trades yet."),
    (c3, charts.session_performance(stats), "No session data yet."),
):
    with col:
        if fig is None:
            st.info(empty_msg)
        else:
            st.plotly_chart(fig, use_container_width=True)


# ----------------------------
# Recent trades
# ----------------------------
st.divider()
st.subheader("🧾 Recent trades")

recent = trades[:6]
if not recent:
    st.info("No trades yet. Start logging your trades to see them here!")
    st.page_link("pages/3_New_Trade.py", label="Log your first trade", icon="➕")
else:
    cols = st.columns(3)
    for i, t in enumerate(recent):
        with cols[i % 3]:
            with st.container(border=True):
                if t.image_url:
                    st.image(t.image_url, use_container_width=True)
                st.markdown(f"**{t.instrument}** · {t.timeframe.value}")
                st.caption(
                    f"{RESULT_LABELS[t.result]} · grade {t.setup_grade.value if t.setup_grade else '—'}"
                    f" · {SESSION_LABELS[t.session] if t.session else 'no session'}"
                )
                st.caption(f"{fmt_local(t.open_time, tz)} · {fmt_money(t.profit_amount)}")
    st.page_link("pages/2_Journal.py", label="View all", icon="📒")

from __future__ import annotations

import pandas as pd
import streamlit as st

from tradeo.analytics.kpis import apply_filters, compute_stats
from tradeo.app.utils import (
    fmt_local,
    fmt_money,
    get_services,
    invalidate_trades,
    load_trades,
    now_utc,
    require_user,
    show_error,
    user_timezone,
)
from tradeo.domain.errors import TradeoError
from tradeo.domain.models import (
    RESULT_LABELS,
    SESSION_LABELS,
    SetupGrade,
    TradeFilters,
    TradeResult,
    TradeSession,
)

st.set_page_config(page_title="Journal", page_icon="📒", layout="wide")
st.title("📒 Journal")

user, profile = require_user()
tz = user_timezone(profile)
svc = get_services()

all_trades = load_trades(user["id"])
instruments = sorted({t.instrument for t in all_trades})


# ----------------------------
# Filtros (parámetros explícitos, nada global)
# ----------------------------
with st.sidebar:
    st.markdown("### Filters")
    result = st.selectbox(
        "Result",
        options=[None] + list(TradeResult),
        format_func=lambda r: "All results" if r is None else RESULT_LABELS[r],
    )
    grade = st.selectbox(
        "Grade",
        options=[None] + list(SetupGrade),
        format_func=lambda g: "All grades" if g is None else g.value,
    )
    session = st.selectbox(
        "Session",
        options=[None] + list(TradeSession),
        format_func=lambda s: "All sessions" if s is None else SESSION_LABELS[s],
    )
    instrument = st.text_input("Instrument contains", help=", ".join(instruments[:10]))

filters = TradeFilters(result=result, setup_grade=grade, session=session, instrument=instrument or None)
trades = apply_filters(all_trades, filters)
stats = compute_stats(trades, now=now_utc(), tz=tz)

st.caption(f"Review and analyze your trading history ({len(trades)} trades)")
m1, m2, m3 = st.columns(3)
m1.metric("Trades", stats.total_trades)
m2.metric("Win rate", f"{stats.win_rate}%")
m3.metric("P&L", fmt_money(stats.total_profit))

if not trades:
    if filters.is_empty():
        st.info("No trades yet. Log your first trade from **New Trade**.")
    else:
        st.info("No trades match your filters. Try adjusting your filters to see more trades.")
    st.stop()


# ----------------------------
# Tabla
# ----------------------------
table = pd.DataFrame(
    [
        {
            "open_time": fmt_local(t.open_time, tz),
            "instrument": t.instrument,
            "timeframe": t.timeframe.value,
            "direction": t.direction.value if t.direction else "",
            "session": SESSION_LABELS[t.session] if t.session else "",
            "result": RESULT_LABELS[t.result],
            "grade": t.setup_grade.value if t.setup_grade else "",
            "profit": t.profit_amount,
        }
        for t in trades
    ]
)
st.dataframe(table, use_container_width=True, hide_index=True)


# ----------------------------
# Detalle
# ----------------------------
st.divider()
st.subheader("🔎 Trade detail")

selected = st.selectbox(
    "Trade",
    options=trades,
    format_func=lambda t: f"{fmt_local(t.open_time, tz)} · {t.instrument} · {RESULT_LABELS[t.result]}",
)

left, right = st.columns([3, 2])
with left:
    if selected.image_url:
        st.image(selected.image_url, use_container_width=True)
        if selected.overlay_entry_x is not None and selected.overlay_entry_y is not None:
            st.caption(
                f"AI entry point: x={selected.overlay_entry_x:.0f}% · y={selected.overlay_entry_y:.0f}%"
            )
    else:
        st.info("No screenshot for this trade.")

with right:
    st.markdown(f"### {selected.instrument} · {selected.timeframe.value}")
    st.write(f"**Result:** {RESULT_LABELS[selected.result]}")
    st.write(f"**P&L:** {fmt_money(selected.profit_amount)}")
    st.write(f"**Grade:** {selected.setup_grade.value if selected.setup_grade else '—'}")
    if selected.session:
        st.write(f"**Session:** {SESSION_LABELS[selected.session]}")
    if selected.direction:
        st.write(f"**Direction:** {selected.direction.value}")
    if selected.entry_price or selected.exit_price:
        st.write(f"**Entry / exit:** {selected.entry_price or '—'} / {selected.exit_price or '—'}")
    st.write(f"**Opened:** {fmt_local(selected.open_time, tz)}")
    st.write(f"**Closed:** {fmt_local(selected.close_time, tz)}")
    if selected.ai_reasoning:
        with st.expander(f"🤖 AI analysis ({selected.ai_confidence.value if selected.ai_confidence else '—'} confidence)"):
            st.write(selected.ai_reasoning)
    if selected.notes:
        st.markdown("**Notes**")
        st.write(selected.notes)

    confirm = st.checkbox("I want to delete this trade", key=f"confirm_{selected.id}")
    if st.button("🗑️ Delete trade", disabled=not confirm, type="primary"):
        try:
            svc.trade_service.delete_trade(user["id"], selected.id)
            invalidate_trades()
            st.success("Trade deleted")
            st.rerun()
        except TradeoError as e:
            show_error(e)

from __future__ import annotations

from datetime import datetime

import pytz
import streamlit as st

from tradeo.ai.gateway import analyze_chart
from tradeo.app.utils import (
    fmt_money,
    get_gateway,
    get_services,
    invalidate_trades,
    require_user,
    reset_uploader,
    show_error,
    uploader_key,
    user_timezone,
)
from tradeo.domain.errors import ExtractionError, TradeoError
from tradeo.domain.models import (
    RESULT_LABELS,
    SESSION_LABELS,
    Timeframe,
    TradeDirection,
    TradeResult,
    TradeSession,
)
from tradeo.imaging import normalize_image
from tradeo.services.trades import TradeForm

st.set_page_config(page_title="New Trade", page_icon="➕", layout="wide")
st.title("➕ New Trade")

user, profile = require_user()
tz_name = user_timezone(profile)
local_tz = pytz.timezone(tz_name)
svc = get_services()
gateway = get_gateway()

INSTRUMENTS = ["EURUSD", "GBPUSD", "USDJPY", "XAUUSD", "NAS100", "US30", "SPX500", "BTCUSD", "ETHUSD"]


def _reset_analysis():
    st.session_state.pop("analysis", None)
    st.session_state.pop("image", None)


# ---------------------------------------------------------
# Imagen + análisis (fuera del form)
# ---------------------------------------------------------
st.markdown("### 🖼️ Chart screenshot")

uploaded = st.file_uploader(
    "Upload a chart screenshot",
    type=["png", "jpg", "jpeg", "webp", "gif"],
    accept_multiple_files=False,
    on_change=_reset_analysis,
    key=uploader_key(st.session_state, "chart_upload"),
)

if uploaded is not None and "image" not in st.session_state:
    try:
        st.session_state["image"] = normalize_image(uploaded.getvalue(), uploaded.name)
    except TradeoError as e:
        show_error(e)

image = st.session_state.get("image")
if image is not None:
    c_img, c_ai = st.columns([3, 2])
    with c_img:
        st.image(image.payload, use_container_width=True)
        st.caption(
            f"{image.width}×{image.height} · {len(image.payload) / 1024:.0f} KB"
            + ("" if image.normalized else " · original file (compression failed)")
        )
    with c_ai:
        if gateway is None:
            st.info("AI analysis disabled: set OPENAI_API_KEY in .env")
        elif st.button("🤖 Analyze chart", type="primary"):
            with st.spinner("Analyzing..."):
                try:
                    st.session_state["analysis"] = analyze_chart(gateway, image.payload, image.mime_type)
                    st.success("Analysis complete!")
                except ExtractionError as e:
                    st.session_state.pop("analysis", None)
                    show_error(e)
                except TradeoError as e:
                    show_error(e)

        analysis = st.session_state.get("analysis")
        if analysis is not None:
            st.metric("Setup grade", analysis.setup_grade.value, f"{analysis.confidence:.0f}% confidence")
            st.write(f"**Bias:** {analysis.market_bias.value}")
            if analysis.confluence_factors:
                st.markdown("\n".join(f"- {f}" for f in analysis.confluence_factors))
            with st.expander("Reasoning"):
                st.write(analysis.reasoning)

analysis = st.session_state.get("analysis")


# ---------------------------------------------------------
# Formulario
# ---------------------------------------------------------
with st.form("new_trade", clear_on_submit=False):
    st.markdown("### 📊 Trade details")
    c1, c2, c3 = st.columns(3)
    with c1:
        instrument = st.text_input("Instrument *", value=INSTRUMENTS[0], max_chars=20, help=", ".join(INSTRUMENTS))
        timeframe = st.selectbox("Timeframe *", options=list(Timeframe), format_func=lambda t: t.value)
    with c2:
        default_dir = analysis.suggested_direction if analysis else TradeDirection.LONG
        direction = st.selectbox(
            "Direction",
            options=list(TradeDirection),
            index=list(TradeDirection).index(default_dir),
            format_func=lambda d: d.value.title(),
        )
        result = st.selectbox("Result *", options=list(TradeResult), format_func=lambda r: RESULT_LABELS[r])
    with c3:
        session = st.selectbox(
            "Session *",
            options=list(TradeSession),
            format_func=lambda s: SESSION_LABELS[s],
        )
        amount = st.number_input(
            "Profit / loss amount ($)",
            min_value=0.0,
            value=0.0,
            step=0.01,
            help="Always positive: saved as profit on take profit, as loss on stopped out, 0 on break even",
        )

    p1, p2 = st.columns(2)
    with p1:
        entry_price = st.number_input("Entry price", min_value=0.0, value=0.0, format="%.5f")
    with p2:
        exit_price = st.number_input("Exit price", min_value=0.0, value=0.0, format="%.5f")

    now_local = datetime.now(local_tz)
    t1, t2 = st.columns(2)
    with t1:
        open_date = st.date_input("Open date", value=now_local.date())
        open_clock = st.time_input("Open time", value=now_local.time().replace(second=0, microsecond=0))
    with t2:
        close_date = st.date_input("Close date", value=now_local.date())
        close_clock = st.time_input("Close time", value=now_local.time().replace(second=0, microsecond=0))

    notes = st.text_area("Notes (optional)", height=90, max_chars=5000)

    if analysis is None:
        st.caption("No AI analysis: the trade will be saved with grade C.")

    submitted = st.form_submit_button("Save trade")

if submitted:
    form = TradeForm(
        instrument=str(instrument or ""),
        timeframe=timeframe,
        result=result,
        session=session,
        direction=direction,
        open_time=local_tz.localize(datetime.combine(open_date, open_clock)),
        close_time=local_tz.localize(datetime.combine(close_date, close_clock)),
        amount=float(amount),
        entry_price=float(entry_price) or None,
        exit_price=float(exit_price) or None,
        notes=notes,
    )
    try:
        with st.spinner("Saving..."):
            trade = svc.trade_service.submit_trade(user["id"], form, image=image, analysis=analysis)
        invalidate_trades()
        _reset_analysis()
        reset_uploader(st.session_state, "chart_upload")
        st.success(f"Trade saved ✅ {trade.instrument} · {RESULT_LABELS[trade.result]} · {fmt_money(trade.profit_amount)}")
    except TradeoError as e:
        show_error(e)

from __future__ import annotations

import streamlit as st

from tradeo.app.utils import get_gateway, require_user, show_error
from tradeo.domain.errors import TradeoError
from tradeo.domain.models import ChatMessage

st.set_page_config(page_title="Chat", page_icon="💬", layout="wide")
st.title("💬 Tradeo")
st.caption("Your trading mentor. Ask about setups, execution or psychology.")

require_user()
gateway = get_gateway()
if gateway is None:
    st.info("Chat disabled: set OPENAI_API_KEY in .env")
    st.stop()

history = st.session_state.setdefault("chat_history", [])

with st.sidebar:
    if st.button("Clear conversation"):
        history.clear()
        st.rerun()

for msg in history:
    with st.chat_message(msg.role):
        st.markdown(msg.content)

prompt = st.chat_input("Ask Tradeo...")
if prompt:
    with st.chat_message("user"):
        st.markdown(prompt)
    with st.chat_message("assistant"):
        with st.spinner("Thinking..."):
            try:
                answer = gateway.converse(prompt, history)
            except TradeoError as e:
                show_error(e)
                answer = None
        if answer:
            st.markdown(answer)
    if answer:
        history.append(ChatMessage(role="user", content=prompt))
        history.append(ChatMessage(role="assistant", content=answer))

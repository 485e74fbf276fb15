from __future__ import annotations

import streamlit as st

from tradeo.app.utils import get_services, load_profile, require_user, show_error
from tradeo.domain.errors import TradeoError
from tradeo.timezones import default_timezone, format_option, timezone_options

st.set_page_config(page_title="Settings", page_icon="⚙️", layout="wide")
st.title("⚙️ Settings")

user, profile = require_user()
svc = get_services()

left, right = st.columns([1, 2])

with left:
    st.markdown("### Avatar")
    if profile.avatar_url:
        st.image(profile.avatar_url, width=160)
    avatar = st.file_uploader("Upload avatar", type=["png", "jpg", "jpeg", "gif", "webp"], key="avatar")
    if avatar is not None and st.button("Save avatar"):
        try:
            svc.profile_service.upload_avatar(user["id"], avatar.name, avatar.getvalue(), avatar.type or "")
            load_profile(refresh=True)
            st.success("Avatar updated")
            st.rerun()
        except TradeoError as e:
            show_error(e)

with right:
    st.markdown("### Profile")
    st.text_input("Email", value=profile.email or "", disabled=True)

    options = timezone_options()
    current_tz = default_timezone(profile.timezone)
    with st.form("profile"):
        full_name = st.text_input("Display name", value=profile.full_name or "")
        username = st.text_input("Username", value=profile.username or "", help="Letters, numbers and underscores")
        tz = st.selectbox(
            "Timezone",
            options=options,
            index=options.index(current_tz),
            format_func=format_option,
        )
        submitted = st.form_submit_button("Save changes")

    if submitted:
        try:
            new_username = username.strip()
            if new_username.lower() == (profile.username or ""):
                new_username = None
            elif new_username:
                check = svc.profile_service.checker_for(user["id"]).check(new_username)
                if check is not None and check.status == "taken":
                    st.error("This username is already taken")
                    st.stop()
            svc.profile_service.update_profile(user["id"], full_name=full_name, username=new_username, timezone=tz)
            load_profile(refresh=True)
            st.success("Profile updated")
        except TradeoError as e:
            show_error(e)

from __future__ import annotations

import streamlit as st

from tradeo.app.utils import current_user, get_services, load_profile, set_user, show_error
from tradeo.domain.errors import InputError, TradeoError
from tradeo.services.profiles import UsernameChecker, validate_username

st.set_page_config(page_title="Tradeo Journal", page_icon="📈", layout="wide")


def _username_feedback(checker: UsernameChecker, key: str) -> None:
    """Chequeo al cambiar el input; un input nuevo reemplaza el resultado anterior."""
    value = st.session_state.get(key, "")
    ticket = checker.request(value)
    try:
        result = checker.complete(ticket, value)
    except TradeoError as e:
        show_error(e)
        return
    if result is not None:
        st.session_state[f"{key}_check"] = result


def _render_username_check(key: str) -> None:
    check = st.session_state.get(f"{key}_check")
    if check is None or check.username != st.session_state.get(key, ""):
        return
    if check.status == "available":
        st.caption("✅ Username available")
    elif check.status == "taken":
        st.caption("❌ This username is already taken")
    elif check.status == "invalid":
        st.caption("⚠️ Invalid characters in username")


def login_form() -> None:
    svc = get_services()
    with st.form("login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Log in")

    if submitted:
        if not email or not password:
            st.error("Email and password are required")
            return
        try:
            session = svc.sb.sign_in(email.strip(), password)
            set_user(session.get("user") or svc.sb.get_user())
            load_profile(refresh=True)
            st.rerun()
        except TradeoError as e:
            show_error(e)


def signup_form() -> None:
    svc = get_services()
    checker = svc.profile_service.checker_for(None)

    st.text_input(
        "Username",
        key="signup_username",
        on_change=_username_feedback,
        args=(checker, "signup_username"),
    )
    _render_username_check("signup_username")

    with st.form("signup"):
        full_name = st.text_input("Full name")
        email = st.text_input("Email")
        password = st.text_input("Password", type="password", help="At least 8 characters")
        submitted = st.form_submit_button("Create account")

    if not submitted:
        return
    try:
        if len(password) < 8:
            raise InputError("Password must be at least 8 characters")
        if not 2 <= len(full_name.strip()) <= 100:
            raise InputError("Name must be at least 2 characters")
        username = validate_username(st.session_state.get("signup_username", ""))
        check = checker.check(username)
        if check is None or not check.available:
            raise InputError("This username is already taken")

        data = svc.sb.sign_up(email.strip(), password, {"full_name": full_name.strip(), "username": username})
        user = data.get("user") or (data if data.get("id") else None)
        if not data.get("access_token") or user is None:
            st.success("Check your email to confirm your account, then log in.")
            return
        set_user(user)
        load_profile(refresh=True)
        svc.profile_service.complete_profile(user["id"], username, full_name)
        load_profile(refresh=True)
        st.rerun()
    except TradeoError as e:
        show_error(e)


def complete_profile_form(owner_id: str) -> None:
    svc = get_services()
    checker = svc.profile_service.checker_for(owner_id)

    st.subheader("Complete your profile")
    st.caption("Choose a username to identify yourself")
    st.text_input(
        "Username",
        key="complete_username",
        on_change=_username_feedback,
        args=(checker, "complete_username"),
    )
    _render_username_check("complete_username")
    display_name = st.text_input("Display name (optional)")

    if st.button("Continue"):
        try:
            svc.profile_service.complete_profile(
                owner_id, st.session_state.get("complete_username", ""), display_name
            )
            load_profile(refresh=True)
            st.rerun()
        except TradeoError as e:
            show_error(e)


def main():
    st.title("📈 Tradeo Journal")
    st.caption("Streamlit + Plotly + Supabase + OpenAI")

    try:
        get_services()
    except Exception as e:
        st.error(f"Could not initialize Supabase: {e}")
        st.info("Check SUPABASE_URL and SUPABASE_KEY in your .env.")
        st.stop()

    user = current_user()
    if user is None:
        tab_login, tab_signup = st.tabs(["Log in", "Sign up"])
        with tab_login:
            login_form()
        with tab_signup:
            signup_form()
        return

    try:
        profile = load_profile()
    except TradeoError as e:
        show_error(e)
        st.stop()

    if not profile.username:
        complete_profile_form(user["id"])
        return

    st.success(f"Welcome back, {profile.display_name} ✅")
    col1, col2 = st.columns(2)
    with col1:
        st.write("➡️ Use the sidebar to navigate: Dashboard, Journal, New Trade, Analysis, Chat, Settings.")
    with col2:
        if st.button("Sign out"):
            try:
                get_services().sb.sign_out()
            except TradeoError as e:
                show_error(e)
            set_user(None)
            st.rerun()


if __name__ == "__main__":
    main()

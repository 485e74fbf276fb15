"""Tests for the Streamlit session helpers shared by every page."""

import pytest

from tradeo.app import utils
from tradeo.data.supabase_client import SupabaseClient, SupabaseConfig
from tradeo.domain.errors import AuthError, StoreError


class Stopped(Exception):
    pass


class FakeStreamlit:
    """Lo justo de `st` que usan los helpers: session_state, avisos y stop."""

    def __init__(self, state):
        self.session_state = state
        self.warnings = []
        self.errors = []

    def warning(self, msg):
        self.warnings.append(msg)

    def error(self, msg):
        self.errors.append(msg)

    def stop(self):
        raise Stopped()


class _Services:
    def __init__(self):
        self.sb = SupabaseClient(SupabaseConfig(url="https://demo.supabase.co", key="anon-key"))
        self.sb._set_session({"access_token": "jwt-1", "refresh_token": "r1"})
        self.trades = object()


@pytest.fixture
def services():
    return _Services()


@pytest.fixture
def fake_st(monkeypatch, services):
    state = {
        "services": services,
        "user": {"id": "u1", "email": "a@b.co"},
        "profile": object(),
        "chat_history": [{"role": "user", "content": "hola"}],
        "image": b"chart",
        "analysis": {"setup_grade": "A"},
        "confirm_t1": True,
        "chart_upload_nonce": 3,
    }
    fake = FakeStreamlit(state)
    monkeypatch.setattr(utils, "st", fake)
    return fake


class TestSignOut:
    def test_clear_user_state_keeps_only_services(self):
        state = {"services": "svc", "user": {"id": "u1"}, "chat_history": [], "avatar": b"x"}
        utils.clear_user_state(state)
        assert state == {"services": "svc"}

    def test_set_user_none_drops_previous_user_data(self, fake_st, services):
        utils.set_user(None)
        assert fake_st.session_state == {"services": services}

    def test_next_login_starts_clean(self, fake_st):
        utils.set_user(None)
        utils.set_user({"id": "u2"})

        assert utils.current_user() == {"id": "u2"}
        assert "chat_history" not in fake_st.session_state
        assert "analysis" not in fake_st.session_state


class TestLoadTrades:
    def test_expired_session_logs_out(self, fake_st, services, monkeypatch):
        def expired(owner_id, _repo):
            raise AuthError("JWT expired", status=401)

        monkeypatch.setattr(utils, "_load_trades", expired)

        with pytest.raises(Stopped):
            utils.load_trades("u1")

        assert utils.current_user() is None
        assert "chat_history" not in fake_st.session_state
        assert services.sb.access_token is None
        assert services.sb.refresh_token is None
        assert fake_st.warnings == ["Your session expired. Please log in again."]

    def test_store_error_shows_message_and_returns_empty(self, fake_st, monkeypatch):
        def down(owner_id, _repo):
            raise StoreError("timeout")

        monkeypatch.setattr(utils, "_load_trades", down)

        assert utils.load_trades("u1") == []
        assert fake_st.errors == [StoreError.user_message]
        assert utils.current_user() == {"id": "u1", "email": "a@b.co"}


class TestUploaderKey:
    def test_reset_gives_a_fresh_key(self):
        state = {}
        first = utils.uploader_key(state, "chart_upload")

        utils.reset_uploader(state, "chart_upload")

        assert first == "chart_upload_0"
        assert utils.uploader_key(state, "chart_upload") == "chart_upload_1"

    def test_keys_are_independent(self):
        state = {}
        utils.reset_uploader(state, "chart_upload")
        assert utils.uploader_key(state, "avatar_upload") == "avatar_upload_0"

"""Tests for the Supabase HTTP client (PostgREST, Storage, Auth)."""

import json

import pytest
import requests

from tradeo.data.supabase_client import SupabaseClient, SupabaseConfig, _build_retry
from tradeo.domain.errors import AuthError, NotFoundError, StoreError, UniqueViolationError

URL = "https://demo.supabase.co"


def _response(status, body=None, method="GET", url=URL):
    r = requests.Response()
    r.status_code = status
    r._content = json.dumps(body).encode() if body is not None else b""
    r.url = url
    r.request = requests.Request(method, url).prepare()
    return r


class FakeSession(requests.Session):
    def __init__(self, *responses):
        super().__init__()
        self.queue = list(responses)
        self.sent = []

    def request(self, method, url, **kwargs):
        self.sent.append((method, url, kwargs))
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _client(*responses):
    session = FakeSession(*responses)
    return SupabaseClient(SupabaseConfig(url=URL + "/", key="anon-key"), session=session), session


class TestRetryPolicy:
    def test_post_is_not_retried(self):
        retry = _build_retry(SupabaseConfig(url=URL, key="k"))
        assert "POST" not in retry.allowed_methods
        assert {"GET", "PATCH", "DELETE"} <= set(retry.allowed_methods)
        assert 503 in retry.status_forcelist


class TestPostgrest:
    def test_select_builds_query(self):
        sb, session = _client(_response(200, [{"id": "t1"}]))

        rows = sb.select("trades", filters={"user_id": "eq.u1"}, order="created_at.desc", limit=50)

        assert rows == [{"id": "t1"}]
        method, url, kwargs = session.sent[0]
        assert method == "GET"
        assert url == f"{URL}/rest/v1/trades"
        assert kwargs["params"] == {"select": "*", "user_id": "eq.u1", "order": "created_at.desc", "limit": "50"}
        assert kwargs["timeout"] == (5.0, 30.0)

    def test_select_wraps_single_object(self):
        sb, _ = _client(_response(200, {"id": "t1"}))
        assert sb.select("trades") == [{"id": "t1"}]

    def test_insert_asks_for_representation(self):
        sb, session = _client(_response(201, [{"id": "t9"}], method="POST"))

        assert sb.insert("trades", [{"instrument": "EURUSD"}]) == [{"id": "t9"}]
        _, _, kwargs = session.sent[0]
        assert kwargs["headers"]["Prefer"] == "return=representation"
        assert kwargs["json"] == [{"instrument": "EURUSD"}]

    def test_delete_requires_filters(self):
        sb, session = _client()
        with pytest.raises(ValueError):
            sb.delete("trades", {})
        assert session.sent == []

    def test_delete_empty_body(self):
        sb, _ = _client(_response(204, method="DELETE"))
        assert sb.delete("trades", {"id": "eq.t1"}) == []

    def test_default_headers(self):
        sb, _ = _client()
        assert sb.session.headers["apikey"] == "anon-key"
        assert sb.session.headers["Authorization"] == "Bearer anon-key"


class TestErrorMapping:
    def test_unique_violation_by_code(self):
        sb, _ = _client(_response(400, {"code": "23505", "message": "duplicate key"}, method="PATCH"))
        with pytest.raises(UniqueViolationError) as exc:
            sb.patch("profiles", {"id": "eq.u1"}, {"username": "taken"})
        assert exc.value.code == "23505"

    def test_conflict_status(self):
        sb, _ = _client(_response(409, {"message": "conflict"}, method="POST"))
        with pytest.raises(UniqueViolationError):
            sb.insert("profiles", [{"id": "u1"}])

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth(self, status):
        sb, _ = _client(_response(status, {"message": "JWT expired"}))
        with pytest.raises(AuthError):
            sb.select("trades")

    def test_not_found(self):
        sb, _ = _client(_response(406, {"code": "PGRST116", "message": "no rows"}))
        with pytest.raises(NotFoundError):
            sb.select("trades")

    def test_other_status(self):
        sb, _ = _client(_response(500, None))
        with pytest.raises(StoreError) as exc:
            sb.select("trades")
        assert exc.value.status == 500
        assert not isinstance(exc.value, (AuthError, NotFoundError, UniqueViolationError))

    def test_transport_error(self):
        sb, _ = _client(requests.ConnectionError("dns failure"))
        with pytest.raises(StoreError):
            sb.select("trades")


class TestAuth:
    def test_sign_in_sets_user_token(self):
        body = {"access_token": "user-jwt", "user": {"id": "u1", "email": "a@b.co"}}
        sb, session = _client(_response(200, body, method="POST"))

        data = sb.sign_in("a@b.co", "secret")

        assert data["user"]["id"] == "u1"
        method, url, kwargs = session.sent[0]
        assert url == f"{URL}/auth/v1/token"
        assert kwargs["params"] == {"grant_type": "password"}
        assert sb.session.headers["Authorization"] == "Bearer user-jwt"

    def test_sign_up_without_session(self):
        sb, _ = _client(_response(200, {"id": "u2", "email": "c@d.co"}, method="POST"))
        sb.sign_up("c@d.co", "secret", {"full_name": "Carla"})
        assert sb.access_token is None

    def test_get_user_requires_token(self):
        sb, _ = _client()
        with pytest.raises(AuthError):
            sb.get_user()

    def test_sign_out_resets_to_anon_key(self):
        sb, _ = _client(_response(204, method="POST"))
        sb.set_access_token("user-jwt")
        sb.sign_out()
        assert sb.access_token is None
        assert sb.session.headers["Authorization"] == "Bearer anon-key"

    def test_sign_out_clears_session_even_if_logout_fails(self):
        sb, _ = _client(_response(401, {"message": "JWT expired"}, method="POST"))
        sb._set_session({"access_token": "old-jwt", "refresh_token": "r1"})

        with pytest.raises(AuthError):
            sb.sign_out()

        assert sb.access_token is None
        assert sb.refresh_token is None


class TestTokenRefresh:
    def _signed_in(self, *responses):
        login = _response(200, {"access_token": "jwt-1", "refresh_token": "r1"}, method="POST")
        sb, session = _client(login, *responses)
        sb.sign_in("a@b.co", "secret")
        return sb, session

    def test_sign_in_keeps_refresh_token(self):
        sb, _ = self._signed_in()
        assert sb.refresh_token == "r1"

    def test_expired_jwt_is_refreshed_and_request_retried(self):
        sb, session = self._signed_in(
            _response(401, {"message": "JWT expired"}),
            _response(200, {"access_token": "jwt-2", "refresh_token": "r2"}, method="POST"),
            _response(200, [{"id": "t1"}]),
        )

        assert sb.select("trades") == [{"id": "t1"}]

        method, url, kwargs = session.sent[2]
        assert (method, url) == ("POST", f"{URL}/auth/v1/token")
        assert kwargs["params"] == {"grant_type": "refresh_token"}
        assert kwargs["json"] == {"refresh_token": "r1"}
        assert kwargs["headers"]["Authorization"] == "Bearer anon-key"
        assert session.sent[3][1] == f"{URL}/rest/v1/trades"
        assert sb.access_token == "jwt-2"
        assert sb.refresh_token == "r2"
        assert sb.session.headers["Authorization"] == "Bearer jwt-2"

    def test_revoked_refresh_token_drops_session(self):
        sb, session = self._signed_in(
            _response(401, {"message": "JWT expired"}),
            _response(400, {"error_code": "refresh_token_not_found"}, method="POST"),
        )

        with pytest.raises(AuthError):
            sb.select("trades")
        assert len(session.sent) == 3
        assert sb.access_token is None
        assert sb.refresh_token is None

    def test_refresh_transport_error_keeps_session(self):
        sb, _ = self._signed_in(
            _response(401, {"message": "JWT expired"}),
            requests.ConnectionError("dns failure"),
        )

        with pytest.raises(StoreError) as exc:
            sb.select("trades")
        assert not isinstance(exc.value, AuthError)
        assert sb.refresh_token == "r1"

    def test_rejected_refresh_clears_tokens(self):
        sb, _ = self._signed_in(
            _response(401, {"message": "JWT expired"}),
            _response(401, {"message": "invalid refresh token"}, method="POST"),
        )

        with pytest.raises(AuthError):
            sb.select("trades")
        assert sb.access_token is None
        assert sb.refresh_token is None
        assert sb.session.headers["Authorization"] == "Bearer anon-key"

    def test_retries_only_once(self):
        sb, session = self._signed_in(
            _response(401, {"message": "JWT expired"}),
            _response(200, {"access_token": "jwt-2", "refresh_token": "r2"}, method="POST"),
            _response(403, {"message": "permission denied"}),
        )

        with pytest.raises(AuthError):
            sb.select("trades")
        assert len(session.sent) == 4

    def test_without_refresh_token_auth_error_propagates(self):
        sb, session = _client(_response(401, {"message": "JWT expired"}))
        sb.set_access_token("jwt-1")

        with pytest.raises(AuthError):
            sb.select("trades")
        assert len(session.sent) == 1


class TestStorage:
    def test_upload_returns_public_url(self):
        sb, session = _client(_response(200, {"Key": "trade-screenshots/u1/1.webp"}, method="POST"))

        url = sb.upload_object("trade-screenshots", "u1/1.webp", b"img", content_type="image/webp")

        assert url == f"{URL}/storage/v1/object/public/trade-screenshots/u1/1.webp"
        _, sent_url, kwargs = session.sent[0]
        assert sent_url == f"{URL}/storage/v1/object/trade-screenshots/u1/1.webp"
        assert kwargs["headers"]["Content-Type"] == "image/webp"
        assert kwargs["headers"]["x-upsert"] == "false"
        assert kwargs["data"] == b"img"

    def test_remove_objects(self):
        sb, session = _client(_response(200, [], method="DELETE"))
        sb.remove_objects("avatars", ["u1/1.png"])
        method, url, kwargs = session.sent[0]
        assert method == "DELETE"
        assert kwargs["json"] == {"prefixes": ["u1/1.png"]}

    def test_remove_nothing(self):
        sb, session = _client()
        sb.remove_objects("avatars", [])
        assert session.sent == []

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tradeo.config import AppConfig
from tradeo.domain.errors import AuthError, NotFoundError, StoreError, UniqueViolationError

log = logging.getLogger(__name__)

# Postgres unique_violation
PG_UNIQUE_VIOLATION = "23505"
# PostgREST: .single() sin filas
PGRST_NO_ROWS = "PGRST116"


@dataclass(frozen=True)
class SupabaseConfig:
    url: str
    key: str
    schema: str = "public"
    # timeouts HTTP: (connect, read)
    timeout: Tuple[float, float] = (5.0, 30.0)
    # pool/retry
    pool_connections: int = 20
    pool_maxsize: int = 20
    retries_total: int = 3
    backoff_factor: float = 0.5


def _build_retry(cfg: SupabaseConfig) -> Retry:
    # Solo métodos idempotentes: un POST reintentado podría duplicar un trade.
    return Retry(
        total=cfg.retries_total,
        connect=cfg.retries_total,
        read=cfg.retries_total,
        status=cfg.retries_total,
        backoff_factor=cfg.backoff_factor,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["GET", "PATCH", "DELETE"]),
        raise_on_status=False,
        respect_retry_after_header=True,
    )


def _raise_for_status(r: requests.Response) -> None:
    if r.ok:
        return
    try:
        body = r.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    code = str(body.get("code") or body.get("error_code") or "")
    message = body.get("message") or body.get("msg") or body.get("error_description") or r.text

    log.warning("Supabase %s %s -> %s %s", r.request.method if r.request else "?", r.url, r.status_code, code)

    if r.status_code == 409 or code == PG_UNIQUE_VIOLATION:
        raise UniqueViolationError(message, status=r.status_code, code=code)
    if r.status_code in (401, 403):
        raise AuthError(message, status=r.status_code, code=code)
    if r.status_code == 404 or code == PGRST_NO_ROWS:
        raise NotFoundError(message, status=r.status_code, code=code)
    raise StoreError(message, status=r.status_code, code=code)


class SupabaseClient:
    """Cliente mínimo para Supabase (PostgREST + Storage + Auth) sobre HTTP."""

    def __init__(self, cfg: SupabaseConfig, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.root = cfg.url.rstrip("/")
        self.base = self.root + "/rest/v1"
        self.auth_url = self.root + "/auth/v1"
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None

        # Session + retry + pool
        self.session = session or requests.Session()
        adapter = HTTPAdapter(
            max_retries=_build_retry(cfg),
            pool_connections=cfg.pool_connections,
            pool_maxsize=cfg.pool_maxsize,
        )
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

        self.session.headers.update(
            {
                "apikey": cfg.key,
                "Authorization": f"Bearer {cfg.key}",
                "Accept": "application/json",
                "Accept-Profile": cfg.schema,
                "Content-Profile": cfg.schema,
            }
        )

    # ----------------------------
    # Auth
    # ----------------------------
    def set_access_token(self, token: Optional[str]) -> None:
        """Con token de usuario, RLS filtra por auth.uid(); sin token vuelve a la anon key."""
        self.access_token = token
        self.session.headers["Authorization"] = f"Bearer {token or self.cfg.key}"

    def _set_session(self, data: Dict[str, Any]) -> None:
        self.refresh_token = data.get("refresh_token")
        self.set_access_token(data.get("access_token"))

    def clear_session(self) -> None:
        self._set_session({})

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            r = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise StoreError(f"{method} {url} failed: {e}") from e
        _raise_for_status(r)
        return r

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.cfg.timeout)
        try:
            return self._request(method, url, **kwargs)
        except AuthError:
            # JWT caducado: se renueva una sola vez y se repite la petición
            if not self.refresh_token or url.startswith(self.auth_url):
                raise
            log.info("Access token rejected, refreshing session")
            self.refresh_session()
            return self._request(method, url, **kwargs)

    def refresh_session(self) -> Dict[str, Any]:
        if not self.refresh_token:
            raise AuthError("no refresh token")
        try:
            r = self._request(
                "POST",
                f"{self.auth_url}/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": self.refresh_token},
                headers={"Authorization": f"Bearer {self.cfg.key}"},
                timeout=self.cfg.timeout,
            )
        except StoreError as e:
            if e.status not in (400, 401, 403):
                raise
            # refresh token revocado o ya usado: la sesión no se recupera
            self.clear_session()
            raise AuthError(str(e), status=e.status, code=e.code) from e
        data = r.json()
        self._set_session(data)
        return data

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        r = self._send(
            "POST",
            f"{self.auth_url}/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        data = r.json()
        self._set_session(data)
        return data

    def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        r = self._send(
            "POST",
            f"{self.auth_url}/signup",
            json={"email": email, "password": password, "data": metadata or {}},
        )
        data = r.json()
        if data.get("access_token"):
            self._set_session(data)
        return data

    def get_user(self) -> Dict[str, Any]:
        if not self.access_token:
            raise AuthError("no access token")
        return self._send("GET", f"{self.auth_url}/user").json()

    def sign_out(self) -> None:
        try:
            if self.access_token:
                self._send("POST", f"{self.auth_url}/logout")
        finally:
            self.clear_session()

    # ----------------------------
    # PostgREST
    # ----------------------------
    def _url(self, table: str) -> str:
        return f"{self.base}/{table}"

    @staticmethod
    def _as_list(data: Any) -> List[Dict[str, Any]]:
        # PostgREST siempre debería devolver lista, pero lo aseguramos
        if data is None:
            return []
        return data if isinstance(data, list) else [data]

    def select(
        self,
        table: str,
        *,
        select: str = "*",
        filters: Optional[Dict[str, str]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, str] = {"select": select}
        if filters:
            params.update(filters)
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)

        r = self._send("GET", self._url(table), params=params)
        return self._as_list(r.json())

    def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        headers = {"Prefer": "return=representation"}
        r = self._send("POST", self._url(table), json=rows, headers=headers)
        return self._as_list(r.json())

    def patch(
        self, table: str, filters: Dict[str, str], patch: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        headers = {"Prefer": "return=representation"}
        r = self._send("PATCH", self._url(table), params=filters, json=patch, headers=headers)
        return self._as_list(r.json())

    def delete(self, table: str, filters: Dict[str, str]) -> List[Dict[str, Any]]:
        if not filters:
            # PostgREST rechaza DELETE sin filtro; mejor fallar antes
            raise ValueError("refusing to DELETE without filters")
        headers = {"Prefer": "return=representation"}
        r = self._send("DELETE", self._url(table), params=filters, headers=headers)
        return self._as_list(r.json() if r.content else [])

    # ----------------------------
    # Storage
    # ----------------------------
    def upload_object(
        self,
        bucket: str,
        path: str,
        content: bytes,
        *,
        content_type: str,
        upsert: bool = False,
        cache_control: str = "3600",
    ) -> str:
        headers = {
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
            "cache-control": f"max-age={cache_control}",
        }
        self._send(
            "POST",
            f"{self.root}/storage/v1/object/{bucket}/{path}",
            data=content,
            headers=headers,
        )
        return self.public_url(bucket, path)

    def remove_objects(self, bucket: str, paths: List[str]) -> None:
        if not paths:
            return
        self._send("DELETE", f"{self.root}/storage/v1/object/{bucket}", json={"prefixes": paths})

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.root}/storage/v1/object/public/{bucket}/{path}"


def load_supabase_from_config(cfg: AppConfig) -> SupabaseClient:
    return SupabaseClient(SupabaseConfig(url=cfg.supabase_url, key=cfg.supabase_key))

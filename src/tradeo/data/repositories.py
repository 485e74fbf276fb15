from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from tradeo.data.supabase_client import SupabaseClient
from tradeo.domain.errors import NotFoundError, StoreError
from tradeo.domain.models import Profile, Trade, TradeCreate, TradeFilters, parse_trade_rows

log = logging.getLogger(__name__)

PROFILE_COLUMNS = "id,email,full_name,username,avatar_url,timezone,created_at"


def _escape_like(text: str) -> str:
    # PostgREST usa * como comodín en ilike; , y () rompen la sintaxis de filtros
    return "".join(ch for ch in text if ch not in "*,()")


class TradeRepository:
    def __init__(self, sb: SupabaseClient):
        self.sb = sb

    def list(self, owner_id: str, filters: Optional[TradeFilters] = None, limit: int = 5000) -> List[Trade]:
        """Trades del usuario, más recientes primero. Filas inválidas se descartan."""
        params: Dict[str, str] = {"user_id": f"eq.{owner_id}"}
        if filters is not None:
            if filters.result:
                params["result"] = f"eq.{filters.result.value}"
            if filters.setup_grade:
                params["setup_grade"] = f"eq.{filters.setup_grade.value}"
            if filters.session:
                params["session"] = f"eq.{filters.session.value}"
            if filters.instrument and _escape_like(filters.instrument.strip()):
                params["instrument"] = f"ilike.*{_escape_like(filters.instrument.strip())}*"

        rows = self.sb.select("trades", filters=params, order="created_at.desc", limit=limit)
        if len(rows) >= limit:
            # PostgREST corta en silencio al llegar al límite
            log.warning("Trade list for %s hit the %d row limit; older trades are missing", owner_id, limit)
        trades = parse_trade_rows(rows)
        if len(trades) != len(rows):
            log.warning("Skipped %d malformed trade rows for %s", len(rows) - len(trades), owner_id)
        return trades

    def get(self, owner_id: str, trade_id: str) -> Trade:
        rows = self.sb.select(
            "trades",
            filters={"id": f"eq.{trade_id}", "user_id": f"eq.{owner_id}"},
            limit=1,
        )
        trade = Trade.from_row(rows[0]) if rows else None
        if trade is None:
            raise NotFoundError(f"trade {trade_id} not found", status=404)
        return trade

    def insert(self, trade: TradeCreate) -> Trade:
        payload = trade.to_row()
        # created_at lo asigna el servidor (default now()) y no se vuelve a tocar
        payload.pop("created_at", None)
        payload.pop("id", None)
        rows = self.sb.insert("trades", [payload])
        stored = Trade.from_row(rows[0]) if rows else None
        if stored is None:
            raise StoreError("store returned an unexpected trade representation")
        log.info("Trade %s stored for %s", stored.id, stored.user_id)
        return stored

    def delete_by_id(self, owner_id: str, trade_id: str) -> None:
        deleted = self.sb.delete("trades", {"id": f"eq.{trade_id}", "user_id": f"eq.{owner_id}"})
        if not deleted:
            raise NotFoundError(f"trade {trade_id} not found", status=404)
        log.info("Trade %s deleted for %s", trade_id, owner_id)


class ProfileRepository:
    def __init__(self, sb: SupabaseClient):
        self.sb = sb

    def get(self, owner_id: str) -> Optional[Profile]:
        rows = self.sb.select("profiles", select=PROFILE_COLUMNS, filters={"id": f"eq.{owner_id}"}, limit=1)
        return Profile.model_validate(rows[0]) if rows else None

    def get_or_create(self, user: Dict[str, Any]) -> Profile:
        """Crea el perfil de forma perezosa (usuarios registrados antes del trigger)."""
        existing = self.get(user["id"])
        if existing is not None:
            return existing

        meta = user.get("user_metadata") or {}
        payload = {
            "id": user["id"],
            "email": user.get("email"),
            "full_name": meta.get("full_name") or meta.get("name"),
            "username": (meta.get("username") or "").lower() or None,
            "avatar_url": None,
            "timezone": None,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        rows = self.sb.insert("profiles", [payload])
        log.info("Profile created for %s", user["id"])
        return Profile.model_validate(rows[0] if rows else payload)

    def update(self, owner_id: str, **fields: Any) -> Profile:
        allowed = {"full_name", "username", "avatar_url", "timezone"}
        patch = {k: v for k, v in fields.items() if k in allowed}
        if "username" in patch and patch["username"]:
            patch["username"] = patch["username"].lower()
        if not patch:
            profile = self.get(owner_id)
            if profile is None:
                raise NotFoundError(f"profile {owner_id} not found", status=404)
            return profile

        rows = self.sb.patch("profiles", {"id": f"eq.{owner_id}"}, patch)
        if not rows:
            raise NotFoundError(f"profile {owner_id} not found", status=404)
        return Profile.model_validate(rows[0])

    def is_username_available(self, username: str, *, exclude_owner: Optional[str] = None) -> bool:
        rows = self.sb.select(
            "profiles",
            select="id,username",
            filters={"username": f"eq.{username.lower()}"},
            limit=1,
        )
        return all(r.get("id") == exclude_owner for r in rows) if exclude_owner else not rows

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, MutableMapping, Optional, Tuple

import pytz
import streamlit as st

from tradeo.ai.gateway import AIGateway, load_gateway_from_config
from tradeo.config import AppConfig, configure_logging, load_config_from_env
from tradeo.data.repositories import ProfileRepository, TradeRepository
from tradeo.data.supabase_client import SupabaseClient, load_supabase_from_config
from tradeo.domain.errors import AuthError, TradeoError
from tradeo.domain.models import Profile, Trade
from tradeo.infra.storage import SupabaseBucketStorage
from tradeo.services.profiles import ProfileService
from tradeo.services.trades import TradeService
from tradeo.timezones import default_timezone

log = logging.getLogger(__name__)

# claves de session_state que sobreviven al cierre de sesión
_SESSION_KEYS = ("services",)


@dataclass
class Services:
    sb: SupabaseClient
    trades: TradeRepository
    profiles: ProfileRepository
    trade_service: TradeService
    profile_service: ProfileService


@st.cache_resource
def get_config() -> AppConfig:
    cfg = load_config_from_env()
    configure_logging(cfg.log_level)
    return cfg


@st.cache_resource
def get_gateway() -> Optional[AIGateway]:
    return load_gateway_from_config(get_config())


def get_services() -> Services:
    """
    Un cliente por sesión de navegador: el access token del usuario vive en el
    cliente y no se puede compartir vía cache_resource.
    """
    services = st.session_state.get("services")
    if services is None:
        cfg = get_config()
        sb = load_supabase_from_config(cfg)
        trades = TradeRepository(sb)
        profiles = ProfileRepository(sb)
        services = Services(
            sb=sb,
            trades=trades,
            profiles=profiles,
            trade_service=TradeService(trades, SupabaseBucketStorage(sb, bucket=cfg.screenshots_bucket)),
            profile_service=ProfileService(profiles, SupabaseBucketStorage(sb, bucket=cfg.avatars_bucket)),
        )
        st.session_state["services"] = services
    return services


def current_user() -> Optional[Dict[str, Any]]:
    return st.session_state.get("user")


def clear_user_state(state: MutableMapping[str, Any]) -> None:
    """Quita todo lo del usuario anterior: perfil, chat, imagen, análisis y widgets."""
    for key in list(state.keys()):
        if key not in _SESSION_KEYS:
            del state[key]


def set_user(user: Optional[Dict[str, Any]]) -> None:
    if user is None:
        clear_user_state(st.session_state)
    else:
        st.session_state["user"] = user


def uploader_key(state: MutableMapping[str, Any], name: str) -> str:
    return f"{name}_{state.get(f'{name}_nonce', 0)}"


def reset_uploader(state: MutableMapping[str, Any], name: str) -> None:
    """Un key nuevo deja el file_uploader vacío en el siguiente rerun."""
    state[f"{name}_nonce"] = state.get(f"{name}_nonce", 0) + 1


def end_expired_session() -> None:
    services = st.session_state.get("services")
    if services is not None:
        services.sb.clear_session()
    set_user(None)
    st.warning("Your session expired. Please log in again.")
    st.stop()


def load_profile(refresh: bool = False) -> Optional[Profile]:
    user = current_user()
    if user is None:
        return None
    if refresh or "profile" not in st.session_state:
        st.session_state["profile"] = get_services().profiles.get_or_create(user)
    return st.session_state["profile"]


def require_user() -> Tuple[Dict[str, Any], Profile]:
    """Corta la página si no hay sesión iniciada."""
    user = current_user()
    if user is None:
        st.warning("Please log in from the home page.")
        st.stop()
    try:
        profile = load_profile()
    except AuthError:
        end_expired_session()
    except TradeoError as e:
        show_error(e)
        st.stop()
    return user, profile


@st.cache_data(ttl=15, show_spinner=False)
def _load_trades(owner_id: str, _repo: TradeRepository) -> List[Trade]:
    return _repo.list(owner_id)


def load_trades(owner_id: str) -> List[Trade]:
    """Trades del usuario; ante error externo se muestra aviso y se trata como 'sin datos'."""
    try:
        return _load_trades(owner_id, get_services().trades)
    except AuthError:
        end_expired_session()
        return []
    except TradeoError as e:
        show_error(e)
        return []


def invalidate_trades() -> None:
    _load_trades.clear()


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def user_timezone(profile: Optional[Profile]) -> str:
    preferred = profile.timezone if profile else None
    return default_timezone(preferred or get_config().timezone)


def show_error(e: TradeoError) -> None:
    log.warning("%s: %s", type(e).__name__, e)
    st.error(e.user_message)


def fmt_money(x: Optional[float]) -> str:
    if x is None:
        return "—"
    sign = "-" if x < 0 else ""
    return f"{sign}${abs(x):,.2f}"


def fmt_local(dt: Optional[datetime], tz: str, fmt: str = "%Y-%m-%d %H:%M") -> str:
    if dt is None:
        return "—"
    return dt.astimezone(pytz.timezone(tz)).strftime(fmt)

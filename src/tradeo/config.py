from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MODEL = "gpt-4o"
DEFAULT_TIMEZONE = "UTC"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class AppConfig:
    supabase_url: str
    supabase_key: str
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_MODEL
    timezone: str = DEFAULT_TIMEZONE
    log_level: str = "INFO"
    screenshots_bucket: str = "trade-screenshots"
    avatars_bucket: str = "avatars"


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def load_config_from_env(*, dotenv: bool = True) -> AppConfig:
    if dotenv:
        load_dotenv()

    url = _env("SUPABASE_URL")
    key = _env("SUPABASE_KEY")
    if not url or not key:
        raise RuntimeError("Missing SUPABASE_URL or SUPABASE_KEY in the environment (.env).")

    return AppConfig(
        supabase_url=url,
        supabase_key=key,
        openai_api_key=_env("OPENAI_API_KEY") or None,
        openai_model=_env("OPENAI_MODEL") or DEFAULT_MODEL,
        timezone=_env("TRADEO_TIMEZONE") or DEFAULT_TIMEZONE,
        log_level=(_env("TRADEO_LOG_LEVEL") or "INFO").upper(),
        screenshots_bucket=_env("TRADEO_SCREENSHOTS_BUCKET") or "trade-screenshots",
        avatars_bucket=_env("TRADEO_AVATARS_BUCKET") or "avatars",
    )


def configure_logging(level: str = "INFO") -> None:
    """Configura el root logger una sola vez (Streamlit re-ejecuta los scripts)."""
    root = logging.getLogger()
    if getattr(configure_logging, "_done", False):
        root.setLevel(level)
        return
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # requests/urllib3 son muy verbosos en DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    configure_logging._done = True  # type: ignore[attr-defined]

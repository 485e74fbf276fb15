from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import pytz


@dataclass(frozen=True)
class Timezone:
    value: str
    label: str


TIMEZONES: List[Timezone] = [
    Timezone("UTC", "UTC (Coordinated Universal Time)"),
    # Americas
    Timezone("America/New_York", "New York (Eastern Time)"),
    Timezone("America/Chicago", "Chicago (Central Time)"),
    Timezone("America/Denver", "Denver (Mountain Time)"),
    Timezone("America/Los_Angeles", "Los Angeles (Pacific Time)"),
    Timezone("America/Anchorage", "Anchorage (Alaska Time)"),
    Timezone("America/Honolulu", "Honolulu (Hawaii Time)"),
    Timezone("America/Toronto", "Toronto (Eastern Time)"),
    Timezone("America/Vancouver", "Vancouver (Pacific Time)"),
    Timezone("America/Mexico_City", "Mexico City"),
    Timezone("America/Bogota", "Bogotá (Colombia Time)"),
    Timezone("America/Lima", "Lima (Peru Time)"),
    Timezone("America/Santiago", "Santiago (Chile Time)"),
    Timezone("America/Argentina/Buenos_Aires", "Buenos Aires (Argentina Time)"),
    Timezone("America/Sao_Paulo", "São Paulo (Brazil Time)"),
    Timezone("America/Caracas", "Caracas (Venezuela Time)"),
    Timezone("America/Panama", "Panama"),
    # Europe
    Timezone("Europe/London", "London (GMT)"),
    Timezone("Europe/Paris", "Paris (Central European Time)"),
    Timezone("Europe/Berlin", "Berlin (Central European Time)"),
    Timezone("Europe/Amsterdam", "Amsterdam (Central European Time)"),
    Timezone("Europe/Madrid", "Madrid (Central European Time)"),
    Timezone("Europe/Rome", "Rome (Central European Time)"),
    Timezone("Europe/Zurich", "Zurich (Central European Time)"),
    Timezone("Europe/Stockholm", "Stockholm (Central European Time)"),
    Timezone("Europe/Warsaw", "Warsaw (Central European Time)"),
    Timezone("Europe/Athens", "Athens (Eastern European Time)"),
    Timezone("Europe/Helsinki", "Helsinki (Eastern European Time)"),
    Timezone("Europe/Kiev", "Kyiv (Eastern European Time)"),
    Timezone("Europe/Istanbul", "Istanbul (Turkey Time)"),
    Timezone("Europe/Moscow", "Moscow (Moscow Time)"),
    # Asia / Middle East
    Timezone("Asia/Dubai", "Dubai (Gulf Standard Time)"),
    Timezone("Asia/Karachi", "Karachi (Pakistan Time)"),
    Timezone("Asia/Kolkata", "Mumbai/Delhi (India Time)"),
    Timezone("Asia/Bangkok", "Bangkok (Indochina Time)"),
    Timezone("Asia/Jakarta", "Jakarta (Western Indonesia Time)"),
    Timezone("Asia/Singapore", "Singapore"),
    Timezone("Asia/Hong_Kong", "Hong Kong"),
    Timezone("Asia/Shanghai", "Shanghai (China Time)"),
    Timezone("Asia/Seoul", "Seoul (Korea Time)"),
    Timezone("Asia/Tokyo", "Tokyo (Japan Time)"),
    Timezone("Asia/Jerusalem", "Jerusalem (Israel Time)"),
    Timezone("Asia/Riyadh", "Riyadh (Arabia Time)"),
    Timezone("Asia/Tehran", "Tehran (Iran Time)"),
    # Oceania
    Timezone("Australia/Perth", "Perth (Australian Western Time)"),
    Timezone("Australia/Adelaide", "Adelaide (Australian Central Time)"),
    Timezone("Australia/Sydney", "Sydney (Australian Eastern Time)"),
    Timezone("Australia/Brisbane", "Brisbane (Australian Eastern Time)"),
    Timezone("Pacific/Auckland", "Auckland (New Zealand Time)"),
    # Africa
    Timezone("Africa/Cairo", "Cairo (Egypt Time)"),
    Timezone("Africa/Johannesburg", "Johannesburg (South Africa Time)"),
    Timezone("Africa/Lagos", "Lagos (West Africa Time)"),
    Timezone("Africa/Nairobi", "Nairobi (East Africa Time)"),
]

_BY_VALUE = {tz.value: tz for tz in TIMEZONES}


def get_timezone(value: Optional[str]) -> Optional[Timezone]:
    if not value:
        return None
    return _BY_VALUE.get(value)


def default_timezone(preferred: Optional[str] = None) -> str:
    """Zona del perfil si es conocida; si no, UTC."""
    if preferred and preferred in _BY_VALUE:
        return preferred
    return "UTC"


def resolve_timezone(value: Optional[str]) -> str:
    """Cualquier zona IANA que pytz conozca; si no, UTC."""
    if not value:
        return "UTC"
    try:
        return pytz.timezone(value).zone
    except pytz.UnknownTimeZoneError:
        return "UTC"


def utc_offset_label(value: str, at: Optional[datetime] = None) -> str:
    """'UTC+5:30', 'UTC-3', ... calculado con pytz (respeta DST)."""
    tz = pytz.timezone(value)
    moment = at or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    offset = moment.astimezone(tz).utcoffset()
    minutes = int(offset.total_seconds() // 60)
    sign = "+" if minutes >= 0 else "-"
    h, m = divmod(abs(minutes), 60)
    return f"UTC{sign}{h}" + (f":{m:02d}" if m else "")


def timezone_options() -> List[str]:
    return [tz.value for tz in TIMEZONES]


def format_option(value: str) -> str:
    tz = get_timezone(value)
    if tz is None:
        return value
    return f"{tz.label} ({utc_offset_label(value)})"

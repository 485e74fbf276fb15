from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

log = logging.getLogger(__name__)


class TradeResult(str, Enum):
    TAKE_PROFIT = "take_profit"
    STOPPED_OUT = "stopped_out"
    BREAK_EVEN = "break_even"


class TradeDirection(str, Enum):
    LONG = "long"
    SHORT = "short"


class SetupGrade(str, Enum):
    A_PLUS = "A+"
    A = "A"
    A_MINUS = "A-"
    B = "B"
    C = "C"


class TradeSession(str, Enum):
    NEW_YORK_AM = "new_york_am"
    NEW_YORK_PM = "new_york_pm"
    LONDON = "london"
    ASIA = "asia"


class Timeframe(str, Enum):
    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"
    D = "D"
    W = "W"
    MN = "M"


class MarketBias(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TimeWindow(str, Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


SESSION_LABELS: Dict[TradeSession, str] = {
    TradeSession.NEW_YORK_AM: "New York AM",
    TradeSession.NEW_YORK_PM: "New York PM",
    TradeSession.LONDON: "London",
    TradeSession.ASIA: "Asia",
}

RESULT_LABELS: Dict[TradeResult, str] = {
    TradeResult.TAKE_PROFIT: "Take Profit",
    TradeResult.STOPPED_OUT: "Stopped Out",
    TradeResult.BREAK_EVEN: "Break Even",
}

# Escala numérica para promediar grades (A+ mejor)
GRADE_SCORES: Dict[SetupGrade, int] = {
    SetupGrade.A_PLUS: 5,
    SetupGrade.A: 4,
    SetupGrade.A_MINUS: 3,
    SetupGrade.B: 2,
    SetupGrade.C: 1,
}


def grade_from_score(score: float) -> SetupGrade:
    """Re-bucketiza un promedio numérico al grade más cercano (umbrales semiabiertos)."""
    if score >= 4.5:
        return SetupGrade.A_PLUS
    if score >= 3.5:
        return SetupGrade.A
    if score >= 2.5:
        return SetupGrade.A_MINUS
    if score >= 1.5:
        return SetupGrade.B
    return SetupGrade.C


def confidence_label(confidence: Optional[float]) -> Optional[Confidence]:
    if confidence is None:
        return None
    if confidence >= 70:
        return Confidence.HIGH
    if confidence >= 40:
        return Confidence.MEDIUM
    return Confidence.LOW


def signed_profit(result: TradeResult, amount: Optional[float]) -> Optional[float]:
    """
    El formulario pide el monto siempre positivo; el signo lo pone el resultado:
      - take_profit => +|amount|
      - stopped_out => -|amount|
      - break_even  => 0
    """
    if result == TradeResult.BREAK_EVEN:
        return 0.0 if amount is not None else None
    if amount is None:
        return None
    value = abs(float(amount))
    return value if result == TradeResult.TAKE_PROFIT else -value


def _as_utc(value: datetime) -> datetime:
    # naive => UTC (lo que guarda Supabase en timestamptz)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TradeCreate(BaseModel):
    user_id: str
    instrument: str = Field(min_length=1, max_length=20)
    timeframe: Timeframe
    direction: Optional[TradeDirection] = None
    result: TradeResult
    session: Optional[TradeSession] = None
    entry_price: Optional[float] = Field(default=None, gt=0)
    exit_price: Optional[float] = Field(default=None, gt=0)
    open_time: datetime
    close_time: Optional[datetime] = None
    image_url: str = ""
    setup_grade: Optional[SetupGrade] = None
    ai_confidence: Optional[Confidence] = None
    ai_reasoning: Optional[str] = None
    overlay_entry_x: Optional[float] = Field(default=None, ge=0, le=100)
    overlay_entry_y: Optional[float] = Field(default=None, ge=0, le=100)
    notes: Optional[str] = Field(default=None, max_length=5000)
    profit_amount: Optional[float] = None

    @field_validator("instrument", mode="before")
    @classmethod
    def _strip_instrument(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("open_time", "close_time")
    @classmethod
    def _normalize_tz(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v is not None else None

    @model_validator(mode="after")
    def _check_consistency(self) -> "TradeCreate":
        if self.close_time is None:
            self.close_time = self.open_time
        if self.close_time < self.open_time:
            raise ValueError("close_time must not be earlier than open_time")

        p = self.profit_amount
        if p is not None:
            if self.result == TradeResult.TAKE_PROFIT and p < 0:
                raise ValueError("take_profit trades cannot have a negative profit_amount")
            if self.result == TradeResult.STOPPED_OUT and p > 0:
                raise ValueError("stopped_out trades cannot have a positive profit_amount")
            if self.result == TradeResult.BREAK_EVEN and p != 0:
                raise ValueError("break_even trades must have a zero profit_amount")
        return self

    def to_row(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["open_time"] = self.open_time.isoformat()
        payload["close_time"] = self.close_time.isoformat() if self.close_time else None
        return payload


class Trade(TradeCreate):
    id: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _created_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Optional["Trade"]:
        """
        Frontera con el store: valida una fila cruda de PostgREST.
        Campos opcionales con valores fuera del enum se anulan;
        si faltan campos requeridos (o son basura) devuelve None.
        """
        if not isinstance(row, dict):
            return None

        known = set(cls.model_fields)
        data = {k: v for k, v in row.items() if k in known}

        for name, enum in _OPTIONAL_ENUMS.items():
            if data.get(name) in ("", None):
                data[name] = None
                continue
            try:
                enum(data[name])
            except ValueError:
                data[name] = None

        for name in ("overlay_entry_x", "overlay_entry_y", "entry_price", "exit_price", "profit_amount"):
            data[name] = _coerce_float(data.get(name))
        for name in ("overlay_entry_x", "overlay_entry_y"):
            v = data[name]
            if v is not None and not (0 <= v <= 100):
                data[name] = None
        for name in ("entry_price", "exit_price"):
            v = data[name]
            if v is not None and v <= 0:
                data[name] = None

        if data.get("image_url") is None:
            data["image_url"] = ""

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            log.warning("Trade row %s rejected: %s", row.get("id"), e.errors()[:3])
            return None


_OPTIONAL_ENUMS = {
    "direction": TradeDirection,
    "session": TradeSession,
    "setup_grade": SetupGrade,
    "ai_confidence": Confidence,
}


def _coerce_float(x: Any) -> Optional[float]:
    if x is None or x == "":
        return None
    try:
        return float(x)
    except (TypeError, ValueError):
        return None


def parse_trade_rows(rows: Iterable[Dict[str, Any]]) -> List[Trade]:
    out: List[Trade] = []
    for row in rows or []:
        trade = Trade.from_row(row)
        if trade is not None:
            out.append(trade)
    return out


class Profile(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    timezone: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("username")
    @classmethod
    def _lower_username(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or self.email or "Trader"


class EntryCoordinate(BaseModel):
    x: float = Field(ge=0, le=100)
    y: float = Field(ge=0, le=100)


class AIFormData(BaseModel):
    market_bias: MarketBias
    confluence_factors: List[str] = Field(default_factory=list)
    setup_grade: SetupGrade
    confidence: float = Field(ge=1, le=100)
    entry_coordinate: EntryCoordinate
    reasoning: str

    @property
    def suggested_direction(self) -> TradeDirection:
        return TradeDirection.LONG if self.market_bias == MarketBias.BULLISH else TradeDirection.SHORT


class TradeFilters(BaseModel):
    result: Optional[TradeResult] = None
    setup_grade: Optional[SetupGrade] = None
    instrument: Optional[str] = None
    session: Optional[TradeSession] = None

    def is_empty(self) -> bool:
        return not any((self.result, self.setup_grade, self.instrument, self.session))


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str

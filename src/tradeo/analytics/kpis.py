from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
import pytz

from tradeo.domain.models import (
    GRADE_SCORES,
    SetupGrade,
    TimeWindow,
    Trade,
    TradeFilters,
    TradeResult,
    TradeSession,
    grade_from_score,
)
from tradeo.timezones import resolve_timezone

WINDOW_DAYS: Dict[TimeWindow, Optional[int]] = {
    TimeWindow.WEEK: 7,
    TimeWindow.MONTH: 30,
    TimeWindow.YEAR: 365,
    TimeWindow.ALL: None,
}

FRAME_COLUMNS = [
    "id",
    "instrument",
    "timeframe",
    "direction",
    "result",
    "session",
    "setup_grade",
    "profit_amount",
    "open_time",
    "created_at",
]


def win_rate_pct(wins: int, total: int) -> int:
    """round(100 * wins / total) con redondeo half-up; 0 si total == 0."""
    if total <= 0:
        return 0
    return int(math.floor(100.0 * wins / total + 0.5))


@dataclass(frozen=True)
class GroupPerformance:
    name: str
    wins: int
    total: int

    @property
    def win_rate(self) -> int:
        return win_rate_pct(self.wins, self.total)


@dataclass(frozen=True)
class SessionStats:
    wins: int = 0
    total: int = 0

    @property
    def win_rate(self) -> Optional[int]:
        # sin trades no se muestra porcentaje
        return win_rate_pct(self.wins, self.total) if self.total > 0 else None


@dataclass(frozen=True)
class DailyCount:
    day: date
    count: int


@dataclass(frozen=True)
class DailyProfit:
    day: date
    profit: float
    cumulative: float


@dataclass(frozen=True)
class TradeStats:
    total_trades: int = 0
    win_rate: int = 0
    grade_distribution: Dict[SetupGrade, int] = field(default_factory=dict)
    average_grade: SetupGrade = SetupGrade.C
    average_grade_score: float = 0.0
    result_distribution: Dict[TradeResult, int] = field(default_factory=dict)
    session_performance: Dict[TradeSession, SessionStats] = field(default_factory=dict)
    grade_win_rates: Dict[SetupGrade, GroupPerformance] = field(default_factory=dict)
    best_instrument: Optional[GroupPerformance] = None
    best_timeframe: Optional[GroupPerformance] = None
    this_week_count: int = 0
    trades_over_time: List[DailyCount] = field(default_factory=list)
    profit_over_time: List[DailyProfit] = field(default_factory=list)

    @property
    def total_profit(self) -> float:
        return self.profit_over_time[-1].cumulative if self.profit_over_time else 0.0


def _utc(now: datetime) -> datetime:
    return now.replace(tzinfo=timezone.utc) if now.tzinfo is None else now.astimezone(timezone.utc)


# ----------------------------
# Filtros (sin estado global: todo entra por parámetro)
# ----------------------------
def apply_filters(trades: Iterable[Trade], filters: Optional[TradeFilters]) -> List[Trade]:
    out = list(trades)
    if filters is None or filters.is_empty():
        return out
    if filters.result:
        out = [t for t in out if t.result == filters.result]
    if filters.setup_grade:
        out = [t for t in out if t.setup_grade == filters.setup_grade]
    if filters.instrument:
        needle = filters.instrument.strip().lower()
        out = [t for t in out if needle in t.instrument.lower()]
    if filters.session:
        out = [t for t in out if t.session == filters.session]
    return out


def filter_window(trades: Iterable[Trade], window: TimeWindow, now: datetime) -> List[Trade]:
    days = WINDOW_DAYS[TimeWindow(window)]
    if days is None:
        return list(trades)
    cutoff = _utc(now) - timedelta(days=days)
    return [t for t in trades if t.open_time >= cutoff]


def stats_frame(trades: Sequence[Trade]) -> pd.DataFrame:
    """Vista tabular de los trades (mantiene el orden de la colección)."""
    rows = [
        {
            "id": t.id,
            "instrument": t.instrument,
            "timeframe": t.timeframe.value,
            "direction": t.direction.value if t.direction else None,
            "result": t.result.value,
            "session": t.session.value if t.session else None,
            "setup_grade": t.setup_grade.value if t.setup_grade else None,
            "profit_amount": t.profit_amount,
            "open_time": t.open_time,
            "created_at": t.created_at,
        }
        for t in trades
    ]
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    if not df.empty:
        df["open_time"] = pd.to_datetime(df["open_time"], utc=True)
        df["created_at"] = pd.to_datetime(df["created_at"], utc=True)
        df["profit_amount"] = pd.to_numeric(df["profit_amount"], errors="coerce").replace([np.inf, -np.inf], np.nan)
    return df


# ----------------------------
# Métricas
# ----------------------------
def _grade_stats(df: pd.DataFrame) -> tuple[Dict[SetupGrade, int], float, SetupGrade]:
    dist = {g: 0 for g in SetupGrade}
    graded = df["setup_grade"].dropna()
    for value, n in graded.value_counts().items():
        dist[SetupGrade(value)] = int(n)

    scores = graded.map(lambda g: GRADE_SCORES[SetupGrade(g)])
    avg = float(scores.mean()) if len(scores) else 0.0
    return dist, avg, grade_from_score(avg)


def _result_distribution(df: pd.DataFrame) -> Dict[TradeResult, int]:
    dist = {r: 0 for r in TradeResult}
    for value, n in df["result"].value_counts().items():
        dist[TradeResult(value)] = int(n)
    return dist


def _group_performance(df: pd.DataFrame, col: str) -> List[GroupPerformance]:
    """wins/total por grupo, en orden de primera aparición en la colección."""
    d = df.dropna(subset=[col])
    if d.empty:
        return []
    is_win = pd.Series(np.where(d["result"] == TradeResult.TAKE_PROFIT.value, 1, 0), index=d.index)
    agg = is_win.groupby(d[col], sort=False).agg(["sum", "count"])
    return [GroupPerformance(name=str(k), wins=int(r["sum"]), total=int(r["count"])) for k, r in agg.iterrows()]


def best_group(groups: Sequence[GroupPerformance]) -> Optional[GroupPerformance]:
    """
    Mayor win rate (wins/total, sin redondear). Empates: gana el primero en orden
    de la colección. Grupos vacíos nunca se eligen.
    """
    best: Optional[GroupPerformance] = None
    best_rate = -1.0
    for g in groups:
        if g.total <= 0:
            continue
        rate = g.wins / g.total
        if rate > best_rate:
            best, best_rate = g, rate
    return best


def _session_performance(df: pd.DataFrame) -> Dict[TradeSession, SessionStats]:
    perf = {s: SessionStats() for s in TradeSession}
    for g in _group_performance(df, "session"):
        perf[TradeSession(g.name)] = SessionStats(wins=g.wins, total=g.total)
    return perf


def _grade_win_rates(df: pd.DataFrame) -> Dict[SetupGrade, GroupPerformance]:
    rates = {g: GroupPerformance(name=g.value, wins=0, total=0) for g in SetupGrade}
    for g in _group_performance(df, "setup_grade"):
        rates[SetupGrade(g.name)] = g
    return rates


def _local_day(df: pd.DataFrame, tz: str) -> pd.Series:
    return df["open_time"].dt.tz_convert(pytz.timezone(tz)).dt.date


def trades_over_time(df: pd.DataFrame, tz: str = "UTC") -> List[DailyCount]:
    if df.empty:
        return []
    counts = df.groupby(_local_day(df, tz)).size().sort_index()
    return [DailyCount(day=day, count=int(n)) for day, n in counts.items()]


def profit_over_time(df: pd.DataFrame, tz: str = "UTC") -> List[DailyProfit]:
    if df.empty:
        return []
    d = df[df["profit_amount"].notna()]
    if d.empty:
        return []
    d = d.sort_values("open_time", kind="mergesort")
    daily = d.groupby(_local_day(d, tz), sort=True)["profit_amount"].sum()
    cumulative = daily.cumsum()
    return [
        DailyProfit(day=day, profit=float(p), cumulative=float(c))
        for (day, p), c in zip(daily.items(), cumulative.tolist())
    ]


def compute_stats(
    trades: Iterable[Trade],
    *,
    now: datetime,
    window: TimeWindow = TimeWindow.ALL,
    filters: Optional[TradeFilters] = None,
    tz: str = "UTC",
) -> TradeStats:
    """
    Recalcula todas las métricas desde cero sobre la colección filtrada.
    Nunca falla: colecciones vacías devuelven todo en cero.
    """
    tz = resolve_timezone(tz)
    selected = filter_window(apply_filters(trades, filters), window, now)
    df = stats_frame(selected)

    if df.empty:
        return TradeStats(
            grade_distribution={g: 0 for g in SetupGrade},
            result_distribution={r: 0 for r in TradeResult},
            session_performance={s: SessionStats() for s in TradeSession},
            grade_win_rates={g: GroupPerformance(name=g.value, wins=0, total=0) for g in SetupGrade},
        )

    total = int(len(df))
    wins = int((df["result"] == TradeResult.TAKE_PROFIT.value).sum())
    grade_dist, avg_score, avg_grade = _grade_stats(df)

    week_cutoff = pd.Timestamp(_utc(now) - timedelta(days=7))
    this_week = int((df["open_time"] >= week_cutoff).sum())

    return TradeStats(
        total_trades=total,
        win_rate=win_rate_pct(wins, total),
        grade_distribution=grade_dist,
        average_grade=avg_grade,
        average_grade_score=avg_score,
        result_distribution=_result_distribution(df),
        session_performance=_session_performance(df),
        grade_win_rates=_grade_win_rates(df),
        best_instrument=best_group(_group_performance(df, "instrument")),
        best_timeframe=best_group(_group_performance(df, "timeframe")),
        this_week_count=this_week,
        trades_over_time=trades_over_time(df, tz),
        profit_over_time=profit_over_time(df, tz),
    )

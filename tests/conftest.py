"""Pytest configuration and shared fixtures."""

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from tradeo.domain.models import Trade, TradeResult

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

_ids = itertools.count(1)


def make_trade(**overrides) -> Trade:
    """Trade válido con defaults razonables; cualquier campo se puede pisar."""
    open_time = overrides.pop("open_time", NOW - timedelta(hours=1))
    result = overrides.pop("result", TradeResult.TAKE_PROFIT)
    data = {
        "id": f"t{next(_ids)}",
        "user_id": "user-1",
        "instrument": "EURUSD",
        "timeframe": "15m",
        "direction": "long",
        "result": result,
        "session": "london",
        "open_time": open_time,
        "close_time": open_time,
        "image_url": "",
        "setup_grade": "B",
        "profit_amount": None,
        "created_at": open_time,
    }
    data.update(overrides)
    return Trade.model_validate(data)


def trade_row(**overrides) -> dict:
    """Fila cruda tal como la devuelve PostgREST."""
    row = {
        "id": "row-1",
        "user_id": "user-1",
        "instrument": "XAUUSD",
        "timeframe": "1h",
        "direction": "short",
        "result": "stopped_out",
        "session": "new_york_am",
        "entry_price": "2350.5",
        "exit_price": 2355.0,
        "open_time": "2024-06-14T13:30:00+00:00",
        "close_time": "2024-06-14T14:00:00+00:00",
        "image_url": None,
        "setup_grade": "A-",
        "ai_confidence": "medium",
        "ai_reasoning": "Sweep of Asia highs",
        "overlay_entry_x": 62.5,
        "overlay_entry_y": 40,
        "notes": None,
        "profit_amount": -120.0,
        "created_at": "2024-06-14T14:05:00+00:00",
    }
    row.update(overrides)
    return row


class FakeSupabase:
    """Stand-in de SupabaseClient: tablas en memoria y registro de llamadas."""

    def __init__(self, tables=None):
        self.tables = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.calls = []
        self.objects = {}
        self.removed = []
        self.fail_on = {}

    def _maybe_fail(self, op):
        exc = self.fail_on.get(op)
        if exc is not None:
            raise exc

    @staticmethod
    def _matches(row, filters):
        for key, expr in (filters or {}).items():
            op, _, value = expr.partition(".")
            current = row.get(key)
            if op == "eq" and str(current) != value:
                return False
            if op == "ilike" and value.strip("*").lower() not in str(current or "").lower():
                return False
        return True

    def select(self, table, *, select="*", filters=None, order=None, limit=None):
        self.calls.append(("select", table, dict(filters or {}), order, limit))
        self._maybe_fail("select")
        rows = [dict(r) for r in self.tables.get(table, []) if self._matches(r, filters)]
        return rows[:limit] if limit is not None else rows

    def insert(self, table, rows):
        self.calls.append(("insert", table, rows))
        self._maybe_fail("insert")
        stored = []
        for row in rows:
            row = dict(row)
            row.setdefault("id", f"{table}-{len(self.tables.get(table, [])) + 1}")
            row.setdefault("created_at", NOW.isoformat())
            self.tables.setdefault(table, []).append(row)
            stored.append(dict(row))
        return stored

    def patch(self, table, filters, patch):
        self.calls.append(("patch", table, dict(filters), dict(patch)))
        self._maybe_fail("patch")
        out = []
        for row in self.tables.get(table, []):
            if self._matches(row, filters):
                row.update(patch)
                out.append(dict(row))
        return out

    def delete(self, table, filters):
        self.calls.append(("delete", table, dict(filters)))
        self._maybe_fail("delete")
        keep, gone = [], []
        for row in self.tables.get(table, []):
            (gone if self._matches(row, filters) else keep).append(row)
        self.tables[table] = keep
        return gone

    def upload_object(self, bucket, path, content, *, content_type, upsert=False, cache_control="3600"):
        self.calls.append(("upload", bucket, path, content_type, upsert))
        self._maybe_fail("upload")
        self.objects[(bucket, path)] = content
        return self.public_url(bucket, path)

    def remove_objects(self, bucket, paths):
        self.calls.append(("remove", bucket, list(paths)))
        self._maybe_fail("remove")
        for p in paths:
            self.objects.pop((bucket, p), None)
            self.removed.append((bucket, p))

    def public_url(self, bucket, path):
        return f"https://demo.supabase.co/storage/v1/object/public/{bucket}/{path}"


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def fake_sb():
    return FakeSupabase()

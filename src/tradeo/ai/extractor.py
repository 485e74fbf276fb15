"""
Extracción del JSON de análisis desde el texto libre que devuelve el modelo.

El modelo a veces envuelve el objeto en prosa o en ```json ... ```; tomamos el
primer objeto balanceado y lo validamos contra AIFormData.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from pydantic import ValidationError

from tradeo.domain.errors import ExtractionError
from tradeo.domain.models import AIFormData, SetupGrade

REQUIRED_FIELDS = (
    "market_bias",
    "confluence_factors",
    "setup_grade",
    "confidence",
    "entry_coordinate",
    "reasoning",
)


def _matching_brace(text: str, start: int) -> Optional[int]:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def extract_json_object(text: str) -> str:
    """Primer '{' hasta su '}' correspondiente; si nunca balancea, hasta el último '}'."""
    if not text:
        raise ExtractionError("empty response")
    start = text.find("{")
    if start == -1:
        raise ExtractionError("no JSON object found in response")

    end = _matching_brace(text, start)
    if end is None:
        end = text.rfind("}")
        if end <= start:
            raise ExtractionError("no JSON object found in response")
    return text[start : end + 1]


def _clamp(value: Any, lo: float, hi: float, name: str) -> float:
    if isinstance(value, bool):
        raise ExtractionError(f"{name} is not numeric")
    try:
        v = float(value)
    except (TypeError, ValueError) as e:
        raise ExtractionError(f"{name} is not numeric") from e
    return max(lo, min(hi, v))


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    missing = [k for k in REQUIRED_FIELDS if k not in data or data[k] is None]
    if missing:
        raise ExtractionError(f"missing fields: {', '.join(missing)}")

    out = dict(data)
    out["market_bias"] = str(data["market_bias"]).strip().lower()
    out["setup_grade"] = str(data["setup_grade"]).strip().upper()
    out["confidence"] = _clamp(data["confidence"], 1, 100, "confidence")

    coord = data["entry_coordinate"]
    if not isinstance(coord, dict) or "x" not in coord or "y" not in coord:
        raise ExtractionError("entry_coordinate must be an object with x and y")
    out["entry_coordinate"] = {
        "x": _clamp(coord["x"], 0, 100, "entry_coordinate.x"),
        "y": _clamp(coord["y"], 0, 100, "entry_coordinate.y"),
    }

    factors = data["confluence_factors"]
    if isinstance(factors, str):
        factors = [factors]
    if not isinstance(factors, list):
        raise ExtractionError("confluence_factors must be a list")
    out["confluence_factors"] = [str(f).strip() for f in factors if str(f).strip()]
    out["reasoning"] = str(data["reasoning"]).strip()
    return out


def extract_analysis(text: str) -> AIFormData:
    raw = extract_json_object(text)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"invalid JSON in response: {e.msg}") from e
    if not isinstance(data, dict):
        raise ExtractionError("response JSON is not an object")

    try:
        return AIFormData.model_validate(_normalize(data))
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ExtractionError(f"invalid analysis fields: {fields}") from e


def fallback_grade() -> SetupGrade:
    # sin análisis exitoso el trade se guarda con la nota más baja
    return SetupGrade.C

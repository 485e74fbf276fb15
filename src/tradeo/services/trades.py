from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from tradeo.ai.extractor import fallback_grade
from tradeo.data.repositories import TradeRepository
from tradeo.domain.errors import InputError, StoreError
from tradeo.domain.models import (
    AIFormData,
    Timeframe,
    Trade,
    TradeCreate,
    TradeDirection,
    TradeResult,
    TradeSession,
    confidence_label,
    signed_profit,
)
from tradeo.imaging import NormalizedImage
from tradeo.infra.storage import EvidenceStorage

log = logging.getLogger(__name__)


@dataclass
class TradeForm:
    """Lo que el usuario completa en 'New Trade' (monto siempre positivo)."""

    instrument: str
    timeframe: Timeframe
    result: TradeResult
    session: Optional[TradeSession]
    open_time: datetime
    close_time: Optional[datetime] = None
    direction: Optional[TradeDirection] = None
    amount: Optional[float] = None
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    notes: Optional[str] = None


def build_trade(
    owner_id: str,
    form: TradeForm,
    analysis: Optional[AIFormData],
    image_url: str = "",
) -> TradeCreate:
    """
    Campos IA solo si hubo análisis exitoso; si no, grade C y el resto en null.
    """
    if not form.instrument or not form.instrument.strip():
        raise InputError("Please fill in all required fields")

    ai_fields = {
        "setup_grade": fallback_grade(),
        "ai_confidence": None,
        "ai_reasoning": None,
        "overlay_entry_x": None,
        "overlay_entry_y": None,
    }
    if analysis is not None:
        ai_fields = {
            "setup_grade": analysis.setup_grade,
            "ai_confidence": confidence_label(analysis.confidence),
            "ai_reasoning": analysis.reasoning or None,
            "overlay_entry_x": analysis.entry_coordinate.x,
            "overlay_entry_y": analysis.entry_coordinate.y,
        }

    direction = form.direction
    if direction is None and analysis is not None:
        direction = analysis.suggested_direction

    try:
        return TradeCreate(
            user_id=owner_id,
            instrument=form.instrument,
            timeframe=form.timeframe,
            direction=direction,
            result=form.result,
            session=form.session,
            entry_price=form.entry_price,
            exit_price=form.exit_price,
            open_time=form.open_time,
            close_time=form.close_time,
            image_url=image_url,
            notes=(form.notes or "").strip() or None,
            profit_amount=signed_profit(form.result, form.amount),
            **ai_fields,
        )
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"]) or "trade"
        raise InputError(f"Invalid {where}: {first['msg']}") from e


class TradeService:
    def __init__(self, repo: TradeRepository, screenshots: EvidenceStorage):
        self.repo = repo
        self.screenshots = screenshots

    def submit_trade(
        self,
        owner_id: str,
        form: TradeForm,
        *,
        image: Optional[NormalizedImage] = None,
        analysis: Optional[AIFormData] = None,
    ) -> Trade:
        # valida antes de subir la imagen para no dejar huérfanos en el bucket
        build_trade(owner_id, form, analysis)

        image_url = ""
        if image is not None:
            path = self.screenshots.build_path(owner_id=owner_id, filename=image.filename)
            image_url = self.screenshots.upload(path=path, content=image.payload, content_type=image.mime_type)
            log.info("Screenshot uploaded: %s (%d bytes)", path, len(image.payload))

        trade = build_trade(owner_id, form, analysis, image_url=image_url)
        try:
            return self.repo.insert(trade)
        except StoreError:
            if image_url:
                self._release_image(image_url)
            raise

    def delete_trade(self, owner_id: str, trade_id: str) -> None:
        trade = self.repo.get(owner_id, trade_id)
        self.repo.delete_by_id(owner_id, trade_id)
        if trade.image_url:
            self._release_image(trade.image_url)

    def _release_image(self, url: str) -> None:
        try:
            self.screenshots.remove_by_url(url)
        except StoreError as e:
            # el trade ya no existe; un objeto huérfano no debe romper la acción del usuario
            log.warning("Could not remove screenshot %s: %s", url, e)

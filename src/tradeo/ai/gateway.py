from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import openai
import tiktoken
from openai import OpenAI

from tradeo.ai.extractor import extract_analysis
from tradeo.ai.prompts import CHAT_HISTORY_LIMIT, CHAT_SYSTEM_PROMPT, PROMPT_VERSION, VISION_SYSTEM_PROMPT
from tradeo.config import DEFAULT_MODEL, AppConfig
from tradeo.domain.errors import GatewayError, InputError
from tradeo.domain.models import AIFormData, ChatMessage

log = logging.getLogger(__name__)


def _count_text_tokens(model: str, text: str) -> int:
    """
    Estimación SOLO texto (tiktoken).
    Ojo: imágenes no se contabilizan aquí.
    """
    try:
        enc = tiktoken.encoding_for_model(model)
    except KeyError:
        enc = tiktoken.get_encoding("cl100k_base")
    return len(enc.encode(text))


def _usage_to_dict(resp: Any) -> Dict[str, Any]:
    usage = getattr(resp, "usage", None)
    if usage is None:
        return {}
    if isinstance(usage, dict):
        return usage
    d: Dict[str, Any] = {}
    for k in ("input_tokens", "output_tokens", "total_tokens"):
        v = getattr(usage, k, None)
        if v is not None:
            d[k] = v
    return d


def _gateway_error(e: Exception) -> GatewayError:
    if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return GatewayError("auth", str(e))
    if isinstance(e, openai.RateLimitError):
        return GatewayError("quota", str(e))
    if isinstance(e, (openai.APIConnectionError, openai.APITimeoutError)):
        return GatewayError("network", str(e))
    return GatewayError("other", str(e))


def to_data_url(content: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"


class AIGateway:
    """Vision + chat sobre la Responses API de OpenAI. Sin reintentos: un request, una respuesta."""

    def __init__(self, client: OpenAI, model: str = DEFAULT_MODEL, *, max_output_tokens: int = 1000):
        self.client = client
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.last_meta: Dict[str, Any] = {}

    def _create(self, **kwargs: Any) -> str:
        started_at = datetime.now(timezone.utc).isoformat()
        try:
            resp = self.client.responses.create(
                model=self.model,
                max_output_tokens=self.max_output_tokens,
                **kwargs,
            )
        except openai.OpenAIError as e:
            err = _gateway_error(e)
            log.warning("OpenAI request failed (%s): %s", err.kind, e)
            raise err from e

        usage = _usage_to_dict(resp)
        self.last_meta = {
            "model": self.model,
            "started_at": started_at,
            "ended_at": datetime.now(timezone.utc).isoformat(),
            "usage": usage,
        }
        log.debug("OpenAI usage: %s", usage)

        text = getattr(resp, "output_text", None) or ""
        if not text.strip():
            raise GatewayError("other", "empty response from model")
        return text

    def analyze(self, image_bytes: bytes, mime_type: str, prompt: str = VISION_SYSTEM_PROMPT) -> str:
        if not image_bytes:
            raise InputError("No image provided")
        if not mime_type.startswith("image/"):
            raise InputError("Invalid image format. Please upload a valid image.")

        log.debug("Vision prompt ~%d text tokens", _count_text_tokens(self.model, prompt))
        content: List[Dict[str, Any]] = [
            {"type": "input_text", "text": prompt},
            {"type": "input_image", "image_url": to_data_url(image_bytes, mime_type)},
        ]
        text = self.analyze_raw(content)
        self.last_meta["prompt_version"] = PROMPT_VERSION
        return text

    def analyze_raw(self, content: List[Dict[str, Any]]) -> str:
        return self._create(input=[{"role": "user", "content": content}], temperature=0.3)

    def converse(self, message: str, history: Sequence[ChatMessage]) -> str:
        message = (message or "").strip()
        if not message:
            raise InputError("Message is empty")

        recent = list(history)[-CHAT_HISTORY_LIMIT:]
        turns: List[Dict[str, Any]] = [{"role": m.role, "content": m.content} for m in recent]
        turns.append({"role": "user", "content": message})

        log.debug(
            "Chat prompt ~%d text tokens (%d turns)",
            _count_text_tokens(self.model, CHAT_SYSTEM_PROMPT + "".join(t["content"] for t in turns)),
            len(turns),
        )
        return self._create(instructions=CHAT_SYSTEM_PROMPT, input=turns)


def analyze_chart(gateway: AIGateway, image_bytes: bytes, mime_type: str) -> AIFormData:
    """Imagen -> texto crudo -> AIFormData. Lanza GatewayError o ExtractionError."""
    return extract_analysis(gateway.analyze(image_bytes, mime_type))


def load_gateway_from_config(cfg: AppConfig) -> Optional[AIGateway]:
    if not cfg.openai_api_key:
        return None
    return AIGateway(OpenAI(api_key=cfg.openai_api_key), cfg.openai_model)

from __future__ import annotations

from typing import Literal, Optional


class TradeoError(Exception):
    """Base de todos los errores que la UI muestra al usuario."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str = "", *, user_message: Optional[str] = None):
        super().__init__(message or self.user_message)
        if user_message:
            self.user_message = user_message


class InputError(TradeoError):
    """Imagen inválida, campos faltantes, username corto/tomado."""

    def __init__(self, message: str):
        super().__init__(message, user_message=message)


class ExtractionError(TradeoError):
    user_message = "Analysis failed. You can still save the trade without it."


class StoreError(TradeoError):
    user_message = "Could not reach the trade store. Please try again."

    def __init__(self, message: str = "", *, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class UniqueViolationError(StoreError):
    user_message = "That value is already taken."


class NotFoundError(StoreError):
    user_message = "Not found."


class AuthError(StoreError):
    user_message = "Not authenticated."


GatewayErrorKind = Literal["auth", "quota", "network", "other"]


class GatewayError(TradeoError):
    _MESSAGES = {
        "auth": "AI provider rejected the API key.",
        "quota": "AI provider quota exceeded. Try again later.",
        "network": "Could not reach the AI provider.",
        "other": "AI request failed.",
    }

    def __init__(self, kind: GatewayErrorKind, message: str = ""):
        super().__init__(message or kind, user_message=self._MESSAGES.get(kind))
        self.kind = kind

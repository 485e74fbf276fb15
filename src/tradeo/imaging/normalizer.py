from __future__ import annotations

import base64
import io
import logging
import mimetypes
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from tradeo.domain.errors import InputError

log = logging.getLogger(__name__)

MAX_DIMENSION = 1024
OUTPUT_FORMAT = "WEBP"
OUTPUT_MIME = "image/webp"
OUTPUT_QUALITY = 85  # equivale a 0.85 en canvas.toDataURL

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)


@dataclass(frozen=True)
class NormalizedImage:
    payload: bytes
    mime_type: str
    width: int
    height: int
    filename: str
    normalized: bool

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.payload).decode('ascii')}"


def target_size(width: int, height: int, max_dim: int = MAX_DIMENSION) -> Tuple[int, int]:
    """Escala para que ningún lado supere max_dim, manteniendo proporción."""
    if width <= max_dim and height <= max_dim:
        return width, height
    ratio = min(max_dim / width, max_dim / height)
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def _webp_name(filename: Optional[str]) -> str:
    base = (filename or "chart").rsplit("/", 1)[-1]
    stem = base.rsplit(".", 1)[0] if "." in base else base
    return f"{stem or 'chart'}.webp"


def _guess_mime(filename: Optional[str], fmt: Optional[str]) -> str:
    if fmt:
        mime = Image.MIME.get(fmt.upper())
        if mime:
            return mime
    if filename:
        mime, _ = mimetypes.guess_type(filename)
        if mime and mime.startswith("image/"):
            return mime
    return "application/octet-stream"


def normalize_image(data: bytes, filename: Optional[str] = None) -> NormalizedImage:
    """
    Decodifica, reduce a <= 1024px por lado y re-codifica a WebP (q=85).
    Si el re-encode falla devuelve el archivo original sin tocar: nunca bloquea el flujo.
    """
    if not data:
        raise InputError("No image provided")

    try:
        with Image.open(io.BytesIO(data)) as probe:
            fmt = probe.format
            orig_w, orig_h = probe.size
    except Image.DecompressionBombError as e:
        raise InputError("Image is too large.") from e
    except (UnidentifiedImageError, OSError) as e:
        raise InputError("The file is not a valid image.") from e

    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
            w, h = target_size(*img.size)
            if (w, h) != img.size:
                img = img.resize((w, h), Image.LANCZOS)
            buf = io.BytesIO()
            img.save(buf, format=OUTPUT_FORMAT, quality=OUTPUT_QUALITY)
    except Exception as e:  # Pillow puede fallar de muchas formas (codec, memoria, ...)
        log.warning("Image re-encode failed, sending original (%s): %s", fmt, e)
        return NormalizedImage(
            payload=data,
            mime_type=_guess_mime(filename, fmt),
            width=orig_w,
            height=orig_h,
            filename=filename or "chart",
            normalized=False,
        )

    out = buf.getvalue()
    log.debug("Image normalized %dx%d -> %dx%d (%d -> %d bytes)", orig_w, orig_h, w, h, len(data), len(out))
    return NormalizedImage(
        payload=out,
        mime_type=OUTPUT_MIME,
        width=w,
        height=h,
        filename=_webp_name(filename),
        normalized=True,
    )


def parse_data_url(url: str) -> Tuple[str, bytes]:
    m = _DATA_URL_RE.match(url or "")
    if not m:
        raise InputError("Invalid image format. Please upload a valid image.")
    try:
        content = base64.b64decode(m.group("data"), validate=True)
    except (ValueError, TypeError) as e:
        raise InputError("Invalid image format. Please upload a valid image.") from e
    return m.group("mime"), content

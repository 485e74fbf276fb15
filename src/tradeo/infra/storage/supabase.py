from __future__ import annotations

import re
import time
from typing import Callable, Optional

from tradeo.data.supabase_client import SupabaseClient

from .base import EvidenceStorage


def _sanitize(text: str) -> str:
    text = text.strip().lower().replace(" ", "_")
    return re.sub(r"[^a-z0-9._-]+", "", text)


class SupabaseBucketStorage(EvidenceStorage):
    """Supabase Storage: un bucket público, objetos en <owner>/<archivo>."""

    def __init__(
        self,
        sb: SupabaseClient,
        *,
        bucket: str,
        clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ):
        self.sb = sb
        self.bucket = bucket
        self.clock_ms = clock_ms

    def build_path(
        self,
        *,
        owner_id: str,
        filename: str,
    ) -> str:
        # owner_id primero: las policies del bucket comparan la primera carpeta con auth.uid()
        ext = ""
        if "." in filename:
            ext = "." + _sanitize(filename.rsplit(".", 1)[1])
        return f"{owner_id}/{self.clock_ms()}{ext}"

    def upload(
        self,
        *,
        path: str,
        content: bytes,
        content_type: str,
        overwrite: bool = False,
    ) -> str:
        return self.sb.upload_object(
            self.bucket, path, content, content_type=content_type, upsert=overwrite
        )

    def path_from_url(self, url: str) -> Optional[str]:
        marker = f"/{self.bucket}/"
        if marker not in url:
            return None
        path = url.split(marker, 1)[1].split("?", 1)[0]
        return path or None

    def remove(self, *, path: str) -> None:
        self.sb.remove_objects(self.bucket, [path])

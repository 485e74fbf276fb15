from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class EvidenceStorage(ABC):
    @abstractmethod
    def build_path(
        self,
        *,
        owner_id: str,
        filename: str,
    ) -> str:
        pass

    @abstractmethod
    def upload(
        self,
        *,
        path: str,
        content: bytes,
        content_type: str,
        overwrite: bool = False,
    ) -> str:
        """
        Sube el archivo y devuelve la URL pública/final.
        """
        pass

    @abstractmethod
    def path_from_url(self, url: str) -> Optional[str]:
        pass

    @abstractmethod
    def remove(self, *, path: str) -> None:
        pass

    def remove_by_url(self, url: str) -> bool:
        """Libera el objeto referenciado por una URL pública. False si la URL no es de este storage."""
        path = self.path_from_url(url) if url else None
        if not path:
            return False
        self.remove(path=path)
        return True

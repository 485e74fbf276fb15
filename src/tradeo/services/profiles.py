from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from tradeo.data.repositories import ProfileRepository
from tradeo.domain.errors import InputError, UniqueViolationError
from tradeo.domain.models import Profile
from tradeo.infra.storage import EvidenceStorage
from tradeo.timezones import get_timezone

log = logging.getLogger(__name__)

USERNAME_MIN = 3
USERNAME_MAX = 30
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")

AVATAR_MAX_BYTES = 5 * 1024 * 1024
AVATAR_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

UsernameStatus = Literal["too_short", "invalid", "available", "taken"]


def username_problem(username: str) -> Optional[UsernameStatus]:
    name = (username or "").strip()
    if len(name) < USERNAME_MIN:
        return "too_short"
    if len(name) > USERNAME_MAX or not _USERNAME_RE.match(name):
        return "invalid"
    return None


def validate_username(username: str) -> str:
    """Devuelve el username normalizado (minúsculas) o lanza InputError."""
    problem = username_problem(username)
    if problem == "too_short":
        raise InputError(f"Username must be at least {USERNAME_MIN} characters")
    if problem == "invalid":
        raise InputError("Username may only contain letters, numbers and underscores")
    return username.strip().lower()


@dataclass(frozen=True)
class UsernameCheck:
    username: str
    status: UsernameStatus

    @property
    def available(self) -> bool:
        return self.status == "available"


class UsernameChecker:
    """
    Disponibilidad de username con cancel-and-replace: cada input nuevo reemplaza
    al pendiente y solo se aplica el resultado del último.
    """

    def __init__(self, is_available: Callable[[str], bool]):
        self._is_available = is_available
        self._lock = threading.Lock()
        self._seq = 0
        self._latest: Optional[UsernameCheck] = None

    @property
    def latest(self) -> Optional[UsernameCheck]:
        return self._latest

    def request(self, username: str) -> int:
        with self._lock:
            self._seq += 1
            return self._seq

    def is_current(self, ticket: int) -> bool:
        with self._lock:
            return ticket == self._seq

    def complete(self, ticket: int, username: str) -> Optional[UsernameCheck]:
        """Ejecuta el chequeo del ticket; None si otro input lo reemplazó."""
        problem = username_problem(username)
        if problem is not None:
            result = UsernameCheck(username, problem)
        else:
            if not self.is_current(ticket):
                return None
            available = self._is_available(username.strip().lower())
            result = UsernameCheck(username, "available" if available else "taken")

        with self._lock:
            if ticket != self._seq:
                return None
            self._latest = result
        return result

    def check(self, username: str) -> Optional[UsernameCheck]:
        """Chequeo sincrónico; si otro hilo lo reemplazó devuelve el resultado vigente."""
        ticket = self.request(username)
        result = self.complete(ticket, username)
        return result if result is not None else self._latest


class ProfileService:
    def __init__(self, repo: ProfileRepository, avatars: EvidenceStorage):
        self.repo = repo
        self.avatars = avatars

    def checker_for(self, owner_id: Optional[str]) -> UsernameChecker:
        return UsernameChecker(lambda name: self.repo.is_username_available(name, exclude_owner=owner_id))

    def complete_profile(self, owner_id: str, username: str, display_name: Optional[str] = None) -> Profile:
        name = validate_username(username)
        if not self.repo.is_username_available(name, exclude_owner=owner_id):
            raise InputError("This username is already taken")
        try:
            return self.repo.update(owner_id, username=name, full_name=(display_name or "").strip() or name)
        except UniqueViolationError as e:
            # carrera: otro usuario lo tomó entre el chequeo y el update
            raise InputError("This username is already taken") from e

    def update_profile(
        self,
        owner_id: str,
        *,
        full_name: Optional[str] = None,
        username: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> Profile:
        fields = {}
        if full_name is not None:
            name = full_name.strip()
            if name and not (2 <= len(name) <= 100):
                raise InputError("Name must be between 2 and 100 characters")
            fields["full_name"] = name or None
        if username:
            fields["username"] = validate_username(username)
        if timezone is not None:
            if get_timezone(timezone) is None:
                raise InputError(f"Unknown timezone: {timezone}")
            fields["timezone"] = timezone
        try:
            return self.repo.update(owner_id, **fields)
        except UniqueViolationError as e:
            raise InputError("This username is already taken") from e

    def upload_avatar(self, owner_id: str, filename: str, content: bytes, content_type: str) -> Profile:
        if content_type not in AVATAR_TYPES:
            raise InputError("Invalid file type. Please upload a JPEG, PNG, GIF, or WebP image.")
        if len(content) > AVATAR_MAX_BYTES:
            raise InputError("File too large. Maximum size is 5MB.")

        path = self.avatars.build_path(owner_id=owner_id, filename=filename)
        url = self.avatars.upload(path=path, content=content, content_type=content_type, overwrite=True)
        log.info("Avatar uploaded for %s: %s", owner_id, path)
        return self.repo.update(owner_id, avatar_url=url)

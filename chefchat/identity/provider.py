"""User directory and access tokens.

Sign-in and password handling live elsewhere; this module only knows how to
mint an expiring credential for a user id and turn one back into a
:class:`User`.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet

from ..crypto import decrypt_token, encrypt_token
from ..jsonfile import load_json, write_json_atomic
from .models import User

logger = logging.getLogger(__name__)


class UserDirectory:
    """JSON-file-backed user records (``users.json``)."""

    def __init__(self, path: Path) -> None:
        self._path = path
        raw = load_json(path, [])
        self._users: dict[str, User] = {u["id"]: User(**u) for u in raw}

    def _save(self) -> None:
        write_json_atomic(self._path, [u.model_dump() for u in self._users.values()])

    def add_user(
        self, display_name: str, email: str = "", user_id: Optional[str] = None
    ) -> User:
        user = User(
            id=user_id or uuid.uuid4().hex[:12],
            display_name=display_name.strip(),
            email=email.strip().lower(),
        )
        self._users[user.id] = user
        self._save()
        logger.info("Registered user %s", user.id)
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        wanted = email.strip().lower()
        if not wanted:
            return None
        for user in self._users.values():
            if user.email == wanted:
                return user
        return None


class IdentityProvider:
    def __init__(
        self,
        directory: UserDirectory,
        token_ttl_seconds: int,
        fernet: Optional[Fernet] = None,
    ) -> None:
        self.directory = directory
        self.token_ttl_seconds = token_ttl_seconds
        self._fernet = fernet

    def issue_token(self, user_id: str) -> str:
        return encrypt_token(user_id, self._fernet)

    def resolve_token(self, token: str) -> Optional[User]:
        if not token:
            return None
        user_id = decrypt_token(token, self.token_ttl_seconds, self._fernet)
        if user_id is None:
            return None
        # Token for a deleted user is as good as no token
        return self.directory.get_user(user_id)

    def get_user(self, user_id: str) -> Optional[User]:
        return self.directory.get_user(user_id)

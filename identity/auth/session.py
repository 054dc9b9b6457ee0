from __future__ import annotations

import re
import secrets
from typing import Optional, Tuple

from identity.auth.config import AuthConfig

SESSION_COOKIE_NAME = "token"
TOKEN_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"

# ASCII digits, no sign/underscore/leading zero
_USER_ID_RE = re.compile(r"[1-9][0-9]*|0")
_TOKEN_RE = re.compile(r"[0-9a-z]+")


def random_token(length: int) -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def compose_credential(user_id: int, token: str) -> str:
    return f"{user_id}:{token}"


def parse_credential(value: Optional[str]) -> Optional[Tuple[int, str]]:
    """
    Split a `userId:token` credential.

    Returns None unless there is exactly one `:` with a canonical decimal user
    id on the left and a non-empty lowercase alphanumeric token on the right.
    Nothing is trimmed: the credential must be exactly what
    `SessionManager.mint` produced.
    """
    if not value:
        return None
    parts = value.split(":")
    if len(parts) != 2:
        return None
    raw_user_id, token = parts
    if not _USER_ID_RE.fullmatch(raw_user_id) or not _TOKEN_RE.fullmatch(token):
        return None
    return int(raw_user_id), token


class SessionManager:
    """Mints and validates opaque session credentials backed by the `logins` table."""

    def __init__(self, store, token_length: int = 32) -> None:
        self._store = store
        self.token_length = token_length

    def mint(self, user_id: int) -> str:
        record = self._store.add_login(user_id, random_token(self.token_length))
        return compose_credential(record.user_id, record.token)

    def validate(self, credential: Optional[str]) -> Optional[int]:
        """Return the owning user id, or None when the credential is malformed or unknown."""
        parsed = parse_credential(credential)
        if parsed is None:
            return None
        user_id, token = parsed
        if not self._store.has_login(user_id, token):
            return None
        return user_id


def session_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    # No max_age: sessions do not expire.
    return {
        "key": SESSION_COOKIE_NAME,
        "value": value,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs(cfg: AuthConfig) -> dict:
    return {
        "key": SESSION_COOKIE_NAME,
        "value": "",
        "max_age": 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }

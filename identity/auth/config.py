from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

DEFAULT_GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000,http://localhost:3001"


@dataclass(frozen=True)
class AuthConfig:
    # Google sign-in
    google_client_id: Optional[str]  # Expected `aud` of Google ID tokens
    google_jwks_url: str
    google_jwks_cache_seconds: int

    # Browser-facing settings
    allowed_origins: List[str]
    cookie_secure: bool

    # Session tokens
    session_token_length: int

    @property
    def google_enabled(self) -> bool:
        """Google sign-in is enabled once a client id is configured."""
        return bool(self.google_client_id)


def _parse_csv(value: str) -> List[str]:
    items = [x.strip() for x in (value or "").split(",")]
    return [x for x in items if x]


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    Google sign-in is enabled if GOOGLE_CLIENT_ID is set. Password login and
    registration are always available.
    """
    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    cookie_secure = cookie_secure_env in ("1", "true", "yes", "on")

    jwks_ttl = _env_int("GOOGLE_JWKS_CACHE_SECONDS", 3600)
    if jwks_ttl < 60:
        jwks_ttl = 60

    token_length = _env_int("SESSION_TOKEN_LENGTH", 32)
    token_length = max(8, min(token_length, 128))

    return AuthConfig(
        google_client_id=(os.getenv("GOOGLE_CLIENT_ID", "") or "").strip() or None,
        google_jwks_url=(os.getenv("GOOGLE_JWKS_URL", "") or "").strip() or DEFAULT_GOOGLE_JWKS_URL,
        google_jwks_cache_seconds=jwks_ttl,
        allowed_origins=_parse_csv(os.getenv("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS)),
        cookie_secure=cookie_secure,
        session_token_length=token_length,
    )

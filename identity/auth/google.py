from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import jwt  # PyJWT
import requests

from identity.auth.config import AuthConfig
from identity.auth.models import VerifiedProfile

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")

_jwks_cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]] = {}


class InvalidAssertion(Exception):
    """Raised for any Google ID token that fails verification (reason is not exposed)."""


def _fetch_jwks(jwks_uri: str) -> Dict[str, Any]:
    r = requests.get(jwks_uri, timeout=10)
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError("Invalid JWKS")
    return data


def _get_jwks(jwks_uri: str, *, ttl_seconds: int, force_refresh: bool = False) -> Dict[str, Any]:
    """
    Fetch Google's JWKS (JSON Web Key Set).
    Caches result for `ttl_seconds` per JWKS URI.
    """
    ts, cached = _jwks_cache.get(jwks_uri, (0.0, None))
    now = time.time()
    if not force_refresh and cached is not None and now - ts < ttl_seconds:
        return cached
    data = _fetch_jwks(jwks_uri)
    _jwks_cache[jwks_uri] = (now, data)
    return data


def _find_jwk(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    keys = jwks.get("keys")
    if not isinstance(keys, list):
        raise ValueError("Invalid JWKS keys")
    for k in keys:
        if isinstance(k, dict) and str(k.get("kid") or "") == kid:
            return k
    return None


class GoogleIdentityVerifier:
    """
    Verify Google-issued ID tokens sent by the web client after sign-in.

    - Verifies the RS256 signature using Google's published keys
    - Validates issuer, audience, expiry
    - Re-fetches the key set once when the token references an unknown `kid`
      (Google rotates its signing keys)
    """

    def __init__(self, client_id: Optional[str], *, jwks_url: str, cache_ttl_seconds: int = 3600) -> None:
        self.client_id = client_id
        self.jwks_url = jwks_url
        self.cache_ttl_seconds = cache_ttl_seconds

    @classmethod
    def from_config(cls, cfg: AuthConfig) -> "GoogleIdentityVerifier":
        return cls(
            cfg.google_client_id,
            jwks_url=cfg.google_jwks_url,
            cache_ttl_seconds=cfg.google_jwks_cache_seconds,
        )

    def _signing_key(self, kid: str) -> Any:
        jwks = _get_jwks(self.jwks_url, ttl_seconds=self.cache_ttl_seconds)
        jwk = _find_jwk(jwks, kid)
        if jwk is None:
            jwks = _get_jwks(self.jwks_url, ttl_seconds=self.cache_ttl_seconds, force_refresh=True)
            jwk = _find_jwk(jwks, kid)
        if jwk is None:
            raise ValueError("Unknown signing key (kid)")
        return jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))

    def _decode(self, assertion: str, audience: str) -> Dict[str, Any]:
        hdr = jwt.get_unverified_header(assertion)
        kid = str(hdr.get("kid") or "")
        if not kid:
            raise ValueError("ID token missing kid")

        claims = jwt.decode(
            assertion,
            key=self._signing_key(kid),
            algorithms=["RS256"],
            audience=audience,
            options={
                "require": ["exp", "iat", "iss", "aud", "sub"],
            },
        )
        if not isinstance(claims, dict):
            raise ValueError("Invalid ID token claims")
        if str(claims.get("iss") or "") not in GOOGLE_ISSUERS:
            raise ValueError("Unexpected issuer")
        return claims

    def verify(self, assertion: str, audience: Optional[str] = None) -> VerifiedProfile:
        """
        Verify a Google ID token and return the asserted profile.

        Raises InvalidAssertion on any failure; the specific check that failed
        is only logged at debug level.
        """
        expected_audience = audience or self.client_id
        if not expected_audience:
            raise InvalidAssertion("Google sign-in is not configured")
        try:
            claims = self._decode(assertion, expected_audience)
        except (jwt.PyJWTError, requests.RequestException, ValueError, TypeError) as e:
            logger.debug("Google ID token rejected: %s", str(e))
            raise InvalidAssertion("Invalid Google ID token") from None

        subject = str(claims.get("sub") or "").strip()
        email = str(claims.get("email") or "").strip()
        if not subject or not email:
            logger.debug("Google ID token rejected: missing sub/email claim")
            raise InvalidAssertion("Invalid Google ID token")

        email_verified = claims.get("email_verified")
        if isinstance(email_verified, str):
            # Older tokens encode the flag as a string.
            email_verified = email_verified.lower() == "true"

        return VerifiedProfile(
            subject=subject,
            email=email,
            email_verified=bool(email_verified),
            given_name=str(claims.get("given_name") or ""),
            family_name=str(claims.get("family_name") or ""),
        )

"""
Pytest config.

Pins the repo root on sys.path so `import identity` works when a global
`pytest` entrypoint is used without installing the package, and provides
in-memory stand-ins for the Postgres store and the Google verifier.
"""

from __future__ import annotations

import itertools
import sys
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from identity.auth.google import InvalidAssertion  # noqa: E402
from identity.auth.models import LoginRecord, UserAccount, VerifiedProfile  # noqa: E402
from identity.storage.store import DuplicateAccountError  # noqa: E402


class MemoryCredentialStore:
    """Dict-backed credential store with the same uniqueness rules as the schema."""

    def __init__(self) -> None:
        self.users: Dict[int, UserAccount] = {}
        self.logins: Set[Tuple[int, str]] = set()
        self._ids = itertools.count(1)

    def get_user(self, user_id: int) -> Optional[UserAccount]:
        return self.users.get(user_id)

    def find_by_email(self, email: str) -> Optional[UserAccount]:
        for u in self.users.values():
            if u.email == email:
                return u
        return None

    def find_by_google_or_email(self, google_user_id: str, email: str) -> Optional[UserAccount]:
        for u in self.users.values():
            if u.google_user_id == google_user_id:
                return u
        return self.find_by_email(email)

    def create_user(self, *, email, first_name, last_name, email_verified=False, password_hash=None, google_user_id=None):
        if self.find_by_email(email) is not None:
            raise DuplicateAccountError("duplicate key value violates unique constraint \"users_email_key\"")
        if google_user_id and any(u.google_user_id == google_user_id for u in self.users.values()):
            raise DuplicateAccountError("duplicate key value violates unique constraint \"users_google_user_id_key\"")
        user = UserAccount(
            user_id=next(self._ids),
            email=email,
            first_name=first_name,
            last_name=last_name,
            email_verified=email_verified,
            password_hash=password_hash,
            google_user_id=google_user_id,
        )
        self.users[user.user_id] = user
        return user

    def add_login(self, user_id: int, token: str) -> LoginRecord:
        self.logins.add((user_id, token))
        return LoginRecord(user_id=user_id, token=token)

    def has_login(self, user_id: int, token: str) -> bool:
        return (user_id, token) in self.logins

    def close(self) -> None:
        return None


class FakeGoogleVerifier:
    """Maps assertion strings to profiles; anything unknown is rejected."""

    def __init__(self) -> None:
        self.profiles: Dict[str, VerifiedProfile] = {}
        self.calls: List[str] = []

    def add(self, assertion: str, profile: VerifiedProfile) -> None:
        self.profiles[assertion] = profile

    def verify(self, assertion: str, audience: Optional[str] = None) -> VerifiedProfile:
        self.calls.append(assertion)
        profile = self.profiles.get(assertion)
        if profile is None:
            raise InvalidAssertion("Invalid Google ID token")
        return profile


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def verifier() -> FakeGoogleVerifier:
    return FakeGoogleVerifier()


@pytest.fixture
def google_profile() -> VerifiedProfile:
    return VerifiedProfile(
        subject="109876543210",
        email="grace@example.com",
        email_verified=True,
        given_name="Grace",
        family_name="Hopper",
    )


@pytest.fixture(autouse=True)
def _fresh_auth_config():
    """Config is lru_cached from env; tests that monkeypatch env need a clean read."""
    from identity.auth.config import load_auth_config

    load_auth_config.cache_clear()
    yield
    load_auth_config.cache_clear()

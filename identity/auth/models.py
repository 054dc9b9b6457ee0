from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class UserAccount:
    """User account stored in the `users` table (local, federated, or both)."""

    user_id: int
    email: str
    first_name: str
    last_name: str
    email_verified: bool = False
    password_hash: Optional[str] = None
    google_user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_federated_only(self) -> bool:
        return bool(self.google_user_id) and not self.password_hash


@dataclass(frozen=True)
class LoginRecord:
    """Issued session token, stored in the `logins` table."""

    user_id: int
    token: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class VerifiedProfile:
    """Profile extracted from a verified Google ID token."""

    subject: str  # `sub`: stable per Google account
    email: str
    email_verified: bool
    given_name: str
    family_name: str


@dataclass(frozen=True)
class AuthResult:
    user: UserAccount
    credential: str  # Composite `userId:token`


@dataclass(frozen=True)
class IdentityCheck:
    """Outcome of resolving a stored session credential."""

    logged_in: bool
    user: Optional[UserAccount] = None
    clear_credential: bool = False
    error: Optional[str] = None

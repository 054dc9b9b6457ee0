"""
Account resolution for the two credential paths.

The resolver decides whether an incoming credential matches an existing
account, conflicts with one, or should create one. It never links a Google
identity to an existing password account (or the reverse); a credential-type
mismatch is reported so the client can steer the user to the right login.
"""

from __future__ import annotations

import logging
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from identity.auth import errors
from identity.auth.google import InvalidAssertion
from identity.auth.models import AuthResult, IdentityCheck, UserAccount
from identity.auth.passwords import hash_password, verify_password
from identity.auth.session import SessionManager
from identity.storage.store import DuplicateAccountError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def is_valid_email(email: str) -> bool:
    """Syntax check only (no DNS lookup); the domain must contain at least one dot."""
    try:
        result = validate_email(email or "", check_deliverability=False)
    except EmailNotValidError:
        return False
    return "." in result.domain


class AccountResolver:
    def __init__(self, store, verifier, sessions: Optional[SessionManager] = None) -> None:
        self.store = store
        self.verifier = verifier
        self.sessions = sessions or SessionManager(store)

    def _issue(self, user: UserAccount) -> AuthResult:
        return AuthResult(user=user, credential=self.sessions.mint(user.user_id))

    def login(self, email: Optional[str], password: Optional[str]) -> AuthResult:
        """Password login for an existing local account."""
        if not email:
            raise errors.MissingEmail()
        if not password:
            raise errors.MissingPassword()

        user = self.store.find_by_email(email)
        if user is None:
            raise errors.NoAccountForEmail()

        # The user has already signed up using a Google account
        if user.is_federated_only:
            raise errors.UseFederatedLogin()

        if not verify_password(password, user.password_hash):
            raise errors.InvalidPassword()

        return self._issue(user)

    def register(
        self,
        first_name: Optional[str],
        last_name: Optional[str],
        email: Optional[str],
        password: Optional[str],
    ) -> AuthResult:
        """Create a local account and log it in."""
        if not first_name or not last_name:
            raise errors.MissingName()
        if not email:
            raise errors.MissingEmail("An email address is required")
        if not password:
            raise errors.MissingPassword("A password is required")

        if not is_valid_email(email):
            raise errors.InvalidEmail()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise errors.PasswordTooShort()

        existing = self.store.find_by_email(email)
        if existing is not None:
            if existing.is_federated_only:
                raise errors.UseFederatedLogin()
            raise errors.EmailAlreadyRegistered()

        try:
            user = self.store.create_user(
                email=email,
                first_name=first_name,
                last_name=last_name,
                email_verified=False,
                password_hash=hash_password(password),
            )
        except DuplicateAccountError:
            # Lost the race against a concurrent registration for this email.
            raise errors.EmailAlreadyRegistered() from None

        logger.info("Registered local account user_id=%s", user.user_id)
        return self._issue(user)

    def google_login(self, assertion: Optional[str]) -> AuthResult:
        """Log in (or sign up) with a Google ID token."""
        if not assertion:
            raise errors.MissingToken()

        try:
            profile = self.verifier.verify(assertion)
        except InvalidAssertion:
            raise errors.AuthenticationFailed() from None

        user = self.store.find_by_google_or_email(profile.subject, profile.email)
        if user is not None:
            # The email is already registered for another account
            if (user.google_user_id or "") != profile.subject:
                raise errors.UsePasswordLogin()
            return self._issue(user)

        try:
            user = self.store.create_user(
                email=profile.email,
                first_name=profile.given_name,
                last_name=profile.family_name,
                email_verified=profile.email_verified,
                google_user_id=profile.subject,
            )
        except DuplicateAccountError:
            raise errors.EmailAlreadyRegistered() from None

        logger.info("Registered Google account user_id=%s", user.user_id)
        return self._issue(user)

    def identify(self, credential: Optional[str]) -> IdentityCheck:
        """
        Resolve a stored session credential to its account.

        A missing or unknown credential is the logged-out state, not an error.
        Raises InvalidUser if the session points at an account that no longer exists.
        """
        if not credential:
            return IdentityCheck(logged_in=False)

        user_id = self.sessions.validate(credential)
        if user_id is None:
            return IdentityCheck(logged_in=False, clear_credential=True, error=errors.InvalidToken.message)

        user = self.store.get_user(user_id)
        if user is None:
            raise errors.InvalidUser()
        return IdentityCheck(logged_in=True, user=user)

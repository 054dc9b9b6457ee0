"""
Resolver outcomes that are not a successful login.

Every error carries the message shown to the end user. Infrastructure
failures are not here; see `identity.storage.store.StoreError`.
"""

from __future__ import annotations

from typing import Optional

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again"


class AuthError(Exception):
    code = "auth_error"
    message = "Authentication failed"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


# ---- Input validation ----
class ValidationError(AuthError):
    code = "validation_error"


class MissingEmail(ValidationError):
    code = "missing_email"
    message = "Your email address cannot be left blank"


class MissingPassword(ValidationError):
    code = "missing_password"
    message = "Your password cannot be left blank"


class MissingName(ValidationError):
    code = "missing_name"
    message = "A name is required"


class MissingToken(ValidationError):
    code = "missing_token"
    message = "Missing authentication token"


class InvalidEmail(ValidationError):
    code = "invalid_email"
    message = "Your email address is invalid"


class PasswordTooShort(ValidationError):
    code = "password_too_short"
    message = "Your password must be at least 8 characters long"


# ---- Authentication ----
class AuthenticationError(AuthError):
    code = "authentication_error"


class NoAccountForEmail(AuthenticationError):
    code = "no_account_for_email"
    message = "There is no account registered for that email"


class InvalidPassword(AuthenticationError):
    code = "invalid_password"
    message = "Invalid password"


class AuthenticationFailed(AuthenticationError):
    code = "authentication_failed"
    message = "Google authentication failed"


class InvalidToken(AuthenticationError):
    code = "invalid_token"
    message = "Invalid token"


class InvalidUser(AuthenticationError):
    code = "invalid_user"
    message = "Invalid User ID"


# ---- Credential-type conflicts ----
class ConflictError(AuthError):
    code = "conflict"


class UseFederatedLogin(ConflictError):
    code = "use_federated_login"
    message = "Please sign in with Google"


class UsePasswordLogin(ConflictError):
    code = "use_password_login"
    message = "Please log in using your password"


class EmailAlreadyRegistered(ConflictError):
    code = "email_already_registered"
    message = "You've already registered an account with that email"

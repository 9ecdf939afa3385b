"""
auth/errors.py -- Error taxonomy for the authentication core.

Every failure the auth layer reports is an AuthError subclass carrying a
stable machine code and an HTTP status. api/main.py renders all of them into
the same {"error": {...}} envelope, so route handlers just let them propagate.

Security:
  InvalidCredentials has ONE fixed message. Unknown email and wrong password
  must produce byte-identical payloads.

  InvalidToken and ExpiredToken share the Unauthenticated code and message.
  The subclasses exist for logging and tests only; callers never learn which
  check failed.

Layer rule: no imports at all beyond stdlib.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for caller-facing auth failures."""

    status_code: int = 400
    code: str = "validation_error"
    default_message: str = "Request could not be processed."

    def __init__(self, message: str | None = None, *, details: list[str] | None = None) -> None:
        self.message = message or self.default_message
        self.details = list(details or [])
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body: dict = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request."


class WeakPassword(ValidationError):
    """Password failed the strength policy. details lists the violations."""

    code = "weak_password"
    default_message = "Password does not meet requirements."


class DuplicateEmail(AuthError):
    status_code = 409
    code = "email_taken"
    default_message = "Email already registered."


class InvalidCredentials(AuthError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password."

    def __init__(self) -> None:
        # No message override: the payload must never vary.
        super().__init__()


class AccountInactive(AuthError):
    status_code = 403
    code = "account_inactive"
    default_message = "Account is inactive."


class Unauthenticated(AuthError):
    """Missing, malformed, expired or revoked credential."""

    status_code = 401
    code = "unauthenticated"
    default_message = "Not authenticated."

    def __init__(self, reason: str = "") -> None:
        # reason is for server-side logs only; it never reaches the response.
        self.reason = reason
        super().__init__()


class InvalidToken(Unauthenticated):
    pass


class ExpiredToken(Unauthenticated):
    pass


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class Internal(AuthError):
    status_code = 500
    code = "internal_error"
    default_message = "An unexpected error occurred."

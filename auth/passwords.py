"""
auth/passwords.py -- Password hashing and strength policy.

Security design decisions:
  bcrypt (direct usage, no passlib wrapper). Each call to hash_password()
  draws a fresh salt, and the salt plus cost factor are embedded in the
  output string, so verify_password() needs nothing but the stored hash.
  The cost factor comes from Settings.bcrypt_rounds (default 12).

  DUMMY_HASH enables timing equalization in AuthService.login(): an unknown
  email still pays for one bcrypt comparison, so response time does not
  reveal whether an account exists.

  bcrypt accepts at most 72 bytes of input (newer releases raise, older ones
  truncate). The strength policy rejects anything longer as too_long, so no
  password that reaches hash_password() is ever cut short, and
  verify_password() treats an over-long candidate as a plain mismatch.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import bcrypt

from core.config import get_settings

_settings = get_settings()

MIN_PASSWORD_LENGTH = 8
# bcrypt input limit, in UTF-8 bytes rather than characters.
MAX_PASSWORD_BYTES = 72

# Violation code -> human message. Codes are part of the API contract
# (returned in error.details), messages are for UI rendering.
_VIOLATION_MESSAGES: dict[str, str] = {
    "too_short": f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
    "too_long": f"Password must be at most {MAX_PASSWORD_BYTES} bytes long (accented and non-Latin characters take 2-4 bytes each)",
    "missing_uppercase": "Password must contain at least one uppercase letter",
    "missing_lowercase": "Password must contain at least one lowercase letter",
    "missing_digit": "Password must contain at least one number",
}

_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"[0-9]")


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises ValueError for input over MAX_PASSWORD_BYTES instead of letting
    bcrypt truncate it; callers run check_password_strength() first. Other
    failures inside bcrypt (e.g. the OS entropy source) propagate.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password is longer than {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=rounds or _settings.bcrypt_rounds)
    return bcrypt.hashpw(encoded, salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash and a candidate over MAX_PASSWORD_BYTES both
    count as a mismatch rather than an error.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        # No stored hash can come from input this long. The comparison still
        # runs on the prefix so the reply time matches an ordinary miss.
        _checkpw(encoded[:MAX_PASSWORD_BYTES], hashed)
        return False
    return _checkpw(encoded, hashed)


def _checkpw(encoded: bytes, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
    except ValueError:
        return False


@dataclass(frozen=True)
class PasswordCheck:
    valid: bool
    violations: list[str] = field(default_factory=list)

    @property
    def messages(self) -> list[str]:
        return [_VIOLATION_MESSAGES[v] for v in self.violations]


def check_password_strength(password: str) -> PasswordCheck:
    """Evaluate a candidate password against the strength policy.

    Requires 8 characters to 72 UTF-8 bytes, one uppercase letter, one lowercase
    letter and one digit. Special characters are allowed but optional.
    Pure function: never raises, only reports violations.
    """
    violations: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        violations.append("too_short")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        violations.append("too_long")
    if not _UPPER_RE.search(password):
        violations.append("missing_uppercase")
    if not _LOWER_RE.search(password):
        violations.append("missing_lowercase")
    if not _DIGIT_RE.search(password):
        violations.append("missing_digit")
    return PasswordCheck(valid=not violations, violations=violations)


# Computed once at module load so the first unknown-email login is not
# measurably faster than later ones.
DUMMY_HASH: str = hash_password("quizmaker_timing_dummy")

"""
auth/tokens.py -- Credential token codec and auth cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. A token carries the session id (sid), the user
       id (sub), the email, iat and exp. It is a bearer credential for a
       specific Session row, not for the user in general: the service layer
       re-checks that the referenced session is still live on every
       data-bearing call.

  Secret: TokenCodec takes the signing secret as a constructor argument
       instead of reading a module global. The app builds exactly one codec
       at startup from Settings.secret_key; tests build their own with
       throwaway secrets. The codec holds no other state and is safe to share
       between threads.

  Failures: verify() raises ExpiredToken or InvalidToken. Both subclass
       Unauthenticated and render the same payload, so a caller cannot tell
       a forged token from a stale one.

  Cookie: httpOnly (no JS access), samesite=lax (first-party), secure when
       SECURE_COOKIES=true, max_age equal to the token lifetime so cookie and
       token expire together.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import ExpiredToken, InvalidToken
from auth.models import TokenClaims
from core.config import get_settings

logger = logging.getLogger("quizmaker.auth")

_settings = get_settings()

DEFAULT_TOKEN_TTL = timedelta(days=7)

_REQUIRED_CLAIMS = ("sid", "sub", "email", "iat", "exp")


class TokenCodec:
    """Sign and verify credential tokens.

    Usage:
        codec = TokenCodec(settings.secret_key)
        token = codec.issue(session_id, user_id, email)
        claims = codec.verify(token)   # raises Unauthenticated subclasses
    """

    def __init__(self, secret_key: str, ttl: timedelta = DEFAULT_TOKEN_TTL, algorithm: str = "HS256") -> None:
        if not secret_key:
            raise ValueError("TokenCodec requires a non-empty secret key.")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.ttl = ttl

    @property
    def ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    def issue(self, session_id: str, user_id: str, email: str, now: datetime | None = None) -> str:
        """Encode a signed token for the given session.

        now defaults to the current UTC time. Tests pass an earlier instant
        to mint tokens that are already past their expiry.
        """
        issued = now or datetime.now(timezone.utc)
        iat = int(issued.timestamp())
        payload = {
            "sid": session_id,
            "sub": user_id,
            "email": email,
            "iat": iat,
            "exp": iat + self.ttl_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        """Check signature and expiry, returning the embedded claims."""
        if not token:
            raise InvalidToken("empty token")
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except ExpiredSignatureError as exc:
            raise ExpiredToken("token expired") from exc
        except JWTError as exc:
            raise InvalidToken(f"token rejected: {exc}") from exc

        missing = [c for c in _REQUIRED_CLAIMS if c not in payload]
        if missing:
            raise InvalidToken(f"token missing claims: {missing}")
        return TokenClaims(
            session_id=str(payload["sid"]),
            user_id=str(payload["sub"]),
            email=str(payload["email"]),
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, max_age: int = 0) -> None:
    """Write the credential token as an httpOnly cookie on the response.

    Args:
        response: FastAPI/Starlette response object.
        token:    Encoded token string.
        max_age:  Cookie lifetime in seconds. If 0 (default), uses
                  Settings.session_ttl_days. Pass TokenCodec.ttl_seconds to
                  keep cookie and token expiry in sync.
    """
    duration = max_age if max_age > 0 else _settings.session_ttl_days * 24 * 3600
    response.set_cookie(
        _settings.auth_cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
        path="/",
    )


def clear_auth_cookie(response) -> None:
    """Delete the credential cookie with the same attributes it was set with."""
    response.delete_cookie(
        _settings.auth_cookie_name,
        path="/",
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
    )


def get_request_token(request) -> str | None:
    """Return the credential token presented by the request, if any.

    The cookie is the primary transport. An Authorization: Bearer header is
    accepted as well so non-browser clients can call the API.
    """
    token = request.cookies.get(_settings.auth_cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None

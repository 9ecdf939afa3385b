"""
auth/service.py -- Signup, login, logout and session management.

AuthService composes the password helpers, the token codec and the two
repositories. Routes (api/ and web/) call it and let AuthError subclasses
propagate; api/main.py maps them to responses.

Principal lifecycle: Anonymous -> Authenticated -> Anonymous. Which of a
user's sessions remain live is the only state; it lives in the sessions table.

Security invariants:
  - login() raises the same InvalidCredentials for an unknown email and for a
    wrong password, and runs bcrypt in both cases (timing equalization).
  - Every data-bearing call re-checks token signature AND session liveness.
  - revoke_session() never touches a session the caller does not own; a
    foreign id is reported exactly like an unknown one (NotFound).
  - logout() never fails. A missing or bad token still ends in a cleared
    cookie on the caller's side.

Non-transactional steps:
  signup creates the user and then the session in two statements. A crash in
  between leaves a user with zero sessions, which the next login repairs.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
import re
import secrets

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AccountInactive,
    DuplicateEmail,
    InvalidCredentials,
    NotFound,
    Unauthenticated,
    ValidationError,
    WeakPassword,
)
from auth.models import AuthResult, ClientInfo, SessionView, TokenClaims, User
from auth.passwords import DUMMY_HASH, check_password_strength, hash_password, verify_password
from auth.sessions import SessionStore
from auth.store import UserStore, normalize_email
from auth.tokens import TokenCodec

logger = logging.getLogger("quizmaker.auth")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def describe_device(user_agent: str | None) -> str:
    """Coarse, human-readable device label for the session list."""
    if not user_agent:
        return "Unknown Device"
    if "Mobile" in user_agent:
        return "Mobile Device"
    if "Tablet" in user_agent:
        return "Tablet"
    if "Windows" in user_agent:
        return "Windows PC"
    if "Mac" in user_agent:
        return "Mac"
    if "Linux" in user_agent:
        return "Linux PC"
    return "Unknown Device"


class AuthService:
    """Authentication orchestrator.

    Usage:
        service = AuthService(UserStore(engine), SessionStore(engine), TokenCodec(secret))
        result = service.signup("t@example.com", "Password1", "T")
        user = service.who_am_i(result.token)
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        codec: TokenCodec,
        bcrypt_rounds: int | None = None,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.codec = codec
        self._bcrypt_rounds = bcrypt_rounds

    # ------------------------------------------------------------------
    # Anonymous -> Authenticated
    # ------------------------------------------------------------------

    def signup(self, email: str, password: str, full_name: str, client: ClientInfo | None = None) -> AuthResult:
        """Create an account and log it in on the calling device."""
        if not email or not password or not full_name or not full_name.strip():
            raise ValidationError("Missing required fields")
        email = normalize_email(email)
        if not EMAIL_RE.match(email):
            raise ValidationError("Invalid email format")

        strength = check_password_strength(password)
        if not strength.valid:
            raise WeakPassword(details=strength.violations)

        if self.users.email_exists(email):
            raise DuplicateEmail()

        user = User(
            email=email,
            full_name=full_name.strip(),
            password_hash=hash_password(password, rounds=self._bcrypt_rounds),
        )
        try:
            user.id = self.users.create_user(user)
        except IntegrityError as exc:
            # A concurrent signup won the race past email_exists().
            raise DuplicateEmail() from exc

        logger.info("User %s signed up", user.id)
        return self._start_session(user, client)

    def login(self, email: str, password: str, client: ClientInfo | None = None) -> AuthResult:
        """Verify credentials and open a NEW session. Existing sessions are left alone."""
        if not email or not password:
            raise ValidationError("Email and password are required")

        user = self.users.get_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt.
            verify_password(password, DUMMY_HASH)
            raise InvalidCredentials()
        if not user.is_active:
            raise AccountInactive()
        if not verify_password(password, user.password_hash):
            logger.info("Failed login for user %s", user.id)
            raise InvalidCredentials()

        self.users.update_last_login(user.id)
        return self._start_session(user, client)

    def _start_session(self, user: User, client: ClientInfo | None) -> AuthResult:
        client = client or ClientInfo()
        # The nonce is stored only as a hash, for auditing; the token carries the session id.
        nonce = secrets.token_hex(32)
        session_id = self.sessions.create(
            user.id,
            nonce,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        token = self.codec.issue(session_id, user.id, user.email)
        logger.info("Session %s opened for user %s", session_id, user.id)
        return AuthResult(user=user, token=token, session_id=session_id)

    # ------------------------------------------------------------------
    # Authenticated -> Anonymous
    # ------------------------------------------------------------------

    def logout(self, token: str | None) -> str | None:
        """Revoke the session behind token, if any. Never raises for bad tokens.

        Returns the revoked session id, or None when there was nothing to do.
        """
        if not token:
            return None
        try:
            claims = self.codec.verify(token)
        except Unauthenticated as exc:
            logger.debug("Logout with unusable token (%s); nothing to revoke", exc.reason)
            return None
        self.sessions.revoke(claims.session_id)
        logger.info("Session %s logged out", claims.session_id)
        return claims.session_id

    def logout_all(self, token: str | None) -> str:
        """Revoke every session of the token's user. Returns the user id.

        Only the token signature and expiry are checked: a user whose current
        session was already revoked can still use this to sign out everywhere.
        """
        claims = self.verify_token(token)
        count = self.sessions.revoke_all_for_user(claims.user_id)
        logger.info("User %s logged out of %d session(s)", claims.user_id, count)
        return claims.user_id

    # ------------------------------------------------------------------
    # Authenticated reads
    # ------------------------------------------------------------------

    def verify_token(self, token: str | None) -> TokenClaims:
        """Signature/expiry check only. No datastore access."""
        if not token:
            raise Unauthenticated("no token")
        return self.codec.verify(token)

    def authenticate(self, token: str | None) -> TokenClaims:
        """Full check: valid token AND live session. Touches the session."""
        claims = self.verify_token(token)
        if not self.sessions.touch_and_validate(claims.session_id):
            raise Unauthenticated(f"session {claims.session_id} not live")
        return claims

    def who_am_i(self, token: str | None) -> User:
        """Return the caller's user row, fetched fresh from the datastore."""
        claims = self.authenticate(token)
        user = self.users.get_by_id(claims.user_id)
        if user is None:
            raise NotFound("User not found")
        if not user.is_active:
            raise AccountInactive()
        return user

    def list_sessions(self, token: str | None) -> list[SessionView]:
        """Return the caller's live sessions, most recently active first."""
        claims = self.authenticate(token)
        return [
            SessionView(
                id=s.id,
                is_current=s.id == claims.session_id,
                device=describe_device(s.user_agent),
                created_at=s.created_at,
                last_active_at=s.last_active_at,
                expires_at=s.expires_at,
                ip_address=s.ip_address,
                user_agent=s.user_agent,
            )
            for s in self.sessions.list_active(claims.user_id)
        ]

    def revoke_session(self, token: str | None, session_id: str) -> None:
        """Revoke one of the caller's own sessions (e.g. a lost laptop)."""
        claims = self.authenticate(token)
        if not session_id:
            raise ValidationError("Session ID required")
        if not self.sessions.revoke_for_user(session_id, claims.user_id):
            raise NotFound("Session not found")
        logger.info("User %s revoked session %s", claims.user_id, session_id)

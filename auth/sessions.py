"""
auth/sessions.py -- Session repository: creation, liveness, revocation, expiry.

Pattern: Repository + Data Mapper (same as auth/store.py). Shares the schema
and engine from auth/store.py.

Liveness rule:
  A session is live iff is_active = 1 AND now < expires_at. Every read that
  answers "is this session usable" applies exactly that predicate in SQL.
  Writes only ever move is_active from 1 to 0, so a revoked or expired
  session can never become valid again, whatever the interleaving.

Side-effecting validation:
  touch_and_validate() is not a plain is_valid()/get(). A
  successful check bumps last_active_at, and a check that finds an expired
  row flips it inactive (lazy expiry). Callers must treat every liveness
  check as a write.

Concurrency:
  Each method issues single-statement writes against the durable store, so no
  in-process locking is needed. Two concurrent touches on one session race on
  last_active_at; last writer wins and nothing depends on the value.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_
from sqlalchemy.engine import Engine

from auth.models import Session
from auth.store import new_id, now_iso, sessions_table, to_iso

logger = logging.getLogger("quizmaker.auth.sessions")

DEFAULT_SESSION_TTL = timedelta(days=7)

_s = sessions_table.c


def hash_session_token(raw_token: str) -> str:
    """SHA-256 hex digest of a session nonce. Only the digest is persisted."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class SessionStore:
    """Repository for Session rows.

    Usage:
        sessions = SessionStore(engine)
        sid = sessions.create(user_id, secrets.token_hex(32), ip_address="1.2.3.4")
        if sessions.touch_and_validate(sid): ...
        sessions.revoke(sid)
    """

    def __init__(self, engine: Engine, ttl: timedelta = DEFAULT_SESSION_TTL) -> None:
        self.engine = engine
        self.ttl = ttl

    @staticmethod
    def _live(now: str):
        return and_(_s.is_active == 1, _s.expires_at > now)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        user_id: str,
        raw_token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """Insert a new live session for user_id and return its id.

        raw_token is a caller-generated nonce; only its SHA-256 digest is
        stored. The session id is generated here from the OS CSPRNG because
        it is the value the signed token carries as the bearer reference.
        """
        session_id = new_id()
        now = datetime.now(timezone.utc)
        stamp = to_iso(now)
        with self.engine.connect() as conn:
            conn.execute(
                sessions_table.insert().values(
                    id=session_id,
                    user_id=user_id,
                    token_hash=hash_session_token(raw_token),
                    ip_address=ip_address,
                    user_agent=user_agent,
                    created_at=stamp,
                    expires_at=to_iso(now + self.ttl),
                    last_active_at=stamp,
                    is_active=1,
                )
            )
            conn.commit()
        return session_id

    def touch_and_validate(self, session_id: str) -> bool:
        """Return True if the session is live, touching last_active_at.

        Two single-statement writes, no read-modify-write:
          1. Touch the row if it is live. rowcount 1 means valid.
          2. Otherwise flip it inactive if it is active but past expiry
             (lazy expiry). Absent or already-inactive rows match nothing.
        """
        now = now_iso()
        with self.engine.connect() as conn:
            touched = conn.execute(
                sessions_table.update()
                .where(and_(_s.id == session_id, self._live(now)))
                .values(last_active_at=now)
            )
            if touched.rowcount > 0:
                conn.commit()
                return True
            expired = conn.execute(
                sessions_table.update()
                .where(and_(_s.id == session_id, _s.is_active == 1, _s.expires_at <= now))
                .values(is_active=0)
            )
            conn.commit()
        if expired.rowcount > 0:
            logger.info("Session %s expired; marked inactive on access", session_id)
        return False

    def revoke(self, session_id: str) -> None:
        """Mark a session inactive. No error if already inactive or absent."""
        with self.engine.connect() as conn:
            conn.execute(sessions_table.update().where(_s.id == session_id).values(is_active=0))
            conn.commit()

    def revoke_for_user(self, session_id: str, user_id: str) -> bool:
        """Revoke a live session only if it belongs to user_id.

        Both the id and the owner must match in the same WHERE clause, so a
        guessed id for another user's session matches nothing. Returns True
        if a session was revoked, False if absent, not owned, or not live.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                sessions_table.update()
                .where(and_(_s.id == session_id, _s.user_id == user_id, self._live(now_iso())))
                .values(is_active=0)
            )
            conn.commit()
        return result.rowcount > 0

    def revoke_all_for_user(self, user_id: str) -> int:
        """Mark every active session of user_id inactive, including the caller's own.

        Returns the number of sessions that were still active.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                sessions_table.update()
                .where(and_(_s.user_id == user_id, _s.is_active == 1))
                .values(is_active=0)
            )
            conn.commit()
        return result.rowcount

    def cleanup_expired(self) -> int:
        """Deactivate every active session past its expiry. Returns rows affected.

        Run periodically by the reaper task in api/main.py. It is one bulk
        statement and needs no coordination with request handlers.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                sessions_table.update()
                .where(and_(_s.is_active == 1, _s.expires_at <= now_iso()))
                .values(is_active=0)
            )
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> Session | None:
        """Fetch a session in any state. Read-only; does not touch or expire it."""
        with self.engine.connect() as conn:
            row = conn.execute(sessions_table.select().where(_s.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_active(self, user_id: str) -> list[Session]:
        """Return live sessions for user_id, most recently active first.

        Applies the same liveness predicate as touch_and_validate() so an
        expired-but-not-yet-reaped row is excluded, but never writes.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                sessions_table.select()
                .where(and_(_s.user_id == user_id, self._live(now_iso())))
                .order_by(_s.last_active_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=row.created_at,
        expires_at=row.expires_at,
        last_active_at=row.last_active_at,
        is_active=bool(row.is_active),
    )

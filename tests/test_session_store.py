"""Unit tests for auth/sessions.py -- SessionStore lifecycle.

Covers:
- create() stores a hash of the nonce, never the nonce itself
- touch_and_validate() touches live sessions and lazily expires dead ones
- revoke() / revoke_all_for_user() are idempotent
- revoke_for_user() refuses sessions owned by someone else
- list_active() filters expired rows without writing, newest activity first
- cleanup_expired() bulk-deactivates expired sessions
- deleting a user cascades to its sessions
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

import pytest

from auth.models import User
from auth.sessions import SessionStore, hash_session_token
from auth.store import UserStore, sessions_table, to_iso


def _make_user(users: UserStore, email: str = "t@example.com") -> str:
    return users.create_user(User(email=email, full_name="T", password_hash="$2b$04$notreal"))


def _force_expiry(store: SessionStore, session_id: str) -> None:
    past = to_iso(datetime.now(timezone.utc) - timedelta(minutes=1))
    with store.engine.connect() as conn:
        conn.execute(sessions_table.update().where(sessions_table.c.id == session_id).values(expires_at=past))
        conn.commit()


@pytest.fixture
def user_id(users: UserStore) -> str:
    return _make_user(users)


class TestCreate:
    def test_create_returns_unguessable_id(self, sessions: SessionStore, user_id: str) -> None:
        a = sessions.create(user_id, "nonce-a")
        b = sessions.create(user_id, "nonce-b")
        assert a != b
        assert len(a) == 32

    def test_nonce_is_hashed(self, sessions: SessionStore, user_id: str) -> None:
        sid = sessions.create(user_id, "raw-nonce", ip_address="10.0.0.1", user_agent="UA")
        row = sessions.get(sid)
        assert row is not None
        assert row.token_hash == hash_session_token("raw-nonce")
        assert "raw-nonce" not in row.token_hash
        assert row.ip_address == "10.0.0.1"
        assert row.user_agent == "UA"
        assert row.is_active is True

    def test_expiry_is_seven_days_out(self, sessions: SessionStore, user_id: str) -> None:
        row = sessions.get(sessions.create(user_id, "n"))
        created = datetime.fromisoformat(row.created_at)
        expires = datetime.fromisoformat(row.expires_at)
        assert expires - created == timedelta(days=7)


class TestTouchAndValidate:
    def test_live_session_is_valid(self, sessions: SessionStore, user_id: str) -> None:
        sid = sessions.create(user_id, "n")
        assert sessions.touch_and_validate(sid) is True

    def test_touch_updates_last_active(self, sessions: SessionStore, user_id: str) -> None:
        sid = sessions.create(user_id, "n")
        before = sessions.get(sid).last_active_at
        time.sleep(0.01)
        sessions.touch_and_validate(sid)
        assert sessions.get(sid).last_active_at > before

    def test_unknown_session_is_invalid(self, sessions: SessionStore) -> None:
        assert sessions.touch_and_validate("does-not-exist") is False

    def test_revoked_session_is_invalid(self, sessions: SessionStore, user_id: str) -> None:
        sid = sessions.create(user_id, "n")
        sessions.revoke(sid)
        assert sessions.touch_and_validate(sid) is False

    def test_expired_session_is_lazily_deactivated(self, sessions: SessionStore, user_id: str) -> None:
        sid = sessions.create(user_id, "n")
        _force_expiry(sessions, sid)
        assert sessions.get(sid).is_active is True  # nothing has looked at it yet
        assert sessions.touch_and_validate(sid) is False
        assert sessions.get(sid).is_active is False

    def test_expired_session_never_comes_back(self, engine, user_id: str) -> None:
        expired_store = SessionStore(engine, ttl=timedelta(seconds=-1))
        sid = expired_store.create(user_id, "n")
        assert expired_store.touch_and_validate(sid) is False
        # Even pushing expiry back into the future cannot revive it.
        with engine.connect() as conn:
            future = to_iso(datetime.now(timezone.utc) + timedelta(days=1))
            conn.execute(sessions_table.update().where(sessions_table.c.id == sid).values(expires_at=future))
            conn.commit()
        assert expired_store.touch_and_validate(sid) is False


class TestRevoke:
    def test_revoke_is_idempotent(self, sessions: SessionStore, user_id: str) -> None:
        sid = sessions.create(user_id, "n")
        sessions.revoke(sid)
        sessions.revoke(sid)
        assert sessions.get(sid).is_active is False

    def test_revoke_unknown_is_noop(self, sessions: SessionStore) -> None:
        sessions.revoke("nope")

    def test_revoke_all_for_user(self, sessions: SessionStore, users: UserStore, user_id: str) -> None:
        other = _make_user(users, "other@example.com")
        mine = [sessions.create(user_id, f"n{i}") for i in range(3)]
        theirs = sessions.create(other, "x")
        assert sessions.revoke_all_for_user(user_id) == 3
        assert sessions.revoke_all_for_user(user_id) == 0
        assert all(sessions.get(s).is_active is False for s in mine)
        assert sessions.get(theirs).is_active is True

    def test_revoke_for_user_checks_owner(self, sessions: SessionStore, users: UserStore, user_id: str) -> None:
        other = _make_user(users, "other@example.com")
        theirs = sessions.create(other, "x")
        assert sessions.revoke_for_user(theirs, user_id) is False
        assert sessions.get(theirs).is_active is True
        assert sessions.revoke_for_user(theirs, other) is True
        assert sessions.get(theirs).is_active is False
        assert sessions.revoke_for_user(theirs, other) is False


class TestListActive:
    def test_ordered_by_last_activity(self, sessions: SessionStore, user_id: str) -> None:
        first = sessions.create(user_id, "a")
        time.sleep(0.01)
        second = sessions.create(user_id, "b")
        time.sleep(0.01)
        sessions.touch_and_validate(first)
        assert [s.id for s in sessions.list_active(user_id)] == [first, second]

    def test_excludes_revoked_and_expired_without_writing(self, sessions: SessionStore, user_id: str) -> None:
        live = sessions.create(user_id, "a")
        revoked = sessions.create(user_id, "b")
        expired = sessions.create(user_id, "c")
        sessions.revoke(revoked)
        _force_expiry(sessions, expired)
        before = sessions.get(live).last_active_at

        assert [s.id for s in sessions.list_active(user_id)] == [live]
        # Listing is read-only: no touch, no lazy expiry.
        assert sessions.get(live).last_active_at == before
        assert sessions.get(expired).is_active is True


class TestCleanup:
    def test_cleanup_expired(self, sessions: SessionStore, user_id: str) -> None:
        live = sessions.create(user_id, "a")
        expired = [sessions.create(user_id, f"e{i}") for i in range(2)]
        for sid in expired:
            _force_expiry(sessions, sid)
        assert sessions.cleanup_expired() == 2
        assert sessions.cleanup_expired() == 0
        assert sessions.get(live).is_active is True
        assert all(sessions.get(s).is_active is False for s in expired)


class TestCascade:
    def test_deleting_user_deletes_sessions(self, sessions: SessionStore, users: UserStore, user_id: str) -> None:
        sid = sessions.create(user_id, "n")
        assert users.delete_user(user_id) is True
        assert sessions.get(sid) is None

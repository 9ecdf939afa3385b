"""Unit tests for auth/tokens.py -- TokenCodec issue/verify."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import ExpiredToken, InvalidToken, Unauthenticated
from auth.tokens import TokenCodec
from tests.conftest import TEST_SECRET


def _tamper(token: str) -> str:
    """Flip one character inside the payload segment."""
    header, payload, signature = token.split(".")
    i = len(payload) // 2
    swapped = "A" if payload[i] != "A" else "B"
    return ".".join([header, payload[:i] + swapped + payload[i + 1 :], signature])


class TestRoundTrip:
    def test_claims_round_trip(self, codec: TokenCodec) -> None:
        now = datetime.now(timezone.utc)
        token = codec.issue("sess1", "user1", "t@example.com", now=now)
        claims = codec.verify(token)
        assert claims.session_id == "sess1"
        assert claims.user_id == "user1"
        assert claims.email == "t@example.com"
        assert claims.issued_at == int(now.timestamp())

    def test_expiry_is_seven_days(self, codec: TokenCodec) -> None:
        claims = codec.verify(codec.issue("s", "u", "e@x.io"))
        assert claims.expires_at - claims.issued_at == 7 * 24 * 3600


class TestRejection:
    def test_expired_token(self, codec: TokenCodec) -> None:
        eight_days_ago = datetime.now(timezone.utc) - timedelta(days=8)
        token = codec.issue("s", "u", "e@x.io", now=eight_days_ago)
        with pytest.raises(ExpiredToken):
            codec.verify(token)

    def test_tampered_payload(self, codec: TokenCodec) -> None:
        token = codec.issue("s", "u", "e@x.io")
        with pytest.raises(InvalidToken):
            codec.verify(_tamper(token))

    def test_wrong_secret(self, codec: TokenCodec) -> None:
        other = TokenCodec("another-secret-key-0123456789abcdef0123456789")
        with pytest.raises(InvalidToken):
            codec.verify(other.issue("s", "u", "e@x.io"))

    @pytest.mark.parametrize("garbage", ["", "abc", "a.b.c", "not a token at all"])
    def test_malformed(self, codec: TokenCodec, garbage: str) -> None:
        with pytest.raises(InvalidToken):
            codec.verify(garbage)

    def test_failures_share_one_public_payload(self, codec: TokenCodec) -> None:
        expired = codec.issue("s", "u", "e@x.io", now=datetime.now(timezone.utc) - timedelta(days=30))
        errors = []
        for token in (expired, "garbage"):
            with pytest.raises(Unauthenticated) as info:
                codec.verify(token)
            errors.append(info.value)
        assert errors[0].to_dict() == errors[1].to_dict()
        assert errors[0].status_code == errors[1].status_code == 401

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            TokenCodec("")

    def test_distinct_codecs_are_independent(self) -> None:
        a = TokenCodec(TEST_SECRET)
        b = TokenCodec(TEST_SECRET[::-1])
        token = a.issue("s", "u", "e@x.io")
        assert a.verify(token).session_id == "s"
        with pytest.raises(InvalidToken):
            b.verify(token)

"""Unit tests for core/config.py -- the SECRET_KEY policy and bcrypt bounds."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

LONG_KEY = "k" * 32


def test_missing_key_in_production_refuses_to_start() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="")


def test_missing_key_in_debug_is_generated() -> None:
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32
    assert Settings(debug=True, secret_key="").secret_key != settings.secret_key


def test_short_key_rejected_even_in_debug() -> None:
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, secret_key="too-short")


@pytest.mark.parametrize("rounds", [3, 32])
def test_bcrypt_rounds_bounds(rounds: int) -> None:
    with pytest.raises(ValidationError, match="BCRYPT_ROUNDS"):
        Settings(secret_key=LONG_KEY, bcrypt_rounds=rounds)


def test_defaults() -> None:
    settings = Settings(secret_key=LONG_KEY, _env_file=None)
    assert settings.auth_cookie_name == "auth_token"
    assert settings.session_ttl_days == 7
    assert settings.protected_paths == ["/dashboard", "/mcqs"]
    assert settings.auth_paths == ["/login", "/signup"]
    assert settings.home_path == "/dashboard"


def test_list_fields_read_json_from_env(monkeypatch) -> None:
    monkeypatch.setenv("PROTECTED_PATHS", '["/dashboard", "/reports"]')
    settings = Settings(secret_key=LONG_KEY)
    assert settings.protected_paths == ["/dashboard", "/reports"]

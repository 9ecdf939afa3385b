"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The AuthService, built once in the lifespan, lives on app.state. These
helpers pull it and the caller's credential out of the request so route
handlers stay one-liners.

get_request_token() reads the credential in priority order:
  1. Cookie (Settings.auth_cookie_name) -- set by signup/login.
  2. Authorization: Bearer <token> header -- API clients.

Layer rule: no imports from web/ or api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import ClientInfo
from auth.service import AuthService
from auth.tokens import get_request_token


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_token(request: Request) -> str | None:
    return get_request_token(request)


def get_client_info(request: Request) -> ClientInfo:
    """Collect IP and user agent for a new session row.

    X-Forwarded-For may hold a chain ("client, proxy1, proxy2"); the first
    hop is the original client. Falls back to X-Real-IP, then the socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip = forwarded.split(",")[0].strip() if forwarded else ""
    if not ip:
        ip = request.headers.get("X-Real-IP", "").strip()
    if not ip and request.client:
        ip = request.client.host
    return ClientInfo(
        ip_address=ip or None,
        user_agent=request.headers.get("User-Agent") or None,
    )


"""
api/routes/v1/auth.py -- Authentication and session management REST endpoints.

Routes:
  POST   /api/v1/auth/signup      -- create account; sets auth cookie; 201
  POST   /api/v1/auth/login       -- password login; sets auth cookie; 200
  POST   /api/v1/auth/logout      -- revoke current session (best-effort); clears cookie
  POST   /api/v1/auth/logout-all  -- revoke every session of the caller; clears cookie
  GET    /api/v1/auth/me          -- current user (token + live session required)
  GET    /api/v1/auth/sessions    -- caller's live sessions
  DELETE /api/v1/auth/sessions    -- revoke one of the caller's sessions {sessionId}

Error handling:
  Handlers let auth.errors.AuthError propagate. api/main.py renders every
  subclass into the shared {"error": {...}} envelope with its status code.

Security:
  Cache-Control: no-store on responses that carry a fresh credential.
  IDOR guard: DELETE /sessions passes the caller's user id to the store; the
  store's WHERE clause requires both id and owner to match.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.models import (
    LoginRequest,
    MessageResponse,
    RevokeSessionRequest,
    SessionListResponse,
    SessionResponse,
    SignupRequest,
    UserEnvelope,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_client_info, get_token
from auth.errors import Unauthenticated
from auth.models import AuthResult, ClientInfo
from auth.service import AuthService
from auth.tokens import clear_auth_cookie, set_auth_cookie

# Auth policy:
# - POST   /auth/signup, /auth/login:  public
# - POST   /auth/logout:               public -- always succeeds, clears cookie
# - POST   /auth/logout-all:           valid token (signature + expiry)
# - GET    /auth/me, /auth/sessions:   valid token + live session
# - DELETE /auth/sessions:             valid token + live session + ownership
router = APIRouter()


def _credential_response(result: AuthResult, status_code: int, service: AuthService) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=UserEnvelope(user=UserResponse.from_user(result.user)).model_dump(by_alias=True),
    )
    set_auth_cookie(resp, result.token, max_age=service.codec.ttl_seconds)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=UserEnvelope, status_code=201)
def signup(
    body: SignupRequest,
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
) -> JSONResponse:
    """Register a new account and sign it in on this device."""
    result = service.signup(body.email, body.password, body.full_name, client)
    return _credential_response(result, 201, service)


@router.post("/auth/login", response_model=UserEnvelope)
def login(
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
    client: ClientInfo = Depends(get_client_info),
) -> JSONResponse:
    """Authenticate with email and password; open a new session.

    Unknown email and wrong password yield the identical 401 payload.
    """
    result = service.login(body.email, body.password, client)
    return _credential_response(result, 200, service)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    service: AuthService = Depends(get_auth_service),
    token: str | None = Depends(get_token),
) -> JSONResponse:
    """Revoke the current session if the token is usable; always clear the cookie."""
    service.logout(token)
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump(by_alias=True))
    clear_auth_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout-all", response_model=MessageResponse)
def logout_all(
    service: AuthService = Depends(get_auth_service),
    token: str | None = Depends(get_token),
) -> JSONResponse:
    """Sign out of every device, this one included."""
    service.logout_all(token)
    resp = JSONResponse(
        content=MessageResponse(message="Logged out from all devices successfully").model_dump(by_alias=True)
    )
    clear_auth_cookie(resp)
    return resp


@router.get("/auth/me", response_model=UserEnvelope)
def me(
    service: AuthService = Depends(get_auth_service),
    token: str | None = Depends(get_token),
) -> UserEnvelope | JSONResponse:
    """Return the current user, re-read from the datastore.

    A dead session also clears the stale cookie so the browser stops sending it.
    """
    try:
        user = service.who_am_i(token)
    except Unauthenticated as exc:
        resp = JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})
        if token:
            clear_auth_cookie(resp)
        return resp
    return UserEnvelope(user=UserResponse.from_user(user))


@router.get("/auth/sessions", response_model=SessionListResponse)
def list_sessions(
    service: AuthService = Depends(get_auth_service),
    token: str | None = Depends(get_token),
) -> SessionListResponse:
    """List the caller's live sessions, flagging the current one."""
    views = service.list_sessions(token)
    return SessionListResponse(sessions=[SessionResponse.from_view(v) for v in views])


@router.delete("/auth/sessions", response_model=MessageResponse)
def revoke_session(
    body: RevokeSessionRequest,
    service: AuthService = Depends(get_auth_service),
    token: str | None = Depends(get_token),
) -> MessageResponse:
    """Revoke one session owned by the caller. Foreign ids are reported as 404."""
    service.revoke_session(token, body.session_id)
    return MessageResponse(message="Session revoked successfully")

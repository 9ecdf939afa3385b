"""
web/routes.py -- Jinja2 page routes for the QuizMaker web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same AuthService) but answer with pages and redirects instead of JSON.

The request gate in api/main.py runs before every handler here:
  - /dashboard... requires a token that verifies (cheap check).
  - /login and /signup bounce an already-signed-in browser to /dashboard.
Handlers behind the gate still call AuthService, which performs the deep
session-liveness check, and redirect to /login when it fails.

Routes:
  GET  /                            -- redirect to the dashboard
  GET  /login                       -- login form
  POST /login                       -- handle password login
  GET  /signup                      -- signup form
  POST /signup                      -- handle account creation
  GET  /dashboard                   -- landing page (session required)
  GET  /dashboard/sessions          -- active sessions (session required)
  POST /dashboard/sessions/revoke   -- revoke one session
  POST /logout                      -- revoke current session, clear cookie
  POST /logout-all                  -- revoke every session, clear cookie
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth.dependencies import get_auth_service, get_client_info, get_token
from auth.errors import AccountInactive, AuthError, DuplicateEmail, InvalidCredentials, NotFound, Unauthenticated
from auth.passwords import PasswordCheck
from auth.tokens import clear_auth_cookie, set_auth_cookie
from core.config import get_settings

logger = logging.getLogger("quizmaker.web")

_settings = get_settings()

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login. The raw query param
# is NEVER passed to templates -- only the message from this dict is.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid email or password.",
    "account_inactive": "Your account is inactive.",
    "missing_fields": "Email and password are required.",
    "session_expired": "Your session has ended. Please log in again.",
}


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Rejects absolute URLs and protocol-relative ("//host") targets so the
    login form cannot be used as an open redirect.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return _settings.home_path


def _login_error(error: str, next_url: str) -> RedirectResponse:
    """Send a failed form login back to /login, keeping its post-login target."""
    query = urlencode({"error": error, "next": next_url}, safe="/")
    return RedirectResponse(f"{_settings.login_path}?{query}", status_code=302)


def _to_login(path: str, error: str = "") -> RedirectResponse:
    """Redirect to the login page, remembering where the user was headed."""
    params = {"next": path}
    if error:
        params["error"] = error
    resp = RedirectResponse(f"{_settings.login_path}?{urlencode(params, safe='/')}", status_code=302)
    clear_auth_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# GET / -- landing
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def index() -> RedirectResponse:
    return RedirectResponse(_settings.home_path, status_code=302)


# ---------------------------------------------------------------------------
# Login / signup
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login page."""
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""), None)
    return templates.TemplateResponse(
        request,
        "login.html",
        {"error_msg": error_msg, "next": _safe_next(request.query_params.get("next"))},
    )


@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form(""),
) -> RedirectResponse:
    """Handle the login form submission."""
    service = get_auth_service(request)
    next_url = _safe_next(next)
    try:
        result = service.login(email, password, get_client_info(request))
    except InvalidCredentials:
        return _login_error("bad_credentials", next_url)
    except AccountInactive:
        return _login_error("account_inactive", next_url)
    except AuthError:
        return _login_error("missing_fields", next_url)

    resp = RedirectResponse(next_url, status_code=302)
    set_auth_cookie(resp, result.token, max_age=service.codec.ttl_seconds)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/signup", response_class=HTMLResponse)
def signup_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "signup.html", {})


@router.post("/signup", response_class=HTMLResponse)
def signup_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    full_name: str = Form(""),
) -> HTMLResponse:
    """Create an account from the signup form and sign the browser in."""
    service = get_auth_service(request)
    try:
        result = service.signup(email, password, full_name, get_client_info(request))
    except DuplicateEmail as exc:
        return _signup_error(request, exc.message, email, full_name, status_code=409)
    except AuthError as exc:
        messages = PasswordCheck(valid=False, violations=exc.details).messages if exc.code == "weak_password" else []
        return _signup_error(request, exc.message, email, full_name, messages)

    resp = RedirectResponse(_settings.home_path, status_code=302)
    set_auth_cookie(resp, result.token, max_age=service.codec.ttl_seconds)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _signup_error(
    request: Request,
    message: str,
    email: str,
    full_name: str,
    details: list[str] | None = None,
    status_code: int = 400,
) -> HTMLResponse:
    # Re-render with what the user typed, except the password.
    return templates.TemplateResponse(
        request,
        "signup.html",
        {"error_msg": message, "error_details": details or [], "email": email, "full_name": full_name},
        status_code=status_code,
    )


# ---------------------------------------------------------------------------
# Dashboard (gated)
# ---------------------------------------------------------------------------


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    try:
        user = get_auth_service(request).who_am_i(get_token(request))
    except Unauthenticated:
        return _to_login(request.url.path, "session_expired")
    except (AccountInactive, NotFound):
        return _to_login(request.url.path, "account_inactive")
    return templates.TemplateResponse(request, "dashboard.html", {"user": user})


@router.get("/dashboard/sessions", response_class=HTMLResponse)
def sessions_page(request: Request) -> HTMLResponse:
    try:
        sessions = get_auth_service(request).list_sessions(get_token(request))
    except Unauthenticated:
        return _to_login(request.url.path, "session_expired")
    return templates.TemplateResponse(request, "sessions.html", {"sessions": sessions})


@router.post("/dashboard/sessions/revoke")
def sessions_revoke(request: Request, session_id: str = Form("")) -> RedirectResponse:
    try:
        get_auth_service(request).revoke_session(get_token(request), session_id)
    except Unauthenticated:
        return _to_login("/dashboard/sessions", "session_expired")
    except AuthError as exc:
        # Unknown or foreign id: nothing to do, just show the list again.
        logger.info("Session revoke from web UI rejected: %s", exc.code)
    return RedirectResponse("/dashboard/sessions", status_code=302)


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Revoke the current session (best-effort), clear the cookie, go to /login."""
    get_auth_service(request).logout(get_token(request))
    resp = RedirectResponse(_settings.login_path, status_code=302)
    clear_auth_cookie(resp)
    return resp


@router.post("/logout-all")
def logout_all(request: Request) -> RedirectResponse:
    """Sign out everywhere. A stale token just falls through to /login."""
    try:
        get_auth_service(request).logout_all(get_token(request))
    except Unauthenticated as exc:
        logger.info("Logout-all with unusable token (%s)", exc.reason)
    resp = RedirectResponse(_settings.login_path, status_code=302)
    clear_auth_cookie(resp)
    return resp

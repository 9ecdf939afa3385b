"""
auth/gate.py -- Request gate for page routes.

Pattern: Interceptor. RequestGate.evaluate() is a pure decision function;
api/main.py wires it into an @app.middleware("http") coroutine that turns the
decision into a redirect or lets the request through.

Cheap check only:
  The gate verifies token signature and expiry with the TokenCodec and never
  touches the datastore. A session revoked a moment ago can therefore pass the
  gate for one more request; the page or API handler behind it performs the
  deep liveness check via AuthService.authenticate() and closes that window.

Failure mode is always a redirect, never an error page.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlencode

from auth.errors import Unauthenticated
from auth.tokens import TokenCodec

ALLOW = "allow"
REDIRECT = "redirect"


@dataclass(frozen=True)
class GateDecision:
    action: str
    location: str | None = None
    clear_cookie: bool = False


def _matches(path: str, prefixes: tuple[str, ...]) -> bool:
    """Segment-aware prefix match: /dashboard covers /dashboard/x, not /dashboards."""
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


class RequestGate:
    """Decide whether a page request may proceed.

    Usage:
        gate = RequestGate(codec, ["/dashboard"], ["/login", "/signup"])
        decision = gate.evaluate("/dashboard", token)
    """

    def __init__(
        self,
        codec: TokenCodec,
        protected_paths: list[str],
        auth_paths: list[str],
        login_path: str = "/login",
        home_path: str = "/dashboard",
    ) -> None:
        self.codec = codec
        self.protected_paths = tuple(protected_paths)
        self.auth_paths = tuple(auth_paths)
        self.login_path = login_path
        self.home_path = home_path

    def _token_ok(self, token: str) -> bool:
        try:
            self.codec.verify(token)
        except Unauthenticated:
            return False
        return True

    def login_redirect(self, path: str) -> str:
        # Only the path is echoed back, never the full URL, so next= is always relative.
        return f"{self.login_path}?{urlencode({'next': path}, safe='/')}"

    def evaluate(self, path: str, token: str | None) -> GateDecision:
        if _matches(path, self.protected_paths):
            if not token:
                return GateDecision(REDIRECT, self.login_redirect(path))
            if not self._token_ok(token):
                return GateDecision(REDIRECT, self.login_redirect(path), clear_cookie=True)
            return GateDecision(ALLOW)

        if token and _matches(path, self.auth_paths):
            if self._token_ok(token):
                return GateDecision(REDIRECT, self.home_path)
            return GateDecision(ALLOW, clear_cookie=True)

        return GateDecision(ALLOW)

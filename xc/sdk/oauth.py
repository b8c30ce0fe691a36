"""
OAuth 2.0 (PKCE) login and token refresh against the X identity provider.

https://docs.x.com/resources/fundamentals/authentication
"""

import base64
import hashlib
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Callable, Dict, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from xc.config.loader import Settings
from xc.core.errors import OAuthError, TokenRefreshError

logger = logging.getLogger(__name__)

SCOPES = " ".join([
    "tweet.read",
    "tweet.write",
    "users.read",
    "follows.read",
    "follows.write",
    "like.read",
    "like.write",
    "list.read",
    "list.write",
    "bookmark.read",
    "bookmark.write",
    "offline.access",  # enables refresh tokens
])

FLOW_TIMEOUT_SECONDS = 120

_FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


@dataclass(frozen=True)
class TokenResult:
    """Tokens returned by the token endpoint."""
    access_token: str
    refresh_token: Optional[str]
    expires_at: int  # epoch milliseconds
    scopes: str


def _now_ms(now: Optional[float]) -> int:
    return int((time.time() if now is None else now) * 1000)


def generate_code_verifier() -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode("ascii")


def generate_code_challenge(verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_state() -> str:
    return secrets.token_hex(16)


def build_authorize_url(
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    state: str,
    settings: Optional[Settings] = None
) -> str:
    settings = settings or Settings()
    query = urlencode({
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": SCOPES,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    })
    return f"{settings.authorize_url}?{query}"


def _post_token(
    form: Dict[str, str],
    settings: Settings,
    http: Optional[httpx.Client]
) -> httpx.Response:
    if http is not None:
        return http.post(settings.token_url, data=form, headers=_FORM_HEADERS)
    with httpx.Client(timeout=settings.timeout_seconds) as client:
        return client.post(settings.token_url, data=form, headers=_FORM_HEADERS)


def _token_result(payload: Dict, fallback_refresh: Optional[str], now: Optional[float]) -> TokenResult:
    return TokenResult(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token") or fallback_refresh,
        expires_at=_now_ms(now) + int(payload.get("expires_in", 0)) * 1000,
        scopes=payload.get("scope", ""),
    )


def refresh_access_token(
    client_id: str,
    refresh_token: str,
    settings: Optional[Settings] = None,
    http: Optional[httpx.Client] = None,
    now: Optional[float] = None
) -> TokenResult:
    """Exchange a refresh token for a new access token.

    Failures are not retried here; the next command starts over.

    Args:
        client_id: OAuth 2.0 client ID the tokens were issued to
        refresh_token: Current refresh token
        settings: Endpoint settings (defaults to the public X endpoints)
        http: Optional httpx client to send the request with
        now: Clock override in epoch seconds

    Returns:
        TokenResult; keeps ``refresh_token`` when the provider omits a new one

    Raises:
        TokenRefreshError: On a non-2xx response
        httpx.HTTPError: On transport failure
    """
    response = _post_token(
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
        },
        settings or Settings(),
        http,
    )
    if not response.is_success:
        raise TokenRefreshError(response.status_code, response.text)
    return _token_result(response.json(), refresh_token, now)


def exchange_code(
    client_id: str,
    code: str,
    redirect_uri: str,
    code_verifier: str,
    settings: Optional[Settings] = None,
    http: Optional[httpx.Client] = None,
    now: Optional[float] = None
) -> TokenResult:
    """Exchange an authorization code for tokens."""
    response = _post_token(
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
            "code_verifier": code_verifier,
        },
        settings or Settings(),
        http,
    )
    if not response.is_success:
        raise OAuthError(f"Token exchange failed ({response.status_code}): {response.text}")
    return _token_result(response.json(), None, now)


_SUCCESS_PAGE = (
    "<html><body style=\"font-family: system-ui; text-align: center; margin-top: 20vh;\">"
    "<h1>Authorized</h1><p>You can close this window and return to your terminal.</p>"
    "</body></html>"
)


class _CallbackHandler(BaseHTTPRequestHandler):
    """Receives the single redirect from the authorize page."""

    def do_GET(self):
        url = urlparse(self.path)
        if url.path != "/callback":
            self._reply(404, "Not found")
            return

        params = {k: v[0] for k, v in parse_qs(url.query).items()}
        outcome = self.server.outcome
        if "error" in params:
            outcome["error"] = f"OAuth error: {params['error']}"
            self._reply(200, "<html><body><h1>Authorization failed</h1>"
                             "<p>You can close this window.</p></body></html>")
        elif params.get("state") != self.server.expected_state:
            outcome["error"] = "OAuth state mismatch"
            self._reply(400, "<html><body><h1>State mismatch</h1></body></html>")
        elif not params.get("code"):
            outcome["error"] = "No authorization code received"
            self._reply(400, "<html><body><h1>No code received</h1></body></html>")
        else:
            outcome["code"] = params["code"]
            self._reply(200, _SUCCESS_PAGE)
        self.server.done.set()

    def _reply(self, status: int, body: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", "text/html")
        self.end_headers()
        self.wfile.write(body.encode("utf-8"))

    def log_message(self, format, *args):
        logger.debug("callback: " + format, *args)


def wait_for_code(
    port: int,
    state: str,
    on_ready: Callable[[], None],
    timeout: float = FLOW_TIMEOUT_SECONDS
) -> str:
    """Serve 127.0.0.1:<port>/callback until the redirect arrives or ``timeout`` elapses."""
    server = HTTPServer(("127.0.0.1", port), _CallbackHandler)
    server.expected_state = state
    server.outcome = {}
    server.done = threading.Event()

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        on_ready()
        if not server.done.wait(timeout):
            raise OAuthError(f"OAuth flow timed out ({int(timeout // 60)} minutes)")
    finally:
        server.shutdown()
        server.server_close()

    if "error" in server.outcome:
        raise OAuthError(server.outcome["error"])
    return server.outcome["code"]


def run_oauth_flow(
    client_id: str,
    open_url: Callable[[str], None],
    settings: Optional[Settings] = None,
    http: Optional[httpx.Client] = None,
    timeout: float = FLOW_TIMEOUT_SECONDS
) -> TokenResult:
    """Run the PKCE authorization-code flow.

    1. Start a local HTTP server to receive the callback
    2. Open the browser to the authorize URL
    3. Exchange the authorization code for tokens
    """
    settings = settings or Settings()
    redirect_uri = f"http://127.0.0.1:{settings.callback_port}/callback"
    verifier = generate_code_verifier()
    state = generate_state()
    url = build_authorize_url(
        client_id, redirect_uri, generate_code_challenge(verifier), state, settings
    )

    code = wait_for_code(settings.callback_port, state, lambda: open_url(url), timeout)
    return exchange_code(client_id, code, redirect_uri, verifier, settings, http)

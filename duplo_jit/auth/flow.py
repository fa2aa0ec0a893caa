"""Interactive browser login: a local callback listener raced against a timeout.

The broker's web UI delivers a session token to a loopback HTTP listener in
one of two ways:

- ``GET /?t=<token>``: the browser is redirected to the listener with the
  token in the query string. The listener redirects back to the broker.
- ``POST /v2/callbackWithOtp``: a script on the broker's page posts
  ``{"token": ..., "otp": ...}``. The request's ``Origin`` must be the broker.

All functions return typed results and never print directly (callers handle
presentation).
"""

from __future__ import annotations

import http.server
import json
import logging
import os
import queue
import threading
import webbrowser
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

from ..config import TOOL_NAME, sanitize_base_url
from ..exceptions import (
    AuthCanceled,
    AuthMalformedCallback,
    AuthTimeout,
    AuthUnauthorizedOrigin,
    BrowserLaunchFailure,
    ListenerBindFailure,
)
from .constants import (
    AUTH_TIMEOUT_ENV,
    CALLBACK_HOST,
    CALLBACK_OTP_PATH,
    CALLBACK_TOKEN_PATH,
    CORS_ALLOW_HEADERS,
    DEFAULT_AUTH_TIMEOUT_SECONDS,
    DEFAULT_CALLBACK_PORT,
    ERROR_AUTH_CANCELED,
    ERROR_AUTH_TIMEOUT,
    ERROR_BROWSER,
    ERROR_MALFORMED,
    ERROR_MISSING_TOKEN,
    ERROR_UNAUTHORIZED_ORIGIN,
    LOGIN_PATH,
    STATUS_DONE,
    STATUS_FAILED,
)
from .types import TokenOutcome, TokenResult

logger = logging.getLogger(__name__)


def build_login_url(
    base_url: str,
    app_name: str,
    port: int,
    admin: bool = False,
    *,
    success: bool = False,
) -> str:
    """Build the broker's verify-token URL.

    The URL opened in the browser carries ``redirect=true``; the redirect sent
    back after a query-token callback carries ``success=true`` instead.
    """
    params: dict[str, str] = {"localAppName": app_name, "localPort": str(port)}
    if admin:
        params["isAdmin"] = "true"
    if success:
        params["success"] = "true"
    else:
        params["redirect"] = "true"
    return f"{sanitize_base_url(base_url)}{LOGIN_PATH}?{urlencode(params)}"


class _Rendezvous:
    """Single-slot hand-off from the listener to the waiting coordinator.

    The slot has room for one result, so delivering never blocks: the first
    result is kept and anything after it is dropped, including a result that
    arrives after the coordinator has stopped waiting.
    """

    def __init__(self) -> None:
        self._slot: queue.Queue[TokenResult] = queue.Queue(maxsize=1)

    def deliver(self, result: TokenResult) -> bool:
        try:
            self._slot.put_nowait(result)
        except queue.Full:
            logger.debug("dropping callback result %s: a result was already delivered", result.outcome.value)
            return False
        return True

    def wait(self, timeout: float) -> TokenResult | None:
        try:
            return self._slot.get(timeout=timeout)
        except queue.Empty:
            return None


class _CallbackServer(http.server.ThreadingHTTPServer):
    """Loopback HTTP server carrying the state its handlers need."""

    daemon_threads = True

    def __init__(self, address: tuple[str, int], base_url: str, app_name: str, admin: bool) -> None:
        super().__init__(address, _CallbackHandler)
        self.base_url = base_url
        self.app_name = app_name
        self.admin = admin
        self.rendezvous = _Rendezvous()

    @property
    def port(self) -> int:
        return self.server_address[1]


class _CallbackHandler(http.server.BaseHTTPRequestHandler):
    """HTTP handler for the broker's token callbacks."""

    server: _CallbackServer

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("callback listener: " + format, *args)

    def _send_cors_headers(self) -> None:
        # Only the configured broker may hand us credentials.
        self.send_header("Access-Control-Allow-Origin", self.server.base_url)
        self.send_header("Access-Control-Allow-Headers", CORS_ALLOW_HEADERS)

    def _send_text(self, status: int, body: str) -> None:
        payload = body.encode()
        self.send_response(status)
        self._send_cors_headers()
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _deliver(self, result: TokenResult) -> None:
        self.server.rendezvous.deliver(result)

    def do_OPTIONS(self) -> None:
        self.send_response(204)
        self._send_cors_headers()
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path == "/favicon.ico":
            self.send_response(204)
            self.end_headers()
            return
        if parsed.path != CALLBACK_TOKEN_PATH:
            self._send_text(404 if parsed.path != CALLBACK_OTP_PATH else 405, "not found\n")
            return

        token = parse_qs(parsed.query).get("t", [""])[0]
        if not token:
            self._deliver(TokenResult(TokenOutcome.MALFORMED, error=ERROR_MISSING_TOKEN, status=400))
            self._send_text(400, f"{ERROR_MISSING_TOKEN}\n")
            return

        self._deliver(TokenResult(TokenOutcome.TOKEN, token=token, status=302))
        redirect_url = build_login_url(
            self.server.base_url, self.server.app_name, self.server.port, self.server.admin, success=True
        )
        self.send_response(302)
        self._send_cors_headers()
        self.send_header("Location", redirect_url)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_POST(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path not in (CALLBACK_TOKEN_PATH, CALLBACK_OTP_PATH):
            self._send_text(404, "not found\n")
            return

        origin = self.headers.get("Origin")
        if origin != self.server.base_url:
            self._deliver(
                TokenResult(
                    TokenOutcome.UNAUTHORIZED_ORIGIN,
                    error=f"{ERROR_UNAUTHORIZED_ORIGIN}: {origin}",
                    status=500,
                    origin=origin,
                )
            )
            self._send_text(500, STATUS_FAILED)
            return

        try:
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length).decode("utf-8") if length > 0 else ""
        except (OSError, ValueError) as e:
            self._deliver(TokenResult(TokenOutcome.TRANSPORT_ERROR, error=str(e), status=500, origin=origin))
            self._send_text(500, STATUS_FAILED)
            return

        if parsed.path == CALLBACK_OTP_PATH:
            self._deliver(_parse_otp_body(body, origin))
        elif body:
            # Legacy callback: the body is the bare token, with no OTP.
            self._deliver(TokenResult(TokenOutcome.TOKEN, token=body, status=200, origin=origin))
        else:
            self._deliver(TokenResult(TokenOutcome.CANCELED, error=ERROR_AUTH_CANCELED, status=200, origin=origin))
        self._send_text(200, STATUS_DONE)


def _parse_otp_body(body: str, origin: str | None) -> TokenResult:
    if not body:
        return TokenResult(TokenOutcome.CANCELED, error=ERROR_AUTH_CANCELED, status=200, origin=origin)

    try:
        data = json.loads(body)
    except ValueError as e:
        return TokenResult(
            TokenOutcome.MALFORMED, error=f"{CALLBACK_OTP_PATH}: {ERROR_MALFORMED}: {e}", status=200,
            origin=origin, body=body,
        )

    token = data.get("token") if isinstance(data, dict) else None
    otp = data.get("otp") if isinstance(data, dict) else None
    if not isinstance(token, str) or not token or (otp is not None and not isinstance(otp, str)):
        return TokenResult(
            TokenOutcome.MALFORMED, error=f"{CALLBACK_OTP_PATH}: unexpected callback document", status=200,
            origin=origin, body=body,
        )

    return TokenResult(TokenOutcome.TOKEN, token=token, otp=otp or None, status=200, origin=origin)


def _open_browser(url: str) -> bool:
    try:
        return webbrowser.open(url)
    except webbrowser.Error as e:
        logger.debug("webbrowser.open failed: %s", e)
        return False


def auth_timeout_seconds() -> float:
    """Return the login timeout from the environment, or the default if unset or invalid."""
    raw = os.environ.get(AUTH_TIMEOUT_ENV)
    if not raw:
        return DEFAULT_AUTH_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if value > 0:
        return value
    logger.warning("ignoring invalid %s=%r, using %gs", AUTH_TIMEOUT_ENV, raw, DEFAULT_AUTH_TIMEOUT_SECONDS)
    return DEFAULT_AUTH_TIMEOUT_SECONDS


def acquire_interactive_token(
    login_base_url: str,
    is_admin: bool = False,
    app_name: str = TOOL_NAME,
    preferred_port: int = DEFAULT_CALLBACK_PORT,
    timeout: float | None = None,
) -> TokenResult:
    """Get a token from the broker through an interactive browser session.

    Binds a loopback listener (``preferred_port``, or any free port when 0),
    opens the broker login page and waits for whichever comes first: one
    callback result, or ``timeout`` seconds. The default timeout comes from
    ``$DUPLO_JIT_AUTH_TIMEOUT``, else 180 seconds.

    Returns a TokenResult. A bind failure is a ``TRANSPORT_ERROR`` result and
    no browser is opened.

    Raises:
        BrowserLaunchFailure: If the login page cannot be opened.
    """
    base_url = sanitize_base_url(login_base_url)
    if timeout is None:
        timeout = auth_timeout_seconds()

    try:
        server = _CallbackServer((CALLBACK_HOST, preferred_port), base_url, app_name, is_admin)
    except OSError as e:
        logger.debug("cannot bind callback listener on port %s: %s", preferred_port, e)
        return TokenResult(TokenOutcome.TRANSPORT_ERROR, error=f"cannot listen on port {preferred_port}: {e}")

    server_thread = threading.Thread(target=server.serve_forever, name="duplo-jit-callback", daemon=True)
    server_thread.start()

    login_url = build_login_url(base_url, app_name, server.port, is_admin)
    logger.debug("callback listener on %s:%d, opening %s", CALLBACK_HOST, server.port, login_url)

    try:
        if not _open_browser(login_url):
            raise BrowserLaunchFailure(f"{ERROR_BROWSER}: {login_url}")
        result = server.rendezvous.wait(timeout)
    finally:
        server.shutdown()
        server_thread.join(timeout=2)
        server.server_close()

    if result is None:
        return TokenResult(TokenOutcome.TIMED_OUT, error=f"{ERROR_AUTH_TIMEOUT} ({timeout:g}s)")
    return result


def require_token(result: TokenResult) -> tuple[str, str | None]:
    """Unpack a successful TokenResult, raising the matching error otherwise."""
    if result.success:
        return result.token, result.otp

    message = result.error or result.outcome.value
    context = {"status": result.status, "origin": result.origin}
    if result.outcome is TokenOutcome.TIMED_OUT:
        raise AuthTimeout(message, **context)
    if result.outcome is TokenOutcome.CANCELED:
        raise AuthCanceled(message, **context)
    if result.outcome is TokenOutcome.UNAUTHORIZED_ORIGIN:
        raise AuthUnauthorizedOrigin(message, **context)
    if result.outcome is TokenOutcome.TRANSPORT_ERROR:
        raise ListenerBindFailure(message, **context)
    raise AuthMalformedCallback(message, body=result.body, **context)

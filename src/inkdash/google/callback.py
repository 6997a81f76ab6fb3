"""One-shot loopback listener for the OAuth redirect.

Google redirects the browser to ``http://localhost:<port>/oauth/callback``
with either ``?code=...`` or ``?error=...``. The listener serves exactly one
request on a background thread, answers the browser, and resolves a
one-shot future that the waiting caller blocks on.

Example:
    >>> with CallbackListener(port=8847) as listener:
    ...     webbrowser.open(authorize_url)
    ...     result = listener.wait(timeout=300)
"""

from __future__ import annotations

import html
import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

from inkdash.config import DEFAULT_CALLBACK_PORT
from inkdash.google.exceptions import (
    CallbackProtocolError,
    CallbackTimeoutError,
    ListenerError,
)

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/oauth/callback"

SUCCESS_PAGE = (
    "<html><body><h1>Authorization successful!</h1>"
    "<p>You can close this window and return to inkdash.</p></body></html>"
)
FAILURE_PAGE = "<html><body><h1>Authorization failed</h1><p>{error}</p></body></html>"


@dataclass(frozen=True)
class AuthorizationCode:
    """Authorization code captured from the redirect."""

    code: str


@dataclass(frozen=True)
class AuthorizationError:
    """Error reported by Google on the redirect (e.g. ``access_denied``)."""

    error: str


CallbackResult = AuthorizationCode | AuthorizationError


class _CallbackServer(HTTPServer):
    listener: CallbackListener


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer

    def do_GET(self):
        parsed = urlparse(self.path)
        params = parse_qs(parsed.query)
        listener = self.server.listener

        if parsed.path == listener.path and params.get("code"):
            self._respond(200, SUCCESS_PAGE, "text/html")
            listener._deliver(AuthorizationCode(params["code"][0]))
        elif parsed.path == listener.path and params.get("error"):
            error = params["error"][0]
            self._respond(200, FAILURE_PAGE.format(error=html.escape(error)), "text/html")
            listener._deliver(AuthorizationError(error))
        else:
            self._respond(400, "Invalid callback", "text/plain")
            listener._fail(CallbackProtocolError(f"Invalid OAuth callback: {self.path}"))

    def _respond(self, status: int, body: str, content_type: str):
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", f"{content_type}; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        logger.debug("callback server: " + format, *args)


class CallbackListener:
    """Loopback HTTP listener that captures a single OAuth redirect.

    The socket is bound when the listener is created, so a port that is
    already taken fails immediately with :class:`ListenerError` instead of
    surfacing later on the waiting side. Once one callback has been served,
    or the wait times out, or :meth:`close` is called, the socket is closed
    and further requests are refused.
    """

    POLL_INTERVAL = 0.2

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = DEFAULT_CALLBACK_PORT,
        path: str = CALLBACK_PATH,
    ):
        """Bind the listener and start serving on a background thread.

        Args:
            host: Interface to bind. Loopback only by default.
            port: Port to bind. 0 picks a free port (see :attr:`port`).
            path: Path the redirect URI points at.

        Raises:
            ListenerError: If the port cannot be bound.
        """
        self.host = host
        self.path = path
        self._result: Future[CallbackResult] = Future()
        self._closing = threading.Event()

        try:
            self._server = _CallbackServer((host, port), _CallbackHandler)
        except OSError as e:
            raise ListenerError(f"{host}:{port}", str(e)) from e

        self._server.listener = self
        self._server.timeout = self.POLL_INTERVAL
        self.port = self._server.server_address[1]

        self._thread = threading.Thread(
            target=self._serve, name=f"oauth-callback-{self.port}", daemon=True
        )
        self._thread.start()
        logger.info(f"OAuth callback listener on http://{host}:{self.port}{path}")

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive()

    def _serve(self):
        try:
            while not self._closing.is_set() and not self._result.done():
                self._server.handle_request()
        finally:
            self._server.server_close()
            logger.debug(f"OAuth callback listener on port {self.port} closed")

    def _deliver(self, result: CallbackResult):
        self._result.set_result(result)

    def _fail(self, error: Exception):
        self._result.set_exception(error)

    def wait(self, timeout: float | None = None) -> CallbackResult:
        """Block until the callback arrives.

        Args:
            timeout: Seconds to wait. None waits forever.

        Returns:
            AuthorizationCode or AuthorizationError.

        Raises:
            CallbackTimeoutError: If nothing arrived in time. The listener
                is closed before raising.
            CallbackProtocolError: If the redirect carried neither a code
                nor an error.
        """
        try:
            return self._result.result(timeout=timeout)
        except FutureTimeoutError:
            self.close()
            raise CallbackTimeoutError(timeout) from None
        finally:
            if self._result.done():
                self._thread.join(timeout=self.POLL_INTERVAL * 5)

    def close(self):
        """Stop serving and release the port. Safe to call more than once."""
        self._closing.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.POLL_INTERVAL * 5)

    def __enter__(self) -> CallbackListener:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

"""Interactive bootstrap of the long-lived Dropbox refresh token.

The user grants the app offline access in a browser; Dropbox redirects to a
one-shot local HTTP server with an authorization code, which is exchanged for
a refresh token and written to the ``.env`` file.
"""

import logging
import webbrowser
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from dotenv import set_key

from .auth import DropboxAuth, DropboxAuthError

logger = logging.getLogger(__name__)

REDIRECT_PATH = "/oauth2/callback"
DEFAULT_PORT = 3000


def redirect_uri(port: int = DEFAULT_PORT) -> str:
    """Redirect URI that must be registered in the Dropbox App Console."""
    return f"http://localhost:{port}{REDIRECT_PATH}"


class _CallbackServer(HTTPServer):
    auth_code: str | None = None
    auth_error: str | None = None
    done: bool = False


class _CallbackHandler(BaseHTTPRequestHandler):
    """Serves the OAuth redirect and records the authorization code."""

    server: _CallbackServer

    def _reply(self, status: int, text: str) -> None:
        body = text.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        if parsed.path != REDIRECT_PATH:
            self._reply(404, "Not found")
            return

        query = parse_qs(parsed.query)
        code = query.get("code", [None])[0]
        self.server.done = True

        if code:
            self.server.auth_code = code
            self._reply(200, "Success! You can close this page.")
        else:
            error = query.get("error_description") or query.get("error") or ["no code"]
            self.server.auth_error = error[0]
            self._reply(400, "No authorization code provided.")

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        logger.debug("callback server: " + format, *args)


def wait_for_code(port: int = DEFAULT_PORT) -> str:
    """Serve the redirect URI until Dropbox calls it once.

    Raises:
        DropboxAuthError: If the redirect carries no authorization code
    """
    with _CallbackServer(("localhost", port), _CallbackHandler) as server:
        logger.info("Local server running at http://localhost:%d", port)
        while not server.done:
            server.handle_request()

    if not server.auth_code:
        raise DropboxAuthError(f"No authorization code provided: {server.auth_error}")
    return server.auth_code


def obtain_refresh_token(
    auth: DropboxAuth,
    port: int = DEFAULT_PORT,
    open_browser: bool = True,
    show_url: Callable[[str], None] | None = None,
) -> str:
    """Run the browser-redirect flow and return a new refresh token.

    Args:
        auth: DropboxAuth holding the app key and secret
        port: Local port of the redirect URI
        open_browser: Open the authorization page automatically
        show_url: Called with the authorization URL so it can be shown to the user
    """
    uri = redirect_uri(port)
    url = auth.authorize_url(uri)

    if show_url is not None:
        show_url(url)
    if open_browser:
        webbrowser.open(url)

    code = wait_for_code(port)
    return auth.exchange_code(code, uri)


def update_env_file(env_file: Path, refresh_token: str) -> None:
    """Write DROPBOX_REFRESH_TOKEN into ``env_file``, replacing any old value."""
    env_file = Path(env_file)
    env_file.touch(exist_ok=True)
    set_key(str(env_file), "DROPBOX_REFRESH_TOKEN", refresh_token)
    logger.info("Updated %s with new DROPBOX_REFRESH_TOKEN", env_file)

"""OAuth2 refresh-token authentication for the Dropbox API."""

import logging
import os
import time
from collections.abc import Callable
from datetime import datetime, timezone
from urllib.parse import urlencode

import requests
from dotenv import load_dotenv

from .token_store import MemoryTokenStore, StoredToken, TokenStore

logger = logging.getLogger(__name__)

TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
AUTHORIZE_URL = "https://www.dropbox.com/oauth2/authorize"

# Key of the cached access token in the token store
TOKEN_CACHE_KEY = "dropbox_access_token"

DEFAULT_EXPIRY_BUFFER = 600


class DropboxAuthError(Exception):
    """Exception raised when an access or refresh token cannot be obtained."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DropboxAuth:
    """Supplies bearer tokens for Dropbox API calls.

    Access tokens are short-lived. They are minted from a long-lived refresh
    token and cached in a ``TokenStore`` until they get within
    ``expiry_buffer`` seconds of expiring.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        store: TokenStore | None = None,
        expiry_buffer: int = DEFAULT_EXPIRY_BUFFER,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
        require_refresh_token: bool = True,
    ) -> None:
        """Initialize authentication with credentials.

        Args:
            client_id: Dropbox app key (or load from DROPBOX_CLIENT_ID env)
            client_secret: Dropbox app secret (or load from DROPBOX_CLIENT_SECRET env)
            refresh_token: Long-lived refresh token (or load from DROPBOX_REFRESH_TOKEN env)
            store: Cache for the current access token (in-memory if not provided)
            expiry_buffer: Seconds before expiry at which a cached token is replaced
            session: requests session used for token calls
            clock: Source of the current epoch time
            require_refresh_token: False when bootstrapping a refresh token
        """
        load_dotenv()

        self.client_id = client_id or os.getenv("DROPBOX_CLIENT_ID", "")
        self.client_secret = client_secret or os.getenv("DROPBOX_CLIENT_SECRET", "")
        self.refresh_token = refresh_token or os.getenv("DROPBOX_REFRESH_TOKEN", "")

        if not self.client_id or not self.client_secret:
            raise ValueError(
                "Missing Dropbox API credentials. Set DROPBOX_CLIENT_ID and "
                "DROPBOX_CLIENT_SECRET environment variables or pass them directly."
            )
        if require_refresh_token and not self.refresh_token:
            raise ValueError(
                "Missing Dropbox API credentials. Set DROPBOX_REFRESH_TOKEN "
                "(run `dbxsync authorize` to obtain one)."
            )

        self.store = store or MemoryTokenStore(clock)
        self.expiry_buffer = expiry_buffer
        self.session = session or requests.Session()
        self._clock = clock

    def _post_token(self, form: dict[str, str], action: str) -> dict:
        """POST a form to the token endpoint and return the JSON body."""
        try:
            response = self.session.post(TOKEN_URL, data=form)
        except requests.RequestException as e:
            raise DropboxAuthError(f"Failed to {action}: {e}") from e

        if not response.ok:
            raise DropboxAuthError(
                f"Failed to {action}: {response.status_code} - {response.text[:500]}",
                response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise DropboxAuthError(f"Failed to {action}: malformed response") from e

    def refresh_access_token(self) -> StoredToken:
        """Mint a new access token from the refresh token.

        Raises:
            DropboxAuthError: If the token endpoint rejects the request
        """
        data = self._post_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": self.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            "refresh token",
        )
        try:
            return StoredToken(
                access_token=data["access_token"],
                expires_at=self._clock() + float(data["expires_in"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DropboxAuthError("Failed to refresh token: malformed response") from e

    def get_valid_token(self) -> str:
        """Return a cached access token, refreshing it when close to expiry.

        Raises:
            DropboxAuthError: If a refresh is needed and fails
        """
        stored = self.store.get(TOKEN_CACHE_KEY)
        if stored:
            token = StoredToken.from_dict(stored)
            if token.seconds_left(self._clock()) > self.expiry_buffer:
                return token.access_token

        token = self.refresh_access_token()
        ttl = int(token.seconds_left(self._clock()))
        if ttl > 0:
            self.store.put(TOKEN_CACHE_KEY, token.to_dict(), ttl)

        expires = datetime.fromtimestamp(token.expires_at, timezone.utc)
        logger.info("Refreshed Dropbox access token, expires at %s", expires.isoformat())
        return token.access_token

    def invalidate(self) -> None:
        """Drop the cached access token so the next call refreshes it."""
        self.store.delete(TOKEN_CACHE_KEY)

    def get_headers(self, content_type: str | None = None) -> dict[str, str]:
        """Build the Authorization (and optional Content-Type) headers."""
        headers = {"Authorization": f"Bearer {self.get_valid_token()}"}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def authorize_url(self, redirect_uri: str) -> str:
        """URL the user opens to grant offline access to the app."""
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "token_access_type": "offline",
            "redirect_uri": redirect_uri,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str, redirect_uri: str) -> str:
        """Exchange an authorization code for a refresh token.

        Args:
            code: Code received on the redirect URI
            redirect_uri: Same redirect URI used in ``authorize_url``

        Returns:
            The new refresh token
        """
        data = self._post_token(
            {
                "code": code,
                "grant_type": "authorization_code",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": redirect_uri,
            },
            "get refresh token",
        )
        refresh_token = data.get("refresh_token")
        if not refresh_token:
            raise DropboxAuthError("Failed to get refresh token: none in response")
        self.refresh_token = refresh_token
        return refresh_token

    def verify_credentials(self) -> bool:
        """Verify that credentials are set (does not call the API)."""
        return bool(self.client_id and self.client_secret and self.refresh_token)

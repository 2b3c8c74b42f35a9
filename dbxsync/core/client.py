"""HTTP client wrapper for the Dropbox API v2."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import requests

from .auth import DropboxAuth
from .paths import encode_api_arg, parse_timestamp

logger = logging.getLogger(__name__)

API_URL = "https://api.dropboxapi.com/2"
CONTENT_URL = "https://content.dropboxapi.com/2"

# Dropbox answers endpoint-specific errors, including path/not_found, with 409
NOT_FOUND_STATUS = 409
# Expired or revoked access token
UNAUTHORIZED_STATUS = 401

DEFAULT_CHUNK_SIZE = 1024 * 1024


class DropboxAPIError(Exception):
    """Exception raised for Dropbox API errors."""

    def __init__(self, message: str, status_code: int | None = None, response: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response

    @property
    def not_found(self) -> bool:
        """True if Dropbox reported the path as missing."""
        return self.status_code == NOT_FOUND_STATUS


@dataclass
class Metadata:
    """File or folder metadata as returned by get_metadata and list_folder."""

    name: str
    path: str
    tag: str  # "file", "folder" or "deleted"
    client_modified: datetime | None = None

    @property
    def is_file(self) -> bool:
        return self.tag == "file"

    @property
    def is_folder(self) -> bool:
        return self.tag == "folder"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Metadata":
        """Create from a Dropbox metadata object.

        Raises:
            DropboxAPIError: If client_modified is not an ISO 8601 timestamp
        """
        try:
            client_modified = parse_timestamp(data.get("client_modified"))
        except (AttributeError, TypeError, ValueError) as e:
            raise DropboxAPIError(f"Malformed client_modified: {e}") from e

        return cls(
            name=data.get("name", ""),
            path=data.get("path_display") or data.get("path_lower", ""),
            tag=data.get(".tag", ""),
            client_modified=client_modified,
        )


class DropboxClient:
    """HTTP client for the Dropbox RPC and content endpoints."""

    def __init__(
        self,
        auth: DropboxAuth | None = None,
        timeout: float | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize client with authentication.

        Args:
            auth: DropboxAuth instance (creates one from env if not provided)
            timeout: Per-request timeout in seconds; None leaves it to the host
            chunk_size: Bytes per chunk when piping a download into an upload
        """
        self.auth = auth or DropboxAuth()
        self.session = requests.Session()
        self.timeout = timeout
        self.chunk_size = chunk_size

    def _request(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        json_data: dict[str, Any] | None = None,
        data: Any = None,
        stream: bool = False,
    ) -> requests.Response:
        """Make an authenticated POST request to the Dropbox API.

        Every Dropbox v2 endpoint is a POST.

        Returns:
            The successful response (unread when ``stream`` is set)

        Raises:
            DropboxAPIError: On API or transport errors
            DropboxAuthError: If no access token can be obtained
        """
        request_headers = dict(self.auth.get_headers())
        request_headers.update(headers or {})

        try:
            response = self.session.request(
                method="POST",
                url=url,
                headers=request_headers,
                json=json_data,
                data=data,
                stream=stream,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise DropboxAPIError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            error_msg = f"API error {response.status_code}: {response.text[:500]}"
            response.close()
            if response.status_code == UNAUTHORIZED_STATUS:
                logger.warning("Access token rejected, dropping it from the cache")
                self.auth.invalidate()
            raise DropboxAPIError(error_msg, response.status_code, response)

        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        """Decode a successful response body.

        Raises:
            DropboxAPIError: If the body is not JSON
        """
        try:
            return response.json()
        except ValueError as e:
            raise DropboxAPIError(
                f"Malformed response from {response.url}: {e}", response.status_code, response
            ) from e

    def rpc(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Call an RPC endpoint (e.g., "files/get_metadata") with a JSON body."""
        response = self._request(f"{API_URL}/{endpoint}", json_data=payload)
        if not response.content:
            return {}
        return self._json(response)  # type: ignore[no-any-return]

    # -------------------------------------------------------------------------
    # Metadata Operations
    # -------------------------------------------------------------------------

    def get_metadata(self, path: str) -> Metadata:
        """Get metadata for a file or folder.

        Raises:
            DropboxAPIError: With status 409 if the path does not exist
        """
        return Metadata.from_dict(self.rpc("files/get_metadata", {"path": path}))

    def list_folder(self, path: str) -> list[Metadata]:
        """List the immediate children of a folder, following pagination.

        Args:
            path: Folder path ("/" or "" for the root)

        Returns:
            Child entries (files and folders)
        """
        if path == "/":
            path = ""

        response = self.rpc("files/list_folder", {"path": path})
        entries = [Metadata.from_dict(e) for e in response.get("entries", [])]

        while response.get("has_more"):
            response = self.rpc("files/list_folder/continue", {"cursor": response["cursor"]})
            entries.extend(Metadata.from_dict(e) for e in response.get("entries", []))

        return entries

    def delete(self, path: str) -> Metadata:
        """Delete a file, or a folder with all its contents."""
        response = self.rpc("files/delete_v2", {"path": path})
        return Metadata.from_dict(response.get("metadata", {}))

    # -------------------------------------------------------------------------
    # Content Operations
    # -------------------------------------------------------------------------

    def download(self, path: str) -> requests.Response:
        """Start a streamed download.

        The caller must consume and close the returned response.
        """
        return self._request(
            f"{CONTENT_URL}/files/download",
            headers={"Dropbox-API-Arg": encode_api_arg({"path": path})},
            stream=True,
        )

    def upload(self, path: str, body: Iterable[bytes] | bytes) -> Metadata:
        """Upload content to ``path``, replacing whatever is there.

        Args:
            path: Destination path
            body: Request body; an iterable of chunks is sent with chunked
                transfer encoding and is never held in memory as a whole
        """
        arg = {"path": path, "mode": "overwrite", "autorename": False}
        response = self._request(
            f"{CONTENT_URL}/files/upload",
            headers={
                "Content-Type": "application/octet-stream",
                "Dropbox-API-Arg": encode_api_arg(arg),
            },
            data=body,
        )
        return Metadata.from_dict(self._json(response))

    # -------------------------------------------------------------------------
    # Health Check
    # -------------------------------------------------------------------------

    def verify_connection(self) -> bool:
        """Verify API connectivity and authentication.

        Raises:
            DropboxAPIError: On connection or auth failure
        """
        response = self._request(
            f"{API_URL}/users/get_current_account",
            headers={"Content-Type": "application/json"},
            data="null",
        )
        account = self._json(response)
        logger.debug("Connected as account %s", account.get("account_id"))
        return "account_id" in account

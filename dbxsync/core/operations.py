"""Metadata lookup, streamed transfer and cleanup on top of DropboxClient.

Every operation here converts ``DropboxAPIError`` into a logged, conservative
result ("absent", empty, or ``False``) so that one failing path never aborts
the rest of a run. ``DropboxAuthError`` is not caught.
"""

import logging
from datetime import datetime

from .client import DropboxAPIError, DropboxClient, Metadata

logger = logging.getLogger(__name__)


class SyncOperations:
    """Handles single-path operations between two Dropbox locations."""

    def __init__(self, client: DropboxClient | None = None) -> None:
        """Initialize sync operations.

        Args:
            client: DropboxClient (created lazily if not provided)
        """
        self._client = client

    @property
    def client(self) -> DropboxClient:
        """Get or create DropboxClient."""
        if self._client is None:
            self._client = DropboxClient()
        return self._client

    # =========================================================================
    # Metadata Resolution
    # =========================================================================

    def get_metadata(self, path: str) -> Metadata | None:
        """Get metadata for ``path``, or None if it is missing or unreadable."""
        try:
            return self.client.get_metadata(path)
        except DropboxAPIError as e:
            if e.not_found:
                logger.debug("No such path: %s", path)
            else:
                logger.error("Error getting metadata for %s: %s", path, e)
            return None

    def get_mod_time(self, path: str) -> datetime | None:
        """Resolve the client-set modification time of a file.

        A lookup failure is reported the same way as a missing file, so
        callers must treat None as "maybe absent".
        """
        metadata = self.get_metadata(path)
        if metadata is None:
            return None
        return metadata.client_modified

    def folder_exists(self, path: str) -> bool:
        """True only if ``path`` resolves to a folder (not a file)."""
        metadata = self.get_metadata(path)
        return metadata is not None and metadata.is_folder

    def list_entries(self, path: str) -> list[Metadata]:
        """List a folder's children; empty on failure."""
        try:
            return self.client.list_folder(path)
        except DropboxAPIError as e:
            logger.error("Error listing folder %s: %s", path, e)
            return []

    # =========================================================================
    # Transfer
    # =========================================================================

    def stream_file(self, source: str, target: str) -> bool:
        """Pipe ``source`` into ``target`` chunk by chunk.

        The target is always overwritten and never renamed.

        Returns:
            True if both the download and the upload succeeded
        """
        try:
            download = self.client.download(source)
        except DropboxAPIError as e:
            logger.error("Failed to download %s: %s", source, e)
            return False

        with download:
            if download.raw is None:
                logger.error("Failed to download %s: %s returned no body", source, download.status_code)
                return False

            chunks = download.iter_content(chunk_size=self.client.chunk_size)
            try:
                self.client.upload(target, chunks)
            except DropboxAPIError as e:
                logger.error("Error streaming %s to %s: %s", source, target, e)
                return False

        logger.info("Successfully streamed %s to %s", source, target)
        return True

    # =========================================================================
    # Cleanup
    # =========================================================================

    def delete_path(self, path: str) -> bool:
        """Delete a file or a whole folder.

        A failure is logged and left for the next run to retry.
        """
        try:
            self.client.delete(path)
        except DropboxAPIError as e:
            logger.error("Failed to delete %s: %s", path, e)
            return False

        logger.info("Deleted %s", path)
        return True

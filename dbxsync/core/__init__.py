"""Core sync functionality."""

from .auth import DropboxAuth, DropboxAuthError
from .client import DropboxAPIError, DropboxClient, Metadata
from .operations import SyncOperations
from .reconcile import Reconciler, SyncResult, TickReport
from .token_store import FileTokenStore, MemoryTokenStore, StoredToken, TokenStore

__all__ = [
    "DropboxAPIError",
    "DropboxAuth",
    "DropboxAuthError",
    "DropboxClient",
    "FileTokenStore",
    "MemoryTokenStore",
    "Metadata",
    "Reconciler",
    "StoredToken",
    "SyncOperations",
    "SyncResult",
    "TickReport",
    "TokenStore",
]

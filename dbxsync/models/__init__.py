"""Data models for the mirror job."""

from .config import (
    DocumentSetConfig,
    FileSetConfig,
    MirrorConfig,
    SyncSettings,
)

__all__ = [
    "DocumentSetConfig",
    "FileSetConfig",
    "MirrorConfig",
    "SyncSettings",
]

"""Configuration models for the mirror job."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_TOKEN_CACHE = "./.dropbox-token.json"
DEFAULT_CHUNK_SIZE = 1024 * 1024


@dataclass
class FileSetConfig:
    """Fixed-name files copied from one folder to another."""

    source_folder: str
    target_folder: str
    names: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileSetConfig":
        """Create from dictionary."""
        return cls(
            source_folder=data["source_folder"],
            target_folder=data["target_folder"],
            names=list(data.get("names") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "source_folder": self.source_folder,
            "target_folder": self.target_folder,
            "names": list(self.names),
        }


@dataclass
class DocumentSetConfig:
    """Dated subfolders of documents moved into a year-based archive.

    A subfolder "2021-champs" under ``source_root`` is archived into
    ``{archive_root}/2021/2021-champs``.
    """

    source_root: str
    archive_root: str
    suffix: str = ".pdf"  # Matched case-insensitively

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DocumentSetConfig":
        """Create from dictionary."""
        return cls(
            source_root=data["source_root"],
            archive_root=data["archive_root"],
            suffix=data.get("suffix", ".pdf"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "source_root": self.source_root,
            "archive_root": self.archive_root,
            "suffix": self.suffix,
        }


@dataclass
class SyncSettings:
    """Run settings."""

    # Cached access tokens closer than this to expiry are refreshed
    expiry_buffer_seconds: int = 600
    token_cache: str = DEFAULT_TOKEN_CACHE
    chunk_size: int = DEFAULT_CHUNK_SIZE
    verbose: bool = False


@dataclass
class MirrorConfig:
    """Main configuration for the mirror job.

    Either section may be omitted to disable that kind of reconciliation.
    """

    files: FileSetConfig | None = None
    documents: DocumentSetConfig | None = None
    settings: SyncSettings = field(default_factory=SyncSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MirrorConfig":
        """Create from dictionary."""
        files_data = data.get("files")
        documents_data = data.get("documents")
        settings_data = data.get("settings") or {}

        settings = SyncSettings(
            expiry_buffer_seconds=int(settings_data.get("expiry_buffer_seconds", 600)),
            token_cache=settings_data.get("token_cache", DEFAULT_TOKEN_CACHE),
            chunk_size=int(settings_data.get("chunk_size", DEFAULT_CHUNK_SIZE)),
            verbose=settings_data.get("verbose", False),
        )

        return cls(
            files=FileSetConfig.from_dict(files_data) if files_data else None,
            documents=DocumentSetConfig.from_dict(documents_data) if documents_data else None,
            settings=settings,
        )

    @classmethod
    def load(cls, config_path: Path) -> "MirrorConfig":
        """Load configuration from YAML file."""
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        data: dict[str, Any] = {}

        if self.files:
            data["files"] = self.files.to_dict()

        if self.documents:
            data["documents"] = self.documents.to_dict()

        data["settings"] = {
            "expiry_buffer_seconds": self.settings.expiry_buffer_seconds,
            "token_cache": self.settings.token_cache,
            "chunk_size": self.settings.chunk_size,
            "verbose": self.settings.verbose,
        }

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

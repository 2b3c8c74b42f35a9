"""Key-value stores for the cached Dropbox access token."""

import json
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass
class StoredToken:
    """A short-lived access token and its absolute expiry (epoch seconds)."""

    access_token: str
    expires_at: float

    def seconds_left(self, now: float) -> float:
        """Remaining lifetime relative to ``now``."""
        return self.expires_at - now

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "access_token": self.access_token,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoredToken":
        """Create from dictionary."""
        return cls(
            access_token=data["access_token"],
            expires_at=float(data["expires_at"]),
        )


class TokenStore(ABC):
    """Key-value store whose entries lapse after a time-to-live."""

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """Return the value for ``key``, or None if missing or lapsed."""

    @abstractmethod
    def put(self, key: str, value: dict[str, Any], ttl: int) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds, replacing any entry."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""


class MemoryTokenStore(TokenStore):
    """Process-local store, mainly for tests and one-shot runs."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[dict[str, Any], float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, deadline = entry
            if deadline <= self._clock():
                del self._entries[key]
                return None
            return dict(value)

    def put(self, key: str, value: dict[str, Any], ttl: int) -> None:
        with self._lock:
            self._entries[key] = (dict(value), self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class FileTokenStore(TokenStore):
    """JSON file store shared by every run on the same machine.

    The file is re-read on every ``get`` so that a token refreshed by another
    process is picked up. Concurrent writers overwrite each other; the last
    one wins.
    """

    def __init__(self, store_file: Path, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            store_file: Path to the JSON file (created on first ``put``)
            clock: Source of the current epoch time
        """
        self.store_file = Path(store_file)
        self._clock = clock
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        """Load all entries from disk, or an empty mapping."""
        if not self.store_file.exists():
            return {}
        try:
            with open(self.store_file) as f:
                data = json.load(f)
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        """Save all entries to disk.

        The file holds a bearer token, so it is readable by the owner only and
        replaced in one step.
        """
        self.store_file.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.store_file.parent, prefix=f".{self.store_file.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.store_file)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._load().get(key)
        if not entry or entry.get("deadline", 0) <= self._clock():
            return None
        return entry.get("value")

    def put(self, key: str, value: dict[str, Any], ttl: int) -> None:
        with self._lock:
            data = self._load()
            data[key] = {"value": value, "deadline": self._clock() + ttl}
            self._save(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._save(data)

"""Tests for access token stores."""

import os
import stat
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from dbxsync.core.token_store import FileTokenStore, MemoryTokenStore, StoredToken


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestStoredToken:
    """Tests for StoredToken model."""

    def test_round_trip(self) -> None:
        token = StoredToken(access_token="sl.abc", expires_at=1234.5)

        assert StoredToken.from_dict(token.to_dict()) == token

    def test_seconds_left(self) -> None:
        token = StoredToken(access_token="sl.abc", expires_at=2000.0)

        assert token.seconds_left(1400.0) == 600.0


class TestMemoryTokenStore:
    """Tests for MemoryTokenStore."""

    def test_get_missing(self) -> None:
        store = MemoryTokenStore()

        assert store.get("nope") is None

    def test_put_and_get(self) -> None:
        clock = FakeClock()
        store = MemoryTokenStore(clock)

        store.put("key", {"access_token": "t"}, ttl=60)

        assert store.get("key") == {"access_token": "t"}

    def test_entry_lapses_after_ttl(self) -> None:
        clock = FakeClock()
        store = MemoryTokenStore(clock)
        store.put("key", {"access_token": "t"}, ttl=60)

        clock.now += 60

        assert store.get("key") is None

    def test_put_replaces(self) -> None:
        store = MemoryTokenStore(FakeClock())
        store.put("key", {"access_token": "old"}, ttl=60)
        store.put("key", {"access_token": "new"}, ttl=60)

        assert store.get("key") == {"access_token": "new"}

    def test_delete(self) -> None:
        store = MemoryTokenStore(FakeClock())
        store.put("key", {"access_token": "t"}, ttl=60)

        store.delete("key")
        store.delete("key")

        assert store.get("key") is None


class TestFileTokenStore:
    """Tests for FileTokenStore."""

    def test_persists_across_instances(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store_file = Path(tmpdir) / "cache" / "token.json"
            clock = FakeClock()

            FileTokenStore(store_file, clock).put("key", {"access_token": "t"}, ttl=60)
            store2 = FileTokenStore(store_file, clock)

            assert store_file.exists()
            assert store2.get("key") == {"access_token": "t"}

    def test_entry_lapses_after_ttl(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            clock = FakeClock()
            store = FileTokenStore(Path(tmpdir) / "token.json", clock)
            store.put("key", {"access_token": "t"}, ttl=60)

            clock.now += 61

            assert store.get("key") is None

    def test_missing_or_corrupt_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store_file = Path(tmpdir) / "token.json"
            store = FileTokenStore(store_file)

            assert store.get("key") is None

            store_file.write_text("{not json")
            assert store.get("key") is None

    def test_delete(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileTokenStore(Path(tmpdir) / "token.json", FakeClock())
            store.put("key", {"access_token": "t"}, ttl=60)
            store.put("other", {"access_token": "u"}, ttl=60)

            store.delete("key")

            assert store.get("key") is None
            assert store.get("other") == {"access_token": "u"}

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    def test_file_readable_by_owner_only(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store_file = Path(tmpdir) / "token.json"
            store_file.write_text("{}")
            store_file.chmod(0o644)

            FileTokenStore(store_file, FakeClock()).put("key", {"access_token": "t"}, ttl=60)

            assert stat.S_IMODE(store_file.stat().st_mode) == 0o600

    def test_failed_write_keeps_previous_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store_file = Path(tmpdir) / "token.json"
            store = FileTokenStore(store_file, FakeClock())
            store.put("key", {"access_token": "t"}, ttl=60)

            with patch("dbxsync.core.token_store.os.replace", side_effect=OSError("disk full")):
                with pytest.raises(OSError):
                    store.put("key", {"access_token": "u"}, ttl=60)

            assert store.get("key") == {"access_token": "t"}
            assert [p.name for p in Path(tmpdir).iterdir()] == ["token.json"]

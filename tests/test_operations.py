"""Tests for metadata resolution, streaming and cleanup."""

import logging
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from dbxsync.core.auth import DropboxAuthError
from dbxsync.core.client import DropboxAPIError, DropboxClient, Metadata
from dbxsync.core.operations import SyncOperations

T1 = datetime(2024, 5, 1, 18, 30, tzinfo=timezone.utc)


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.chunk_size = 8
    return client


class TestMetadataResolution:
    """Tests for get_mod_time and folder_exists."""

    def test_mod_time(self, client: MagicMock) -> None:
        client.get_metadata.return_value = Metadata("a.jpg", "/A/a.jpg", "file", T1)

        assert SyncOperations(client).get_mod_time("/A/a.jpg") == T1

    def test_not_found_is_absent(self, client: MagicMock, caplog: pytest.LogCaptureFixture) -> None:
        client.get_metadata.side_effect = DropboxAPIError("API error 409", 409)

        with caplog.at_level(logging.ERROR):
            assert SyncOperations(client).get_mod_time("/A/missing.jpg") is None

        assert not caplog.records

    def test_other_error_is_logged_and_absent(self, client: MagicMock, caplog: pytest.LogCaptureFixture) -> None:
        client.get_metadata.side_effect = DropboxAPIError("API error 503", 503)

        with caplog.at_level(logging.ERROR):
            assert SyncOperations(client).get_mod_time("/A/a.jpg") is None

        assert "/A/a.jpg" in caplog.text

    def test_auth_error_propagates(self, client: MagicMock) -> None:
        client.get_metadata.side_effect = DropboxAuthError("Failed to refresh token: 400")

        with pytest.raises(DropboxAuthError):
            SyncOperations(client).get_mod_time("/A/a.jpg")

    def test_folder_exists(self, client: MagicMock) -> None:
        client.get_metadata.return_value = Metadata("2021", "/Arkisto/2021", "folder")

        assert SyncOperations(client).folder_exists("/Arkisto/2021") is True

    def test_file_is_not_a_folder(self, client: MagicMock) -> None:
        client.get_metadata.return_value = Metadata("2021", "/Arkisto/2021", "file", T1)

        assert SyncOperations(client).folder_exists("/Arkisto/2021") is False

    def test_missing_folder(self, client: MagicMock) -> None:
        client.get_metadata.side_effect = DropboxAPIError("API error 409", 409)

        assert SyncOperations(client).folder_exists("/Arkisto/2021") is False

    def test_list_entries_failure_is_empty(self, client: MagicMock) -> None:
        client.list_folder.side_effect = DropboxAPIError("API error 500", 500)

        assert SyncOperations(client).list_entries("/Tulokset") == []

    def test_garbled_response_is_absent(self, caplog: pytest.LogCaptureFixture) -> None:
        auth = MagicMock()
        auth.get_headers.return_value = {"Authorization": "Bearer sl.token"}
        client = DropboxClient(auth=auth)
        client.session = MagicMock()
        response = client.session.request.return_value
        response.status_code = 200
        response.content = b"not json"
        response.json.side_effect = ValueError("not json")

        with caplog.at_level(logging.ERROR):
            assert SyncOperations(client).get_mod_time("/A/f.jpg") is None

        assert "/A/f.jpg" in caplog.text

    def test_bad_timestamp_is_absent(self, client: MagicMock) -> None:
        client.get_metadata.side_effect = lambda path: Metadata.from_dict(
            {".tag": "file", "name": "f.jpg", "client_modified": "2024-13-45"}
        )

        assert SyncOperations(client).get_mod_time("/A/f.jpg") is None


class TestStreamFile:
    """Tests for stream_file."""

    def test_pipes_download_into_upload(self, client: MagicMock) -> None:
        download = MagicMock()
        chunks = iter([b"jpeg", b"data"])
        download.iter_content.return_value = chunks
        client.download.return_value = download

        assert SyncOperations(client).stream_file("/A/f.jpg", "/B/f.jpg") is True

        client.download.assert_called_once_with("/A/f.jpg")
        download.iter_content.assert_called_once_with(chunk_size=8)
        client.upload.assert_called_once_with("/B/f.jpg", chunks)
        download.__exit__.assert_called_once()

    def test_download_failure(self, client: MagicMock) -> None:
        client.download.side_effect = DropboxAPIError("API error 409", 409)

        assert SyncOperations(client).stream_file("/A/f.jpg", "/B/f.jpg") is False
        client.upload.assert_not_called()

    def test_download_without_body(self, client: MagicMock) -> None:
        download = MagicMock()
        download.raw = None
        client.download.return_value = download

        assert SyncOperations(client).stream_file("/A/f.jpg", "/B/f.jpg") is False
        client.upload.assert_not_called()

    def test_upload_failure(self, client: MagicMock, caplog: pytest.LogCaptureFixture) -> None:
        client.download.return_value = MagicMock()
        client.upload.side_effect = DropboxAPIError("API error 507", 507)

        with caplog.at_level(logging.ERROR):
            assert SyncOperations(client).stream_file("/A/f.jpg", "/B/f.jpg") is False

        assert "/B/f.jpg" in caplog.text


class TestDeletePath:
    """Tests for delete_path."""

    def test_delete(self, client: MagicMock) -> None:
        assert SyncOperations(client).delete_path("/A/f.jpg") is True
        client.delete.assert_called_once_with("/A/f.jpg")

    def test_delete_failure_is_reported(self, client: MagicMock) -> None:
        client.delete.side_effect = DropboxAPIError("API error 409", 409)

        assert SyncOperations(client).delete_path("/A/f.jpg") is False

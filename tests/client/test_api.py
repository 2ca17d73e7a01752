"""Tests for the resumable upload HTTP client."""

import json

import httpx
import pytest

from backupagent.client.api import (
    APIError,
    AuthenticationError,
    ChunkComplete,
    ChunkInProgress,
    DriveClient,
    ProtocolError,
    RemoteFile,
    SessionComplete,
    SessionExpired,
    SessionInProgress,
    content_range,
    escape_query_value,
    parse_confirmed_bytes,
)
from backupagent.core.config import DriveConfig

API_URL = "https://api.test/drive/v3"
UPLOAD_URL = "https://upload.test/upload/drive/v3/files"
SESSION_URI = "https://upload.test/session/abc123"


def make_config(token: str = "token123") -> DriveConfig:
    """Create a DriveConfig for testing."""
    return DriveConfig(token=token, api_url=API_URL, upload_url=UPLOAD_URL)


@pytest.fixture
def client() -> DriveClient:
    """Create a client pointed at the mocked endpoint."""
    c = DriveClient(make_config())
    yield c
    c.close()


class TestParseConfirmedBytes:
    """Tests for Range header parsing."""

    def test_missing_header_means_nothing_received(self) -> None:
        assert parse_confirmed_bytes(None) == 0

    def test_inclusive_end(self) -> None:
        """bytes=0-N means N + 1 bytes are stored."""
        assert parse_confirmed_bytes("bytes=0-5242879") == 5 * 1024 * 1024
        assert parse_confirmed_bytes("bytes=0-0") == 1

    def test_malformed(self) -> None:
        """Should reject anything that is not bytes=0-N."""
        for value in ("bytes 0-10", "bytes=5-10", "bytes=0-", "items=0-10", "bytes=0-1x"):
            with pytest.raises(ProtocolError):
                parse_confirmed_bytes(value)


class TestHelpers:
    """Tests for header and query helpers."""

    def test_content_range(self) -> None:
        assert content_range(0, 100, 1000) == "bytes 0-99/1000"
        assert content_range(900, 100, 1000) == "bytes 900-999/1000"

    def test_content_range_empty_chunk(self) -> None:
        """A zero-length chunk only announces the total."""
        assert content_range(0, 0, 0) == "bytes */0"

    def test_escape_query_value(self) -> None:
        assert escape_query_value("it's.backup") == "it\\'s.backup"
        assert escape_query_value("a\\b") == "a\\\\b"

    def test_remote_file_from_dict(self) -> None:
        """Drive reports sizes as strings."""
        assert RemoteFile.from_dict({"id": "f1", "size": "1024"}) == RemoteFile("f1", 1024)
        assert RemoteFile.from_dict({"id": "f2"}) == RemoteFile("f2", None)


class TestDriveClient:
    """Tests for DriveClient against a mocked endpoint."""

    def test_context_manager(self) -> None:
        """Should be usable as a context manager."""
        with DriveClient(make_config()) as client:
            assert isinstance(client, DriveClient)

    def test_health_check_success(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return True when the metadata API answers."""
        httpx_mock.add_response(url=f"{API_URL}/about?fields=user", json={"user": {}})
        assert client.health_check() is True

    def test_health_check_failure(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return False on an error status."""
        httpx_mock.add_response(url=f"{API_URL}/about?fields=user", status_code=401)
        assert client.health_check() is False

    def test_health_check_network_error(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return False when the endpoint is unreachable."""
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))
        assert client.health_check() is False


class TestInitiate:
    """Tests for starting a resumable session."""

    def test_returns_location(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return the session URI from the Location header."""
        httpx_mock.add_response(method="POST", headers={"Location": SESSION_URI})

        uri = client.initiate("folder-1", "db.backup", "application/octet-stream", 12345)

        assert uri == SESSION_URI
        request = httpx_mock.get_request()
        assert request.url.host == "upload.test"
        assert request.url.params["uploadType"] == "resumable"
        assert request.url.params["fields"] == "id,md5Checksum"
        assert request.headers["Authorization"] == "Bearer token123"
        assert request.headers["X-Upload-Content-Type"] == "application/octet-stream"
        assert request.headers["X-Upload-Content-Length"] == "12345"
        assert json.loads(request.content) == {"name": "db.backup", "parents": ["folder-1"]}

    def test_missing_location(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A 200 without Location is a protocol error."""
        httpx_mock.add_response(method="POST", status_code=200)

        with pytest.raises(ProtocolError):
            client.initiate("folder-1", "db.backup", "application/octet-stream", 10)

    def test_unauthorized(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise AuthenticationError carrying the challenge."""
        httpx_mock.add_response(
            method="POST",
            status_code=401,
            headers={"WWW-Authenticate": 'Bearer realm="drive", error="invalid_token"'},
            json={"error": {"code": 401, "message": "Invalid Credentials"}},
        )

        with pytest.raises(AuthenticationError) as exc_info:
            client.initiate("folder-1", "db.backup", "application/octet-stream", 10)

        assert exc_info.value.status_code == 401
        assert exc_info.value.challenge == 'Bearer realm="drive", error="invalid_token"'
        assert "Invalid Credentials" in str(exc_info.value)

    def test_server_error(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise APIError with the status and server message."""
        httpx_mock.add_response(
            method="POST",
            status_code=403,
            json={"error": {"code": 403, "message": "Rate Limit Exceeded"}},
        )

        with pytest.raises(APIError) as exc_info:
            client.initiate("folder-1", "db.backup", "application/octet-stream", 10)

        assert exc_info.value.status_code == 403
        assert str(exc_info.value) == "Rate Limit Exceeded"


class TestUploadChunk:
    """Tests for sending byte ranges."""

    def test_incomplete(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A 308 reports how many bytes the server holds."""
        httpx_mock.add_response(
            method="PUT", url=SESSION_URI, status_code=308, headers={"Range": "bytes=0-99"}
        )

        result = client.upload_chunk(SESSION_URI, b"x" * 100, 0, 1000)

        assert result == ChunkInProgress(confirmed_bytes=100)
        request = httpx_mock.get_request()
        assert request.headers["Content-Range"] == "bytes 0-99/1000"
        assert request.headers["Content-Type"] == "application/octet-stream"
        assert request.content == b"x" * 100

    def test_incomplete_partial_accept(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """The server may keep fewer bytes than were sent."""
        httpx_mock.add_response(
            method="PUT", url=SESSION_URI, status_code=308, headers={"Range": "bytes=0-149"}
        )

        result = client.upload_chunk(SESSION_URI, b"x" * 100, 100, 1000)

        assert result == ChunkInProgress(confirmed_bytes=150)
        assert httpx_mock.get_request().headers["Content-Range"] == "bytes 100-199/1000"

    def test_incomplete_without_range(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A 308 without Range means nothing was kept."""
        httpx_mock.add_response(method="PUT", url=SESSION_URI, status_code=308)

        assert client.upload_chunk(SESSION_URI, b"abc", 0, 10) == ChunkInProgress(0)

    def test_308_is_not_followed(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """308 is a protocol answer, even with a Location header."""
        httpx_mock.add_response(
            method="PUT",
            url=SESSION_URI,
            status_code=308,
            headers={"Range": "bytes=0-2", "Location": "https://elsewhere.test/"},
        )

        assert client.upload_chunk(SESSION_URI, b"abc", 0, 10) == ChunkInProgress(3)
        assert len(httpx_mock.get_requests()) == 1

    def test_malformed_range(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            method="PUT", url=SESSION_URI, status_code=308, headers={"Range": "garbage"}
        )

        with pytest.raises(ProtocolError):
            client.upload_chunk(SESSION_URI, b"abc", 0, 10)

    def test_complete(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A 200 carries the new file's id and checksum."""
        httpx_mock.add_response(
            method="PUT",
            url=SESSION_URI,
            status_code=200,
            json={"id": "file-1", "md5Checksum": "abc123"},
        )

        result = client.upload_chunk(SESSION_URI, b"x" * 10, 990, 1000)

        assert result == ChunkComplete(file_id="file-1", md5_checksum="abc123")
        assert httpx_mock.get_request().headers["Content-Range"] == "bytes 990-999/1000"

    def test_complete_201_without_checksum(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A missing checksum is not an error."""
        httpx_mock.add_response(method="PUT", url=SESSION_URI, status_code=201, json={"id": "file-1"})

        result = client.upload_chunk(SESSION_URI, b"abc", 0, 3)

        assert result == ChunkComplete(file_id="file-1", md5_checksum=None)

    def test_complete_without_id(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Completion without a file id is a protocol error."""
        httpx_mock.add_response(method="PUT", url=SESSION_URI, status_code=200, json={})

        with pytest.raises(ProtocolError):
            client.upload_chunk(SESSION_URI, b"abc", 0, 3)

    def test_complete_not_json(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(method="PUT", url=SESSION_URI, status_code=200, text="done")

        with pytest.raises(ProtocolError):
            client.upload_chunk(SESSION_URI, b"abc", 0, 3)

    def test_server_error(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Other statuses raise APIError without retrying."""
        httpx_mock.add_response(method="PUT", url=SESSION_URI, status_code=503)

        with pytest.raises(APIError) as exc_info:
            client.upload_chunk(SESSION_URI, b"abc", 0, 10)

        assert exc_info.value.status_code == 503
        assert str(exc_info.value) == "Unexpected HTTP 503"
        assert len(httpx_mock.get_requests()) == 1

    def test_unauthorized(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(method="PUT", url=SESSION_URI, status_code=401)

        with pytest.raises(AuthenticationError) as exc_info:
            client.upload_chunk(SESSION_URI, b"abc", 0, 10)

        assert exc_info.value.challenge is None

    def test_empty_file(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A zero-length file is uploaded as one empty chunk."""
        httpx_mock.add_response(method="PUT", url=SESSION_URI, status_code=200, json={"id": "file-0"})

        result = client.upload_chunk(SESSION_URI, b"", 0, 0)

        assert result == ChunkComplete(file_id="file-0")
        assert httpx_mock.get_request().headers["Content-Range"] == "bytes */0"

    def test_empty_chunk_of_non_empty_file(self, client: DriveClient) -> None:
        """Should refuse to send an empty chunk for a non-empty file."""
        with pytest.raises(ValueError):
            client.upload_chunk(SESSION_URI, b"", 0, 10)


class TestQueryProgress:
    """Tests for asking the server about a session."""

    def test_in_progress(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should send an empty body and report the confirmed bytes."""
        httpx_mock.add_response(
            method="PUT", url=SESSION_URI, status_code=308, headers={"Range": "bytes=0-5242879"}
        )

        result = client.query_progress(SESSION_URI, 12 * 1024 * 1024)

        assert result == SessionInProgress(confirmed_bytes=5 * 1024 * 1024)
        request = httpx_mock.get_request()
        assert request.headers["Content-Range"] == f"bytes */{12 * 1024 * 1024}"
        assert request.content == b""

    def test_nothing_received(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(method="PUT", url=SESSION_URI, status_code=308)

        assert client.query_progress(SESSION_URI, 100) == SessionInProgress(0)

    def test_complete(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            method="PUT", url=SESSION_URI, status_code=200, json={"id": "file-1", "md5Checksum": "x"}
        )

        assert client.query_progress(SESSION_URI, 100) == SessionComplete(
            file_id="file-1", md5_checksum="x"
        )

    def test_expired(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """404 means the server no longer knows the session."""
        httpx_mock.add_response(method="PUT", url=SESSION_URI, status_code=404)

        assert client.query_progress(SESSION_URI, 100) == SessionExpired()

    def test_server_error(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(method="PUT", url=SESSION_URI, status_code=500)

        with pytest.raises(APIError) as exc_info:
            client.query_progress(SESSION_URI, 100)

        assert exc_info.value.status_code == 500


class TestFindFileByName:
    """Tests for the deduplication lookup."""

    def test_found(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return the newest matching file."""
        httpx_mock.add_response(
            method="GET", json={"files": [{"id": "file-9", "size": "4096"}]}
        )

        result = client.find_file_by_name("folder-1", "db.backup")

        assert result == RemoteFile(id="file-9", size=4096)
        request = httpx_mock.get_request()
        assert request.url.path == "/drive/v3/files"
        assert request.url.params["q"] == (
            "name = 'db.backup' and 'folder-1' in parents and trashed = false"
        )
        assert request.url.params["spaces"] == "drive"
        assert request.url.params["fields"] == "files(id, size)"
        assert request.url.params["orderBy"] == "createdTime desc"
        assert request.url.params["pageSize"] == "1"

    def test_not_found(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(method="GET", json={"files": []})

        assert client.find_file_by_name("folder-1", "db.backup") is None

    def test_escapes_quotes(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Quotes in the name must not break the query."""
        httpx_mock.add_response(method="GET", json={"files": []})

        client.find_file_by_name("folder-1", "bob's.backup")

        assert "name = 'bob\\'s.backup'" in httpx_mock.get_request().url.params["q"]

    def test_error(self, client: DriveClient, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(method="GET", status_code=500, json={"detail": "boom"})

        with pytest.raises(APIError) as exc_info:
            client.find_file_by_name("folder-1", "db.backup")

        assert str(exc_info.value) == "boom"

"""HTTP client for the resumable upload protocol.

This module provides:
- DriveClient: HTTP client for the remote storage endpoint
- Session operations (initiate, upload chunk, query progress)
- File lookup used for deduplication before an upload starts

The client never retries. It reports every outcome faithfully and leaves
the decision to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, NoReturn, Union

import httpx

from backupagent.core.config import DriveConfig

logger = logging.getLogger(__name__)

RESUME_INCOMPLETE = 308


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """The endpoint requires (re)authorization before it can be used.

    Attributes:
        challenge: Value of the WWW-Authenticate header, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = 401,
        challenge: str | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.challenge = challenge


class ProtocolError(APIError):
    """The endpoint answered with something the protocol does not allow."""


@dataclass(frozen=True)
class ChunkInProgress:
    """Chunk accepted, upload not finished yet."""

    confirmed_bytes: int


@dataclass(frozen=True)
class ChunkComplete:
    """Final chunk accepted, remote object created."""

    file_id: str
    md5_checksum: str | None = None


ChunkResult = Union[ChunkInProgress, ChunkComplete]


@dataclass(frozen=True)
class SessionInProgress:
    """Session alive, the server holds `confirmed_bytes` bytes."""

    confirmed_bytes: int


@dataclass(frozen=True)
class SessionComplete:
    """Session already finished in an earlier run."""

    file_id: str
    md5_checksum: str | None = None


@dataclass(frozen=True)
class SessionExpired:
    """Session unknown to the server (expired or invalidated)."""


SessionProgress = Union[SessionInProgress, SessionComplete, SessionExpired]


@dataclass(frozen=True)
class RemoteFile:
    """File found in the destination folder."""

    id: str
    size: int | None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteFile:
        """Create from API response dictionary."""
        size = data.get("size")
        return cls(id=data["id"], size=int(size) if size is not None else None)


def parse_confirmed_bytes(range_header: str | None) -> int:
    """Convert a 308 `Range: bytes=0-N` header to a byte count.

    A missing header means the server holds no bytes yet.

    Raises:
        ProtocolError: If the header is present but malformed.
    """
    if range_header is None:
        return 0
    value = range_header.strip()
    if not value.startswith("bytes="):
        raise ProtocolError(f"Malformed Range header: {range_header!r}")
    first, sep, last = value[len("bytes="):].partition("-")
    if not sep or not first.isdigit() or not last.isdigit() or int(first) != 0:
        raise ProtocolError(f"Malformed Range header: {range_header!r}")
    return int(last) + 1


def content_range(offset: int, length: int, total_bytes: int) -> str:
    """Build the Content-Range header value for a chunk."""
    if length == 0:
        return f"bytes */{total_bytes}"
    return f"bytes {offset}-{offset + length - 1}/{total_bytes}"


def escape_query_value(value: str) -> str:
    """Escape a string literal for use inside a files.list query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveClient:
    """HTTP client for the remote storage endpoint."""

    def __init__(self, config: DriveConfig) -> None:
        """Initialize the client.

        Args:
            config: Endpoint URLs, token, timeout and TLS settings.
        """
        self._config = config
        # 308 is a protocol answer here, never a redirect to follow
        self._client = httpx.Client(
            timeout=config.timeout,
            verify=config.verify_ssl,
            follow_redirects=False,
            headers={"Authorization": f"Bearer {config.token}"},
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> DriveClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _raise_for_status(self, response: httpx.Response) -> NoReturn:
        """Raise the exception matching an unexpected response."""
        message = _error_message(response)
        if response.status_code == 401:
            raise AuthenticationError(
                message or "Authorization required",
                401,
                challenge=response.headers.get("WWW-Authenticate"),
            )
        raise APIError(
            message or f"Unexpected HTTP {response.status_code}",
            response.status_code,
        )

    def _parse_completion(self, response: httpx.Response) -> tuple[str, str | None]:
        """Extract (file_id, md5Checksum) from a completion response body."""
        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(
                "Upload completion response is not JSON", response.status_code
            ) from e
        file_id = data.get("id") if isinstance(data, dict) else None
        if not file_id:
            raise ProtocolError(
                "No file ID in upload completion response", response.status_code
            )
        return file_id, data.get("md5Checksum")

    # === Health check ===

    def health_check(self) -> bool:
        """Check that the endpoint is reachable and the token is accepted.

        Returns:
            True if the metadata API answers successfully.
        """
        try:
            response = self._client.get(
                f"{self._config.api_url}/about", params={"fields": "user"}
            )
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Resumable session operations ===

    def initiate(
        self,
        folder_id: str,
        file_name: str,
        mime_type: str,
        total_bytes: int,
    ) -> str:
        """Start a resumable upload session.

        Args:
            folder_id: Destination folder.
            file_name: Name of the remote object.
            mime_type: Content type of the file.
            total_bytes: Exact size of the file.

        Returns:
            Session URI to send chunks to.

        Raises:
            ProtocolError: If the response carries no Location header.
            AuthenticationError: If authorization is required.
            APIError: For any other unexpected status.
        """
        response = self._client.post(
            self._config.upload_url,
            params={"uploadType": "resumable", "fields": "id,md5Checksum"},
            json={"name": file_name, "parents": [folder_id]},
            headers={
                "X-Upload-Content-Type": mime_type,
                "X-Upload-Content-Length": str(total_bytes),
            },
        )
        if response.status_code != 200:
            self._raise_for_status(response)

        session_uri = response.headers.get("Location")
        if not session_uri:
            raise ProtocolError(
                "No Location header in resumable upload initiation response",
                response.status_code,
            )
        logger.debug(f"Resumable upload session initiated for {file_name}")
        return session_uri

    def upload_chunk(
        self,
        session_uri: str,
        data: bytes,
        offset: int,
        total_bytes: int,
    ) -> ChunkResult:
        """Send one byte range of the file.

        Args:
            session_uri: URI returned by initiate().
            data: Bytes to send, starting at `offset`.
            offset: Position of the first byte in the file.
            total_bytes: Size of the whole file.

        Returns:
            ChunkInProgress with the server's confirmed byte count, or
            ChunkComplete once the server has created the file.
        """
        if not data and total_bytes != 0:
            raise ValueError("Empty chunks are only valid for zero-length files")

        header = content_range(offset, len(data), total_bytes)
        logger.debug(f"Uploading chunk: {header}")
        response = self._client.put(
            session_uri,
            content=data,
            headers={
                "Content-Range": header,
                "Content-Type": "application/octet-stream",
            },
        )

        if response.status_code in (200, 201):
            file_id, md5 = self._parse_completion(response)
            logger.debug(f"Upload complete, file ID: {file_id}, md5: {md5}")
            return ChunkComplete(file_id=file_id, md5_checksum=md5)
        if response.status_code == RESUME_INCOMPLETE:
            confirmed = parse_confirmed_bytes(response.headers.get("Range"))
            logger.debug(f"Chunk accepted, confirmed bytes: {confirmed}")
            return ChunkInProgress(confirmed_bytes=confirmed)
        self._raise_for_status(response)

    def query_progress(self, session_uri: str, total_bytes: int) -> SessionProgress:
        """Ask the server how much of a session it has received.

        Args:
            session_uri: URI returned by initiate().
            total_bytes: Size of the whole file.

        Returns:
            SessionInProgress, SessionComplete or SessionExpired.
        """
        response = self._client.put(
            session_uri,
            content=b"",
            headers={"Content-Range": f"bytes */{total_bytes}"},
        )

        if response.status_code in (200, 201):
            file_id, md5 = self._parse_completion(response)
            logger.debug(f"Session already complete, file ID: {file_id}, md5: {md5}")
            return SessionComplete(file_id=file_id, md5_checksum=md5)
        if response.status_code == RESUME_INCOMPLETE:
            confirmed = parse_confirmed_bytes(response.headers.get("Range"))
            logger.debug(f"Session query: {confirmed} bytes confirmed")
            return SessionInProgress(confirmed_bytes=confirmed)
        if response.status_code == 404:
            logger.warning("Upload session expired or not found")
            return SessionExpired()
        self._raise_for_status(response)

    # === File lookup ===

    def find_file_by_name(self, folder_id: str, file_name: str) -> RemoteFile | None:
        """Find the newest non-trashed file with this exact name in a folder.

        Args:
            folder_id: Folder to search.
            file_name: Exact file name.

        Returns:
            The matching file, or None.
        """
        query = (
            f"name = '{escape_query_value(file_name)}' "
            f"and '{escape_query_value(folder_id)}' in parents and trashed = false"
        )
        response = self._client.get(
            f"{self._config.api_url}/files",
            params={
                "q": query,
                "spaces": "drive",
                "fields": "files(id, size)",
                "orderBy": "createdTime desc",
                "pageSize": "1",
            },
        )
        if response.status_code != 200:
            self._raise_for_status(response)

        files = response.json().get("files") or []
        if not files:
            return None
        return RemoteFile.from_dict(files[0])


def _error_message(response: httpx.Response) -> str | None:
    """Extract the server's error message from a JSON error body."""
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return data.get("detail")

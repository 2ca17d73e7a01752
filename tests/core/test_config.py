"""Tests for core configuration classes."""

from __future__ import annotations

from pathlib import Path

from backupagent.core.config import (
    DEFAULT_API_URL,
    DEFAULT_FILE_PATTERN,
    DEFAULT_UPLOAD_URL,
    BackupConfig,
    DriveConfig,
)


class TestDriveConfig:
    """Tests for DriveConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with defaults for everything but the token."""
        config = DriveConfig(token="test-token")
        assert config.token == "test-token"
        assert config.api_url == DEFAULT_API_URL
        assert config.upload_url == DEFAULT_UPLOAD_URL
        assert config.timeout == 120.0
        assert config.verify_ssl is True

    def test_init_verify_ssl_false(self) -> None:
        """Should accept verify_ssl=False."""
        config = DriveConfig(token="test-token", verify_ssl=False)
        assert config.verify_ssl is False

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slashes from both URLs."""
        config = DriveConfig(
            token="test-token",
            api_url="https://api.test/drive/v3/",
            upload_url="https://upload.test/files/",
        )
        assert config.api_url == "https://api.test/drive/v3"
        assert config.upload_url == "https://upload.test/files"


class TestBackupConfig:
    """Tests for BackupConfig class."""

    def test_defaults_are_incomplete(self) -> None:
        """An empty config should report both required fields as missing."""
        config = BackupConfig()
        assert config.file_pattern == DEFAULT_FILE_PATTERN
        assert config.wifi_only is False
        assert config.missing_fields() == ["source_folder", "destination_folder_id"]
        assert config.is_complete is False

    def test_missing_destination(self, tmp_path: Path) -> None:
        """Should report only the destination when the source is set."""
        config = BackupConfig(source_folder=tmp_path)
        assert config.missing_fields() == ["destination_folder_id"]

    def test_empty_destination_counts_as_missing(self, tmp_path: Path) -> None:
        """An empty folder id is not a destination."""
        config = BackupConfig(source_folder=tmp_path, destination_folder_id="")
        assert config.is_complete is False

    def test_complete(self, tmp_path: Path) -> None:
        """Should be complete with both folders set."""
        config = BackupConfig(source_folder=tmp_path, destination_folder_id="folder-1")
        assert config.missing_fields() == []
        assert config.is_complete is True

    def test_source_folder_expands_user(self) -> None:
        """Should expand ~ in the source folder."""
        config = BackupConfig(source_folder=Path("~/backups"))
        assert config.source_folder == Path.home() / "backups"

    def test_source_folder_accepts_string(self) -> None:
        """Should convert a string source folder to a Path."""
        config = BackupConfig(source_folder="/data/backups")  # type: ignore[arg-type]
        assert config.source_folder == Path("/data/backups")

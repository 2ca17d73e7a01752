"""Tests for file digests."""

from __future__ import annotations

import hashlib
from pathlib import Path

from backupagent.core.hashing import (
    HASH_BLOCK_SIZE,
    checksums_match,
    compute_file_digest,
    compute_file_md5,
)


class TestComputeFileDigest:
    """Tests for compute_file_digest and compute_file_md5."""

    def test_md5_of_small_file(self, tmp_path: Path) -> None:
        """Should match hashlib's digest of the same bytes."""
        path = tmp_path / "a.backup"
        path.write_bytes(b"hello world")
        assert compute_file_md5(path) == hashlib.md5(b"hello world").hexdigest()

    def test_md5_of_empty_file(self, tmp_path: Path) -> None:
        """Should hash an empty file."""
        path = tmp_path / "empty.backup"
        path.write_bytes(b"")
        assert compute_file_md5(path) == "d41d8cd98f00b204e9800998ecf8427e"

    def test_file_larger_than_block(self, tmp_path: Path) -> None:
        """Should hash files spanning several read blocks."""
        data = bytes(range(256)) * (HASH_BLOCK_SIZE // 256 * 2 + 3)
        path = tmp_path / "big.backup"
        path.write_bytes(data)
        assert compute_file_md5(path) == hashlib.md5(data).hexdigest()

    def test_other_algorithm(self, tmp_path: Path) -> None:
        """Should accept any hashlib algorithm."""
        path = tmp_path / "a.backup"
        path.write_bytes(b"data")
        assert compute_file_digest(path, "sha256") == hashlib.sha256(b"data").hexdigest()


class TestChecksumsMatch:
    """Tests for checksums_match."""

    def test_equal(self) -> None:
        assert checksums_match("abc123", "abc123")

    def test_ignores_case_and_whitespace(self) -> None:
        """Should compare hex digests case-insensitively."""
        assert checksums_match("ABC123", " abc123\n")

    def test_different(self) -> None:
        assert not checksums_match("abc123", "abc124")

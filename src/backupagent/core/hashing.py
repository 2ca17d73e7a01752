"""File digests used for upload integrity checks.

The remote side reports an MD5 checksum once an upload completes, so the
local file is hashed the same way before the result is trusted.
"""

import hashlib
from pathlib import Path

HASH_BLOCK_SIZE = 1024 * 1024


def compute_file_digest(path: Path, algorithm: str = "md5") -> str:
    """Compute the hex digest of a file.

    Reads the file in blocks to handle large files efficiently.

    Args:
        path: Path to the file to hash.
        algorithm: Any algorithm name accepted by hashlib.new().

    Returns:
        Hexadecimal digest string.
    """
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(HASH_BLOCK_SIZE), b""):
            hasher.update(block)
    return hasher.hexdigest()


def compute_file_md5(path: Path) -> str:
    """Compute the MD5 hex digest of a file."""
    return compute_file_digest(path, "md5")


def checksums_match(local: str, remote: str) -> bool:
    """Compare two hex digests, ignoring case and surrounding whitespace."""
    return local.strip().lower() == remote.strip().lower()

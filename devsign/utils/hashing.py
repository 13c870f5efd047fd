"""SHA-256 helpers for ledger entries and signed artifacts."""

import hashlib
from pathlib import Path

_CHUNK_SIZE = 64 * 1024


def compute_sha256(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def compute_sha256_file(file_path: Path) -> str:
    """Return the hex SHA-256 of ``file_path``, read in 64 KiB chunks."""
    digest = hashlib.sha256()
    with open(file_path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()

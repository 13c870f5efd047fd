"""Owner-only secret files: generated passphrases and the ledger sealing key."""

from __future__ import annotations

import base64
import os
import secrets
from pathlib import Path


def write_secure_file(path: Path, data: bytes, *, mode: int = 0o600) -> None:
    """Create or replace ``path`` with ``data``, restricted to ``mode``."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)

    # os.open only applies ``mode`` (minus the umask) to new files.
    os.chmod(path, mode)


def load_or_create_hmac_key(path: Path, *, length: int = 32) -> bytes:
    """Return the key stored at ``path``, creating ``length`` random bytes on first use."""
    if path.exists():
        return path.read_bytes()

    key = secrets.token_bytes(length)
    write_secure_file(path, key)
    return key


def generate_passphrase(entropy_bytes: int = 100) -> str:
    """Return a base64-encoded passphrase drawn from ``entropy_bytes`` random bytes."""
    return base64.b64encode(secrets.token_bytes(entropy_bytes)).decode("ascii")

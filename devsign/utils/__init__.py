"""Utility modules for common operations."""

from devsign.utils.commands import (
    CommandError,
    CommandNotFoundError,
    CommandRunner,
    get_command_runner,
)
from devsign.utils.hashing import compute_sha256, compute_sha256_file
from devsign.utils.paths import ensure_private_dir, find_artifacts

__all__ = [
    "CommandError",
    "CommandNotFoundError",
    "CommandRunner",
    "compute_sha256",
    "compute_sha256_file",
    "ensure_private_dir",
    "find_artifacts",
    "get_command_runner",
]

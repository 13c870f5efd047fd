"""Path utilities for key directories and artifact discovery."""

from __future__ import annotations

import glob
import os
from pathlib import Path


def ensure_private_dir(path: Path, *, mode: int = 0o700) -> Path:
    """Create ``path`` if needed and restrict it to its owner.

    Permission failures propagate: a key directory other users can read is
    not usable.
    """
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, mode)
    return path


def find_artifacts(pattern: str | Path, extension: str) -> list[Path]:
    """Expand ``pattern`` and collect readable files ending with ``extension``.

    ``pattern`` may name a directory, a single file or a glob matching several
    directories; directories are walked recursively.
    """
    found: set[Path] = set()

    for match in glob.glob(str(pattern)):
        root = Path(match)
        if root.is_file():
            candidates = [root]
        else:
            candidates = [
                Path(dirpath) / name
                for dirpath, _dirnames, filenames in os.walk(root)
                for name in filenames
            ]

        for candidate in candidates:
            if not candidate.name.endswith(extension):
                continue
            if candidate.is_file() and os.access(candidate, os.R_OK):
                found.add(candidate)

    return sorted(found)

"""Thin wrapper around the external binaries devsign drives (gpg, gpg-agent, rpm)."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

logger = logging.getLogger(__name__)


class CommandNotFoundError(RuntimeError):
    """Raised when a required executable is not resolvable on ``PATH``."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Required command '{name}' not found on PATH")
        self.name = name


class CommandError(RuntimeError):
    """Raised when a required external command exits non-zero."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        message = f"Command failed with exit status {returncode}: {' '.join(argv)}"
        if stderr.strip():
            message = f"{message}\n{stderr.strip()}"
        super().__init__(message)
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr


class CommandRunner:
    """Resolve and execute external commands.

    Every component that shells out receives one of these, so tests can swap
    in a scripted runner instead of a real gpg installation.
    """

    def which(self, name: str, required: bool = False) -> str | None:
        """Return the absolute path of ``name`` or ``None``.

        Raises:
            CommandNotFoundError: If ``required`` and the command is missing
        """
        path = shutil.which(name)
        if path is None and required:
            raise CommandNotFoundError(name)
        return path

    def run(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        check: bool = True,
        input_text: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run ``argv`` to completion and capture its text output.

        Args:
            argv: Command and arguments (no shell interpretation)
            env: Extra environment variables layered over ``os.environ``
            cwd: Working directory for the command
            check: Raise :class:`CommandError` on non-zero exit
            input_text: Text written to the command's stdin

        Returns:
            Completed process with ``stdout``/``stderr`` as text
        """
        merged_env = dict(os.environ)
        if env:
            merged_env.update(env)

        logger.debug("Executing: %s", " ".join(argv))
        result = subprocess.run(
            list(argv),
            env=merged_env,
            cwd=cwd,
            input=input_text,
            stdin=None if input_text is not None else subprocess.DEVNULL,
            capture_output=True,
            text=True,
            check=False,
        )

        if check and result.returncode != 0:
            raise CommandError(argv, result.returncode, result.stderr)
        return result


_runner: CommandRunner | None = None


def get_command_runner() -> CommandRunner:
    """Get or create the process-wide command runner."""
    global _runner
    if _runner is None:
        _runner = CommandRunner()
    return _runner

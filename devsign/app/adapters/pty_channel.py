"""Pseudo-terminal channel used to answer passphrase prompts.

rpm reads the signing passphrase from the controlling terminal, so the
resign process is spawned on a pty and the prompt is answered from the
master side.
"""

from __future__ import annotations

import errno
import logging
import os
import pty
import re
from collections.abc import Mapping, Sequence
from pathlib import Path

from devsign.app.ports.channel import ChannelPort

logger = logging.getLogger(__name__)

PASSPHRASE_PROMPT = re.compile(rb"pass\s?phrase:", re.IGNORECASE)

# Bytes of unmatched output kept so a prompt split across reads still matches.
_SCAN_WINDOW = 4096


class PtyChannel(ChannelPort):
    """Run ``argv`` attached to a new pseudo-terminal."""

    def __init__(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> None:
        if not argv:
            raise ValueError("PtyChannel requires a command to run")

        merged_env = dict(os.environ)
        if env:
            merged_env.update(env)

        self.argv = list(argv)
        pid, fd = pty.fork()
        if pid == 0:  # pragma: no cover - child process
            try:
                if cwd is not None:
                    os.chdir(cwd)
                os.execvpe(self.argv[0], self.argv, merged_env)
            finally:
                os._exit(127)

        self.pid = pid
        self._fd: int | None = fd
        self._status: int | None = None

    def read(self, size: int = 1024) -> bytes:
        if self._fd is None:
            return b""
        try:
            return os.read(self._fd, size)
        except OSError as exc:
            # Linux reports a closed slave side as EIO rather than EOF.
            if exc.errno == errno.EIO:
                return b""
            raise

    def write(self, data: bytes) -> None:
        if self._fd is None:
            raise ValueError("write to closed channel")
        os.write(self._fd, data)

    def wait(self) -> int:
        if self._status is None:
            _, status = os.waitpid(self.pid, 0)
            self._status = os.waitstatus_to_exitcode(status)
        return self._status

    def close(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None

    def __enter__(self) -> PtyChannel:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
        self.wait()


def answer_prompts(
    channel: ChannelPort,
    secret: bytes,
    *,
    prompt: re.Pattern[bytes] = PASSPHRASE_PROMPT,
) -> int:
    """Answer every ``prompt`` seen on ``channel`` with ``secret`` until end-of-input.

    The prompt may never appear (an agent already caches the passphrase) or
    appear once; end-of-input is the normal way out of the loop.

    Returns:
        Number of prompts answered
    """
    answered = 0
    buffer = b""

    while True:
        chunk = channel.read()
        if not chunk:
            return answered

        buffer += chunk
        match = prompt.search(buffer)
        while match is not None:
            channel.write(secret + b"\n")
            answered += 1
            buffer = buffer[match.end() :]
            match = prompt.search(buffer)

        buffer = buffer[-_SCAN_WINDOW:]

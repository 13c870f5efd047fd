"""Private directory holding one signing key and its gpg state."""

from __future__ import annotations

import logging
import shutil
from datetime import UTC, date, datetime
from pathlib import Path

from devsign.gpg.parsing import days_until, parse_key_expiry
from devsign.utils.commands import CommandRunner, get_command_runner
from devsign.utils.paths import ensure_private_dir

logger = logging.getLogger(__name__)


class IsolatedKeyStore:
    """Key directory disjoint from the user's own keyrings and agent.

    gpg < 2.1 layout::

        <dir>/
          +-- RPM-GPG-KEY-DEVSIGN-<Label>   # exported public key
          +-- gengpgkey                     # --gen-key parameters
          +-- gpg-agent-info.env            # agent socket + pid
          +-- run_gpg_agent                 # agent startup script
          +-- pubring.gpg / secring.gpg / trustdb.gpg

    gpg >= 2.1 layout::

        <dir>/
          +-- RPM-GPG-KEY-DEVSIGN-<Label>
          +-- gengpgkey
          +-- openpgp-revocs.d/<fingerprint>.rev
          +-- private-keys-v1.d/<keygrip>.key
          +-- pubring.kbx / trustdb.gpg
    """

    def __init__(self, directory: Path, *, runner: CommandRunner | None = None) -> None:
        self.directory = Path(directory).expanduser().resolve()
        self._runner = runner or get_command_runner()

    def path(self, name: str) -> Path:
        return self.directory / name

    def ensure_directory(self) -> Path:
        """Create the key directory if needed and restrict it to mode 0700."""
        return ensure_private_dir(self.directory)

    def purge(self) -> None:
        """Remove everything under the key directory, keeping the directory itself."""
        if not self.directory.exists():
            return

        logger.debug("Removing all files under '%s'", self.directory)
        for child in self.directory.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()

    def list_keys(self, identity: str) -> str:
        """Return the colon listing for ``identity`` without consulting any agent."""
        self._runner.which("gpg", required=True)
        result = self._runner.run(
            [
                "gpg",
                f"--homedir={self.directory}",
                "--with-colons",
                "--list-keys",
                identity,
            ],
            env={"GPG_AGENT_INFO": ""},
            check=False,
        )
        return result.stdout

    def days_until_expiry(self, identity: str, *, today: date | None = None) -> int:
        """Return days left before the key for ``identity`` expires.

        Returns 0 when no key is found or the listing cannot be parsed, which
        callers treat the same as an expired key.
        """
        self.ensure_directory()

        expiry = parse_key_expiry(self.list_keys(identity))
        if expiry is None:
            return 0
        return days_until(expiry, today or datetime.now(UTC).date())

"""Per-directory cache of signing key metadata."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

import typer
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from devsign.gpg.genkey import GENKEY_PARAMS_FILENAME, PASSWORD_FILENAME
from devsign.gpg.parsing import parse_genkey_parameters, parse_public_key_record
from devsign.utils.commands import CommandRunner, get_command_runner

logger = logging.getLogger(__name__)

# (message, hide_input) -> answer
PromptFn = Callable[[str, bool], str]


class KeyMetadataError(RuntimeError):
    """Raised when signing key metadata cannot be determined."""


class GpgKeyMetadata(BaseModel):
    """Everything a signing job needs to know about the key in a directory."""

    model_config = ConfigDict(frozen=True)

    directory: Path = Field(..., description="Key directory (gpg homedir)")
    name: str = Field(..., description="Signing identity (email)")
    key_id: str = Field(..., description="Key id from the public key record")
    key_size: int = Field(..., description="Key length in bits")
    passphrase: SecretStr = Field(..., description="Passphrase protecting the secret key")


def prompt_user(message: str, hide_input: bool) -> str:
    return typer.prompt(message, hide_input=hide_input).strip()


class KeyMetadataCache:
    """Lazily load :class:`GpgKeyMetadata` once per key directory.

    Concurrent callers for the same directory wait for the first load and
    reuse its result; entries are never replaced once populated.
    """

    def __init__(
        self,
        *,
        runner: CommandRunner | None = None,
        prompt: PromptFn | None = None,
    ) -> None:
        self._runner = runner or get_command_runner()
        self._prompt = prompt or prompt_user
        self._entries: dict[Path, GpgKeyMetadata] = {}
        self._locks: dict[Path, threading.Lock] = {}
        self._guard = threading.Lock()

    def __contains__(self, key_dir: object) -> bool:
        return isinstance(key_dir, Path) and key_dir.resolve() in self._entries

    def load(self, key_dir: Path) -> GpgKeyMetadata:
        """Return metadata for the key in ``key_dir``, loading it on first use.

        Raises:
            CommandNotFoundError: If gpg is not installed
            KeyMetadataError: If the directory is missing or has no matching public key
        """
        directory = Path(key_dir).resolve()

        cached = self._entries.get(directory)
        if cached is not None:
            return cached

        with self._guard:
            lock = self._locks.setdefault(directory, threading.Lock())

        with lock:
            cached = self._entries.get(directory)
            if cached is not None:
                return cached

            metadata = self._load(directory)
            self._entries[directory] = metadata
            return metadata

    def _load(self, directory: Path) -> GpgKeyMetadata:
        self._runner.which("gpg", required=True)
        if not directory.is_dir():
            raise KeyMetadataError(f"Could not find GPG key directory '{directory}'")

        name, passphrase = self._read_parameters(directory)

        if name is None:
            logger.warning("Could not find a valid e-mail address for use with GPG in %s", directory)
            name = self._prompt("Please enter e-mail address to use", False)

        if passphrase is None:
            password_file = directory / PASSWORD_FILENAME
            if password_file.exists():
                passphrase = password_file.read_text(encoding="utf-8").rstrip("\r\n")
            else:
                logger.warning("Could not find a password in '%s'", password_file)
                passphrase = self._prompt("Please enter your GPG key password", True)

        # Angle brackets restrict the search to keys bound to exactly this email.
        result = self._runner.run(
            ["gpg", "--with-colons", f"--homedir={directory}", "--list-keys", f"<{name}>"],
            check=False,
        )
        record = parse_public_key_record(result.stdout)
        if record is None:
            raise KeyMetadataError(
                f"Cannot determine signing key metadata for '{name}' in {directory}"
            )

        key_size, key_id = record
        logger.debug("Loaded key %s (%d bits) for %s from %s", key_id, key_size, name, directory)
        return GpgKeyMetadata(
            directory=directory,
            name=name,
            key_id=key_id,
            key_size=key_size,
            passphrase=SecretStr(passphrase),
        )

    @staticmethod
    def _read_parameters(directory: Path) -> tuple[str | None, str | None]:
        try:
            text = (directory / GENKEY_PARAMS_FILENAME).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None, None
        return parse_genkey_parameters(text)

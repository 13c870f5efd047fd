"""Ensure a valid, short-lived development signing key exists in a local directory.

* The key is generated when missing or expired and lives for 14 days.
* The key and everything related to it stay under one private directory,
  isolated from the user's own keys, keyrings and agent.
* Generation uses a temporary gpg-agent that is always torn down afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from devsign.app.adapters.gpg_agent import select_agent
from devsign.app.ports import AgentInfo, AgentPort, LedgerPort
from devsign.gpg.genkey import GENKEY_PARAMS_FILENAME, write_genkey_parameter_file
from devsign.gpg.keystore import IsolatedKeyStore
from devsign.gpg.toolchain import ToolchainProbe
from devsign.utils.commands import CommandRunner, get_command_runner

logger = logging.getLogger(__name__)

DEFAULT_KEY_EMAIL = "gatekeeper@devsign.development.key"

AgentFactory = Callable[[Path], AgentPort]


class KeyGenerationError(RuntimeError):
    """Raised when a new key could not be generated and exported."""


class KeyState(str, Enum):
    NO_VALID_KEY = "no_valid_key"
    GENERATING = "generating"
    VALID = "valid"


@dataclass(frozen=True, slots=True)
class KeyConfig:
    """Settings for one local signing key."""

    directory: Path
    label: str
    email: str = DEFAULT_KEY_EMAIL
    key_file: str | None = None
    verbose: bool = False

    @classmethod
    def for_directory(
        cls,
        directory: Path | str = "dev",
        *,
        label: str | None = None,
        email: str | None = None,
        key_file: str | None = None,
        verbose: bool = False,
    ) -> KeyConfig:
        """Build a config whose label defaults to the directory's basename."""
        path = Path(directory).expanduser().resolve()
        return cls(
            directory=path,
            label=label or path.name.lower(),
            email=email or DEFAULT_KEY_EMAIL,
            key_file=key_file,
            verbose=verbose,
        )

    @property
    def key_filename(self) -> str:
        return self.key_file or f"RPM-GPG-KEY-DEVSIGN-{self.label.capitalize()}"

    @property
    def key_path(self) -> Path:
        return self.directory / self.key_filename


@dataclass(slots=True)
class KeyStatus:
    """Outcome of :meth:`KeyLifecycleService.ensure_key`."""

    state: KeyState
    days_left: int
    generated: bool
    key_path: Path


class KeyLifecycleService:
    """Drive a key directory from ``NO_VALID_KEY`` through ``GENERATING`` to ``VALID``."""

    def __init__(
        self,
        config: KeyConfig,
        *,
        probe: ToolchainProbe,
        runner: CommandRunner | None = None,
        agent_factory: AgentFactory | None = None,
        ledger_port: LedgerPort | None = None,
    ) -> None:
        self.config = config
        self._probe = probe
        self._runner = runner or get_command_runner()
        self._agent_factory = agent_factory or self._default_agent
        self._ledger = ledger_port
        self.store = IsolatedKeyStore(config.directory, runner=self._runner)
        self.state = KeyState.NO_VALID_KEY

    def ensure_key(self) -> KeyStatus:
        """Make sure the directory holds an unexpired key, generating one if needed.

        Raises:
            CommandNotFoundError: If gpg (or its agent tools) are missing
            CommandError: If key generation or export fails
            KeyGenerationError: If the exported key file is empty
        """
        self.store.ensure_directory()

        days_left = self.store.days_until_expiry(self.config.email)
        if days_left > 0:
            self.state = KeyState.VALID
            logger.info("GPG key (%s) will expire in %d days.", self.config.email, days_left)
            self._log("key_valid", days_left=days_left)
            return KeyStatus(
                state=self.state,
                days_left=days_left,
                generated=False,
                key_path=self.config.key_path,
            )

        self.state = KeyState.GENERATING
        logger.info("Creating a new dev GPG agent and key under '%s'...", self.config.directory)

        self.store.purge()
        write_genkey_parameter_file(
            self.config.directory,
            self.config.email,
            legacy=self._probe.uses_legacy_gpg(),
        )

        with self.running_agent() as agent:
            self.generate_key(agent)

        self.state = KeyState.VALID
        days_left = self.store.days_until_expiry(self.config.email)
        self._log("key_generated", days_left=days_left)
        return KeyStatus(
            state=self.state,
            days_left=days_left,
            generated=True,
            key_path=self.config.key_path,
        )

    @contextmanager
    def running_agent(self) -> Iterator[AgentInfo | None]:
        """Start a scoped agent for the key directory and always stop it."""
        port = self._agent_factory(self.config.directory)
        agent: AgentInfo | None = None
        try:
            agent = port.start()
            yield agent
        finally:
            port.stop(agent)

    def agent_info(self) -> AgentInfo | None:
        """Return the agent currently serving the key directory, if detectable."""
        return self._agent_factory(self.config.directory).info()

    def generate_key(self, agent: AgentInfo | None) -> Path:
        """Generate the keypair in batch mode and export the armored public key.

        Args:
            agent: Agent the gpg invocations talk to (GPG_AGENT_INFO)

        Returns:
            Path of the exported public key
        """
        self._runner.which("gpg", required=True)

        directory = self.config.directory
        if self.config.verbose:
            logger.info("Generating new GPG key under '%s'...", directory)
        else:
            logger.info("Generating new GPG key...")

        env = {"GPG_AGENT_INFO": agent.info if agent else ""}
        self._runner.run(
            ["gpg", f"--homedir={directory}", "--batch", "--gen-key", GENKEY_PARAMS_FILENAME],
            env=env,
            cwd=directory,
        )
        exported = self._runner.run(
            ["gpg", f"--homedir={directory}", "--armor", "--export", self.config.email],
            env=env,
            cwd=directory,
        )

        key_path = self.config.key_path
        key_path.write_text(exported.stdout, encoding="utf-8")
        if self.config.verbose:
            logger.info("Exported public key:\n%s", exported.stdout)

        if key_path.stat().st_size == 0:
            raise KeyGenerationError(f"Error: Something went wrong generating {key_path}")
        return key_path

    def _default_agent(self, directory: Path) -> AgentPort:
        return select_agent(
            directory,
            probe=self._probe,
            label=self.config.label,
            runner=self._runner,
        )

    def _log(self, operation: str, **args: object) -> None:
        if self._ledger is None:
            return
        try:
            self._ledger.log(
                operation=operation,
                inputs=[str(self.config.directory)],
                outputs=[str(self.config.key_path)],
                args={"email": self.config.email, "label": self.config.label, **args},
            )
        except Exception as exc:  # noqa: BLE001 - audit failures must not block signing
            logger.warning("Failed to record %s in audit ledger: %s", operation, exc)

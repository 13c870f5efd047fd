"""Detect installed gpg and rpm versions, which select protocol behaviour."""

from __future__ import annotations

import logging
import threading

from devsign.gpg.parsing import Version, format_version, parse_tool_version
from devsign.utils.commands import CommandRunner, get_command_runner

logger = logging.getLogger(__name__)

# gpg older than 2.1 needs an explicitly launched agent and explicit keyrings.
GPG_MODERN_THRESHOLD: Version = (2, 1)

# rpm 4.13.0+ stands up its own gpg-agent when signing and accepts the
# digest/pinentry overrides.
RPM_AGENT_THRESHOLD: Version = (4, 13, 0)


class ToolchainProbe:
    """Probe tool versions once and cache them for the life of the probe.

    The application bootstrap keeps a single probe per process.
    """

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or get_command_runner()
        self._versions: dict[str, Version] = {}
        self._lock = threading.Lock()

    def gpg_version(self) -> Version:
        """Return the installed gpg version.

        Raises:
            CommandNotFoundError: If ``gpg`` is not on PATH
            RuntimeError: If the version output cannot be parsed
        """
        return self._probe("gpg")

    def rpm_version(self) -> Version:
        """Return the installed rpm version."""
        return self._probe("rpm")

    def uses_legacy_gpg(self) -> bool:
        return self.gpg_version() < GPG_MODERN_THRESHOLD

    def rpm_starts_agent(self) -> bool:
        return self.rpm_version() >= RPM_AGENT_THRESHOLD

    def _probe(self, tool: str) -> Version:
        with self._lock:
            cached = self._versions.get(tool)
            if cached is not None:
                return cached

            self._runner.which(tool, required=True)
            output = self._runner.run([tool, "--version"]).stdout
            version = parse_tool_version(output)
            if version is None:
                raise RuntimeError(f"Unable to determine {tool} version from: {output.strip()!r}")

            logger.debug("Detected %s %s", tool, format_version(version))
            self._versions[tool] = version
            return version

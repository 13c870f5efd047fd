"""gpg-agent adapters for the two gpg protocol generations.

A project-only agent is started to generate a key and destroyed afterwards.
It never talks to any other agent on the system:

* gpg < 2.1: launched by a generated script on a random socket under /tmp;
  the socket and pid are recovered from the env-file the agent writes.
* gpg >= 2.1: launched with ``--daemon`` against the key directory and
  queried over ``gpg-connect-agent`` for its socket and pid.
"""

from __future__ import annotations

import logging
import os
import signal
import time
from pathlib import Path

from devsign.app.ports.agent import AgentInfo, AgentPort
from devsign.gpg.parsing import parse_agent_info_env, parse_agent_response
from devsign.gpg.toolchain import ToolchainProbe
from devsign.utils.commands import CommandRunner, get_command_runner

logger = logging.getLogger(__name__)

LOCAL_SOCKET_NAME = "S.gpg-agent"
AGENT_ENV_FILENAME = "gpg-agent-info.env"
AGENT_SCRIPT_FILENAME = "run_gpg_agent"

EMPTY_AGENT_OUTPUT_MESSAGE = """\
WARNING: Tried to start a project-only gpg-agent daemon on a random socket by
         running the script:

           {script}

         However, the script returned no output, which usually means that a GPG
         Agent was already running on that socket.  This is extraordinarily
         unlikely, and is not expected to happen.

         If the '{label}' GPG signing key fails to generate after this
         message appears, please report this issue, including the OS you
         were running from and its versions of the `gpg-agent` and
         `gpg`/`gpg2` commands."""


def terminate_agent(pid: int | None, *, directory: Path | None = None) -> None:
    """Remove the local socket link and terminate the agent ``pid``.

    A process that is already gone counts as success. Any other failure is
    logged and swallowed so teardown never aborts the caller.
    """
    if directory is not None:
        link = directory / LOCAL_SOCKET_NAME
        try:
            if link.is_symlink():
                link.unlink()
        except OSError as exc:
            logger.warning("Could not remove agent socket link %s: %s", link, exc)

    if not pid:
        return

    try:
        os.kill(pid, 0)
        os.kill(pid, signal.SIGTERM)
        logger.debug("Terminated gpg-agent (pid %d)", pid)
    except ProcessLookupError:
        logger.debug("gpg-agent (pid %d) is not running", pid)
    except OSError as exc:
        logger.warning("Failed to terminate gpg-agent (pid %d): %s", pid, exc)


class LegacyGpgAgent(AgentPort):
    """Agent launched through a startup script that writes an env-file (gpg < 2.1)."""

    def __init__(
        self,
        directory: Path,
        *,
        label: str = "dev",
        runner: CommandRunner | None = None,
        startup_timeout: float = 5.0,
    ) -> None:
        self.directory = Path(directory)
        self.label = label
        self._runner = runner or get_command_runner()
        self._startup_timeout = startup_timeout

    @property
    def env_file(self) -> Path:
        return self.directory / AGENT_ENV_FILENAME

    @property
    def script(self) -> Path:
        return self.directory / AGENT_SCRIPT_FILENAME

    def write_startup_script(self) -> Path:
        """Write the executable script that daemonizes gpg-agent."""
        self._runner.which("gpg-agent", required=True)
        pinentry = self._runner.which("pinentry-curses", required=True)

        self.script.write_text(
            "#!/bin/sh\n"
            "\n"
            f"gpg-agent --homedir={self.directory} --daemon \\\n"
            "  --no-use-standard-socket --sh --batch \\\n"
            f'  --write-env-file "{AGENT_ENV_FILENAME}" \\\n'
            f"  --pinentry-program {pinentry} < /dev/null &\n",
            encoding="utf-8",
        )
        os.chmod(self.script, 0o755)
        return self.script

    def start(self) -> AgentInfo | None:
        script = self.write_startup_script()

        # --sh makes the agent print its settings at startup; silence is anomalous
        # but generation is allowed to proceed and fail visibly on its own.
        result = self._runner.run([str(script)], cwd=self.directory, check=False)
        if not result.stdout.strip():
            logger.warning(EMPTY_AGENT_OUTPUT_MESSAGE.format(script=script, label=self.label))

        agent = self._wait_for_info()
        if agent is None:
            logger.warning("Couldn't find a valid source to read gpg-agent info in %s", self.directory)
            return None

        # A local socket lets co-located tooling find the agent without the info string.
        local_socket = self.directory / LOCAL_SOCKET_NAME
        if not (self.directory / Path(agent.socket).name).exists() and not local_socket.is_symlink():
            try:
                local_socket.symlink_to(agent.socket)
            except OSError:
                self.stop(agent)
                raise

        return agent

    def info(self) -> AgentInfo | None:
        if not self.env_file.exists():
            return None
        logger.debug("Reading gpg-agent info from '%s'", self.env_file)
        return parse_agent_info_env(self.env_file.read_text(encoding="utf-8"))

    def stop(self, agent: AgentInfo | None) -> None:
        terminate_agent(agent.pid if agent else None, directory=self.directory)

    def _wait_for_info(self) -> AgentInfo | None:
        deadline = time.monotonic() + self._startup_timeout
        while True:
            agent = self.info()
            if agent is not None or time.monotonic() >= deadline:
                return agent
            time.sleep(0.1)


class ModernGpgAgent(AgentPort):
    """Agent daemonized against the key directory itself (gpg >= 2.1)."""

    def __init__(self, directory: Path, *, runner: CommandRunner | None = None) -> None:
        self.directory = Path(directory)
        self._runner = runner or get_command_runner()

    def is_running(self) -> bool:
        result = self._runner.run(
            ["gpg-agent", "-q", f"--homedir={self.directory}"],
            check=False,
        )
        return result.returncode == 0

    def start(self) -> AgentInfo | None:
        for command in ("gpg", "gpg-agent", "gpg-connect-agent"):
            self._runner.which(command, required=True)

        if not self.is_running():
            self._runner.run(
                ["gpg-agent", f"--homedir={self.directory}", "--daemon"],
                check=False,
            )

        return self.info()

    def info(self) -> AgentInfo | None:
        socket = parse_agent_response(self._getinfo("socket_name"))
        pid = parse_agent_response(self._getinfo("pid"))
        if socket is None or pid is None or not pid.isdigit():
            return None
        return AgentInfo(socket=socket, pid=int(pid), info=f"{socket}:{pid}:1")

    def stop(self, agent: AgentInfo | None) -> None:
        terminate_agent(agent.pid if agent else None, directory=self.directory)

    def _getinfo(self, item: str) -> str:
        result = self._runner.run(
            ["gpg-connect-agent", "--no-autostart", f"--homedir={self.directory}"],
            input_text=f"GETINFO {item}\n",
            check=False,
        )
        return result.stdout


def select_agent(
    directory: Path,
    *,
    probe: ToolchainProbe,
    label: str = "dev",
    runner: CommandRunner | None = None,
) -> AgentPort:
    """Return the agent adapter matching the installed gpg generation."""
    if probe.uses_legacy_gpg():
        return LegacyGpgAgent(directory, label=label, runner=runner)
    return ModernGpgAgent(directory, runner=runner)

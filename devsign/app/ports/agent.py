"""Agent port interface for the ephemeral gpg-agent bound to a key directory."""

from typing import Protocol

from devsign.gpg.agent_info import AgentInfo

__all__ = ["AgentInfo", "AgentPort"]


class AgentPort(Protocol):
    """Port interface for starting, locating and stopping a scoped gpg-agent.

    Two adapters exist, one per gpg protocol generation; callers pick one once
    and never branch on the gpg version themselves.

    Side effects: Spawns and signals background processes, writes into the key directory.
    """

    def start(self) -> AgentInfo | None:
        """Start an agent for the key directory.

        Implementations stop any daemon they spawned before raising.

        Returns:
            Agent details, or None when the agent could not be located after startup
        """
        ...

    def info(self) -> AgentInfo | None:
        """Locate the agent currently serving the key directory, if any."""
        ...

    def stop(self, agent: AgentInfo | None) -> None:
        """Terminate ``agent`` and remove local socket links.

        Must never raise; teardown failures are logged.
        """
        ...

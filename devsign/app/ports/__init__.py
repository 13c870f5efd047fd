"""Port interfaces for the devsign application layer.

These protocol interfaces define contracts for adapters.
Services depend on these ports, never on concrete implementations.
"""

__all__ = [
    "AgentInfo",
    "AgentPort",
    "ArtifactInspectorPort",
    "ChannelPort",
    "LedgerPort",
    "ResignCommandPort",
]

from devsign.app.ports.agent import AgentInfo, AgentPort
from devsign.app.ports.artifact import ArtifactInspectorPort, ResignCommandPort
from devsign.app.ports.channel import ChannelPort
from devsign.app.ports.ledger import LedgerPort

"""Concrete adapters wiring application ports to gpg, gpg-agent and rpm."""

from __future__ import annotations

from .gpg_agent import LegacyGpgAgent, ModernGpgAgent, select_agent, terminate_agent
from .pty_channel import PtyChannel, answer_prompts
from .rpm import RpmInspector, RpmResignCommand

__all__ = [
    "LegacyGpgAgent",
    "ModernGpgAgent",
    "PtyChannel",
    "RpmInspector",
    "RpmResignCommand",
    "answer_prompts",
    "select_agent",
    "terminate_agent",
]

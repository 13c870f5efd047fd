"""Application bootstrap wiring ports, adapters, and services."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from devsign.app import AuditService, KeyConfig, KeyLifecycleService, KeyMetadataCache, SigningService
from devsign.app.adapters import PtyChannel, RpmInspector, RpmResignCommand, select_agent
from devsign.app.key_metadata import PromptFn
from devsign.app.ports import AgentPort, LedgerPort
from devsign.app.signing_service import ChannelFactory
from devsign.audit.ledger import AuditLedger
from devsign.config import Settings, get_settings
from devsign.gpg.toolchain import ToolchainProbe
from devsign.utils.commands import CommandRunner, get_command_runner


@dataclass(slots=True)
class ApplicationContainer:
    """Aggregates wired services and adapters for the CLI layer."""

    settings: Settings
    runner: CommandRunner
    probe: ToolchainProbe
    metadata_cache: KeyMetadataCache
    signing_service: SigningService
    audit_service: AuditService
    ledger_port: LedgerPort | None
    agent_factory: Callable[[Path], AgentPort]

    def key_service(self, config: KeyConfig | None = None, **overrides: Any) -> KeyLifecycleService:
        """Build a lifecycle service for ``config`` (defaults to settings)."""
        config = config or self.settings.build_key_config(**overrides)
        return KeyLifecycleService(
            config,
            probe=self.probe,
            runner=self.runner,
            agent_factory=self.agent_factory,
            ledger_port=self.ledger_port,
        )


class NoOpLedger:
    """Ledger implementation that drops all writes."""

    def log(self, *args: Any, **kwargs: Any) -> None:
        return None

    def read_all(self) -> list[Any]:
        return []

    def verify(self) -> tuple[bool, str | None]:
        return (True, None)


def bootstrap_application(
    settings: Settings | None = None,
    *,
    runner: CommandRunner | None = None,
    agent_factory: Callable[[Path], AgentPort] | None = None,
    channel_factory: ChannelFactory | None = None,
    prompt: PromptFn | None = None,
) -> ApplicationContainer:
    """Create the application container with default adapters."""

    active_settings = settings or get_settings()
    active_runner = runner or get_command_runner()
    probe = ToolchainProbe(active_runner)

    ledger_port: LedgerPort | None
    if active_settings.audit_enabled:
        ledger_port = AuditLedger(active_settings.get_audit_path())
        audit_service = AuditService(ledger=ledger_port)
    else:
        ledger_port = NoOpLedger()
        audit_service = AuditService(ledger=None)

    def default_agent_factory(directory: Path) -> AgentPort:
        return select_agent(
            directory,
            probe=probe,
            label=active_settings.key_label,
            runner=active_runner,
        )

    resolved_agent_factory = agent_factory or default_agent_factory
    metadata_cache = KeyMetadataCache(runner=active_runner, prompt=prompt)

    signing_service = SigningService(
        inspector=RpmInspector(active_runner),
        resign_command=RpmResignCommand(probe, active_runner),
        metadata_cache=metadata_cache,
        agent_factory=resolved_agent_factory,
        channel_factory=channel_factory or PtyChannel,
        ledger_port=ledger_port,
        extension=active_settings.artifact_extension,
    )

    return ApplicationContainer(
        settings=active_settings,
        runner=active_runner,
        probe=probe,
        metadata_cache=metadata_cache,
        signing_service=signing_service,
        audit_service=audit_service,
        ledger_port=ledger_port,
        agent_factory=resolved_agent_factory,
    )

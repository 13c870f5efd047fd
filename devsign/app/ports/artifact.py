"""Artifact port interfaces for signature inspection and re-signing."""

from pathlib import Path
from typing import Protocol


class ArtifactInspectorPort(Protocol):
    """Port interface for reading an artifact's existing signature.

    Side effects: Reads the artifact (offline).
    """

    def is_signed(self, artifact: Path) -> bool:
        """Return True if ``artifact`` already carries a signature."""
        ...

    def signature_key_id(self, artifact: Path) -> str | None:
        """Return the key id of the artifact's signature, if signed."""
        ...


class ResignCommandPort(Protocol):
    """Port interface for building the external re-sign invocation."""

    def build(self, artifact: Path, *, identity: str, key_dir: Path) -> list[str]:
        """Return argv that re-signs ``artifact`` in place with ``identity``."""
        ...

    def starts_agent(self) -> bool:
        """Return True if the resign tool stands up its own gpg-agent."""
        ...

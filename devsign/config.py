"""Configuration management with Pydantic and XDG base directory support."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import Field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:  # pragma: no cover
    from devsign.app.key_service import KeyConfig


def get_xdg_data_home() -> Path:
    """Get XDG_DATA_HOME directory, defaulting to ~/.local/share."""
    xdg_data = os.getenv("XDG_DATA_HOME")
    if xdg_data:
        return Path(xdg_data)
    return Path.home() / ".local" / "share"


class Settings(BaseSettings):
    """devsign configuration settings.

    Precedence: CLI flag > environment variable > .env file > defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEVSIGN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Key settings
    keys_dir: Path = Field(
        default=Path(".dev_gpgkeys"),
        description="Parent directory of the per-label key directories",
    )

    key_label: str = Field(
        default="dev",
        min_length=1,
        description="Key directory name; also used in the exported key filename",
    )

    key_email: str = Field(
        default="gatekeeper@devsign.development.key",
        description="Identity (email) the generated key is bound to",
    )

    key_file: str | None = Field(
        default=None,
        description="Exported public key filename (defaults to RPM-GPG-KEY-DEVSIGN-<Label>)",
    )

    # Signing settings
    artifact_extension: str = Field(
        default=".rpm",
        description="Suffix of files considered for signing",
    )

    max_concurrent: int = Field(
        default=1,
        ge=1,
        description="Maximum number of concurrent signing jobs (1 = sequential)",
    )

    force: bool = Field(
        default=False,
        description="Re-sign artifacts that already carry a signature",
    )

    # Output settings
    verbose: bool = Field(default=False, description="Log debug information")

    log_level: str = Field(
        default="WARNING",
        description="Logging level used when --verbose is not given",
    )

    # Audit settings
    audit_enabled: bool = Field(
        default=True,
        description="Record key generation and signing runs in the audit ledger",
    )

    data_dir: Path | None = Field(
        default=None,
        description="Override data directory (defaults to XDG_DATA_HOME/devsign)",
    )

    _data_dir: Path | None = PrivateAttr(default=None)

    def get_data_dir(self) -> Path:
        """Return the directory holding the audit ledger, creating it on first use.

        Falls back to ``./.devsign-data`` (with a one-time warning on stderr)
        when the XDG location is not writable.
        """
        if self._data_dir is None:
            self._data_dir = self._resolve_data_dir()
        return self._data_dir

    def _resolve_data_dir(self) -> Path:
        if self.data_dir:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            return self.data_dir

        preferred = get_xdg_data_home() / "devsign"
        try:
            preferred.mkdir(parents=True, exist_ok=True)
        except PermissionError as exc:
            local = Path.cwd() / ".devsign-data"
            local.mkdir(parents=True, exist_ok=True)
            print(
                f"Warning: {preferred} is not writable ({exc}); using '{local}'. "
                "Set DEVSIGN_DATA_DIR to choose another location.",
                file=sys.stderr,
            )
            return local
        return preferred

    def get_audit_path(self) -> Path:
        """Return ``<data dir>/audit.jsonl``."""
        return self.get_data_dir() / "audit.jsonl"

    def get_key_dir(self, label: str | None = None) -> Path:
        """Return the key directory for ``label`` (not created here)."""
        return (self.keys_dir.expanduser() / (label or self.key_label)).resolve()

    def build_key_config(self, **overrides: Any) -> KeyConfig:
        """Build a :class:`KeyConfig` from settings, with keyword overrides."""
        from devsign.app.key_service import KeyConfig

        label = overrides.get("label") or self.key_label
        directory = overrides.get("directory") or self.get_key_dir(label)
        return KeyConfig.for_directory(
            directory,
            label=label,
            email=overrides.get("email") or self.key_email,
            key_file=overrides.get("key_file") or self.key_file,
            verbose=bool(overrides.get("verbose", self.verbose)),
        )


# Process-wide settings, created lazily
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Replace the process-wide settings (the CLI applies its flags this way)."""
    global _settings
    _settings = settings

"""Append-only audit ledger for key generation and signing runs.

Each line of the JSONL file is one :class:`AuditEntry`. Entries form a hash
chain (every entry embeds the hash of its predecessor) and carry an HMAC seal
over that chain, keyed by a secret stored next to the ledger. A sealed
``.meta`` sidecar records the chain tip so that dropping the newest entries
is detected too.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from devsign import __version__
from devsign.utils.crypto import load_or_create_hmac_key, write_secure_file
from devsign.utils.hashing import compute_sha256

GENESIS_HASH = "0" * 64
GENESIS_SIGNATURE = "0" * 64
METADATA_VERSION = 1


def _canonical(data: dict[str, Any]) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


class AuditEntry(BaseModel):
    """One recorded operation."""

    timestamp: str = Field(..., description="ISO 8601 timestamp in UTC")
    operation: str = Field(..., description="key_valid, key_generated or sign_batch")
    inputs: list[str] = Field(default_factory=list, description="Key directory or artifact paths")
    outputs: list[str] = Field(
        default_factory=list,
        description="Exported key path or SHA-256 of each signed artifact",
    )
    args: dict[str, Any] = Field(default_factory=dict, description="Counts and options of the run")
    versions: dict[str, str] = Field(default_factory=dict, description="devsign and tool versions")
    previous_hash: str = Field(default=GENESIS_HASH, description="entry_hash of the predecessor")
    sequence: int | None = Field(default=None, ge=1, description="Position in the ledger, from 1")
    entry_hash: str | None = Field(default=None, description="SHA-256 over every other field")
    signature: str | None = Field(default=None, description="HMAC chaining this entry to its predecessor")

    def compute_hash(self) -> str:
        """Hash the canonical JSON of the entry, excluding ``entry_hash`` and ``signature``."""
        payload = self.model_dump(mode="json", exclude={"entry_hash", "signature"}, exclude_none=True)
        return compute_sha256(_canonical(payload))

    def model_post_init(self, __context: Any) -> None:
        if self.entry_hash is None:
            self.entry_hash = self.compute_hash()


@dataclass(frozen=True, slots=True)
class ChainTip:
    """Newest sealed position of the chain."""

    sequence: int = 0
    entry_hash: str = GENESIS_HASH
    signature: str = GENESIS_SIGNATURE

    @classmethod
    def of(cls, entry: AuditEntry) -> ChainTip:
        return cls(
            sequence=entry.sequence or 0,
            entry_hash=entry.entry_hash or GENESIS_HASH,
            signature=entry.signature or GENESIS_SIGNATURE,
        )


class AuditLedger:
    """JSONL ledger with a sealed chain-tip sidecar."""

    def __init__(self, ledger_path: Path, *, hmac_key: bytes | None = None) -> None:
        """Open (or start) the ledger at ``ledger_path``.

        Args:
            ledger_path: JSONL file, created on first write
            hmac_key: Sealing key; defaults to a random secret kept in ``<ledger>.key``
        """
        self.ledger_path = Path(ledger_path)
        self.ledger_path.parent.mkdir(parents=True, exist_ok=True)
        self.metadata_path = self.ledger_path.with_suffix(".meta")

        if hmac_key is None:
            hmac_key = load_or_create_hmac_key(self.ledger_path.with_suffix(".key"))
        self._key = hmac_key

        entries = self.read_all()
        self._tip = ChainTip.of(entries[-1]) if entries else ChainTip()

        # An existing sidecar is never rewritten here, even if invalid; verify() reports it.
        if not self.metadata_path.exists():
            self._write_metadata(self._tip)

    def log(
        self,
        operation: str,
        inputs: list[str] | None = None,
        outputs: list[str] | None = None,
        args: dict[str, Any] | None = None,
        versions: dict[str, str] | None = None,
    ) -> AuditEntry:
        """Append ``operation`` to the ledger and advance the sealed tip.

        ``versions`` always gains a ``devsign`` key.
        """
        versions = {"devsign": __version__, **(versions or {})}
        tip = self._tip

        entry = AuditEntry(
            timestamp=datetime.now(UTC).isoformat(),
            operation=operation,
            inputs=inputs or [],
            outputs=outputs or [],
            args=args or {},
            versions=versions,
            previous_hash=tip.entry_hash,
            sequence=tip.sequence + 1,
        )
        entry.signature = self._seal(entry, tip.signature)

        with open(self.ledger_path, "a", encoding="utf-8") as fh:
            fh.write(entry.model_dump_json() + "\n")
            fh.flush()
            os.fsync(fh.fileno())

        self._tip = ChainTip.of(entry)
        self._write_metadata(self._tip)
        return entry

    def read_all(self) -> list[AuditEntry]:
        """Return every entry in ledger order.

        Raises:
            ValueError: If a line is not a valid entry
        """
        if not self.ledger_path.exists():
            return []

        entries: list[AuditEntry] = []
        with open(self.ledger_path, encoding="utf-8") as fh:
            for line_num, line in enumerate(fh, 1):
                if not line.strip():
                    continue
                try:
                    entries.append(AuditEntry.model_validate_json(line))
                except ValidationError as exc:
                    raise ValueError(
                        f"Invalid entry at line {line_num} in {self.ledger_path}: {exc}"
                    ) from exc
        return entries

    def get_by_operation(self, operation: str) -> list[AuditEntry]:
        return [entry for entry in self.read_all() if entry.operation == operation]

    def verify(self) -> tuple[bool, str | None]:
        """Check every entry's hash, chain link and seal, then the sidecar tip.

        Returns:
            ``(True, None)`` when intact, otherwise ``(False, reason)``
        """
        try:
            metadata = self._read_metadata()
            entries = self.read_all()
        except ValueError as exc:
            return False, f"Audit ledger integrity failure: {exc}"

        tip = ChainTip()
        for index, entry in enumerate(entries, 1):
            problem = self._check_entry(index, entry, tip)
            if problem is not None:
                return False, problem
            tip = ChainTip.of(entry)

        if metadata is None:
            if entries:
                return False, "Audit metadata file is missing."
            return True, None

        recorded_sequence = int(metadata.get("last_sequence", 0))
        recorded_hash = metadata.get("last_hash") or GENESIS_HASH
        if recorded_sequence != tip.sequence or recorded_hash != tip.entry_hash:
            if not entries:
                return False, "Audit ledger appears truncated (no entries but metadata expects data)."
            return False, "Ledger metadata does not match the last entry; possible truncation."

        return True, None

    def _check_entry(self, index: int, entry: AuditEntry, tip: ChainTip) -> str | None:
        if entry.sequence is None or entry.entry_hash is None or entry.signature is None:
            return f"Entry {index} is missing its sequence, hash or signature."
        if not hmac.compare_digest(entry.entry_hash, entry.compute_hash()):
            return f"Entry {index} has invalid hash."
        if entry.previous_hash != tip.entry_hash:
            return f"Entry {index} breaks hash chain."
        if not hmac.compare_digest(entry.signature, self._seal(entry, tip.signature)):
            return f"Entry {index} has invalid signature; ledger may have been tampered."
        if entry.sequence != index:
            return f"Entry {index} sequence mismatch (got {entry.sequence})."
        return None

    def _seal(self, entry: AuditEntry, previous_signature: str) -> str:
        message = f"{entry.sequence or 0}|{entry.previous_hash}|{entry.entry_hash or ''}|{previous_signature}"
        return hmac.new(self._key, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def _metadata_seal(self, sequence: int, last_hash: str | None) -> str:
        message = f"{sequence}:{last_hash or GENESIS_HASH}"
        return hmac.new(self._key, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def _write_metadata(self, tip: ChainTip) -> None:
        last_hash = tip.entry_hash if tip.sequence else None
        payload = {
            "version": METADATA_VERSION,
            "last_sequence": tip.sequence,
            "last_hash": last_hash,
            "hmac": self._metadata_seal(tip.sequence, last_hash),
        }
        write_secure_file(self.metadata_path, _canonical(payload))

    def _read_metadata(self) -> dict[str, Any] | None:
        try:
            raw = self.metadata_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Audit metadata is not valid JSON: {exc}") from exc

        expected = self._metadata_seal(int(data.get("last_sequence", 0)), data.get("last_hash"))
        seal = data.get("hmac")
        if not isinstance(seal, str) or not hmac.compare_digest(expected, seal):
            raise ValueError("Audit metadata HMAC mismatch")
        return data

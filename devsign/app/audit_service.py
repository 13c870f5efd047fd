"""Read-side access to the audit ledger for the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from devsign.app.ports import LedgerPort


@dataclass(slots=True)
class AuditService:
    """Query and verify the ledger; a ``None`` ledger means auditing is off."""

    ledger: LedgerPort | None

    def is_enabled(self) -> bool:
        return self.ledger is not None

    def get_entries(self, operation: str | None = None) -> list[Any]:
        """Return recorded entries, only those for ``operation`` when given."""
        if self.ledger is None:
            return []
        return [
            entry
            for entry in self.ledger.read_all()
            if operation is None or entry.operation == operation
        ]

    def verify(self) -> tuple[bool, str | None]:
        if self.ledger is None:
            return True, None
        return self.ledger.verify()

"""Ledger port: where key and signing runs are recorded."""

from typing import Any, Protocol


class LedgerPort(Protocol):
    """Append-only, verifiable record of devsign operations.

    Implementations must never rewrite past entries.
    """

    def log(
        self,
        operation: str,
        inputs: list[str],
        outputs: list[str],
        args: dict[str, Any],
    ) -> Any:
        """Record one operation.

        Args:
            operation: ``key_valid``, ``key_generated`` or ``sign_batch``
            inputs: Key directory or artifact paths
            outputs: Exported key path or hashes of signed artifacts
            args: Counts and options of the run
        """
        ...

    def verify(self) -> tuple[bool, str | None]:
        """Return ``(is_valid, reason)`` for the whole ledger."""
        ...

    def read_all(self) -> list[Any]:
        ...

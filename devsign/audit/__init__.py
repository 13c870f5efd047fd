"""Audit trail for key generation and signing runs."""

from devsign.audit.ledger import AuditEntry, AuditLedger

__all__ = ["AuditEntry", "AuditLedger"]

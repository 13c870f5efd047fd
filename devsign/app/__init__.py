"""Application layer for devsign.

Services orchestrate key lifecycle and signing; every external tool is
reached through an adapter behind a port interface.
"""

__all__ = [
    "AuditService",
    "BatchSignResult",
    "KeyConfig",
    "KeyLifecycleService",
    "KeyMetadataCache",
    "SigningService",
]

from devsign.app.audit_service import AuditService
from devsign.app.key_metadata import KeyMetadataCache
from devsign.app.key_service import KeyConfig, KeyLifecycleService
from devsign.app.signing_service import BatchSignResult, SigningService

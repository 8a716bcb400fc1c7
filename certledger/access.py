"""Access guard for privileged lifecycle operations.

The guard holds one pre-shared credential hash (hex SHA-256), injected at
construction from configuration. A candidate credential is hashed the same
way and compared in constant time. An empty configured hash rejects every
candidate, so an unconfigured deployment has no privileged access at all.
"""

from __future__ import annotations

import hmac
from typing import Optional

from certledger.core import is_valid_sha256, sha256_text
from certledger.errors import Unauthorized, ValidationError
from certledger.observability import AuditLogger, Layer, get_logger

logger = get_logger("guard", Layer.ACCESS)


def hash_credential(secret: str) -> str:
    """Hash a credential into the form stored in configuration."""
    return sha256_text(secret)


class AccessGuard:
    """Validates candidate credentials against the configured hash."""

    def __init__(self, credential_hash: str, audit: Optional[AuditLogger] = None):
        credential_hash = (credential_hash or "").strip().lower()
        if credential_hash and not is_valid_sha256(credential_hash):
            raise ValidationError(
                "admin_credential_hash", "must be empty or 64 lowercase hex chars"
            )
        if not credential_hash:
            logger.warning("No admin credential hash configured; privileged operations are disabled")
        self._credential_hash = credential_hash
        self.audit = audit or AuditLogger()

    @property
    def configured(self) -> bool:
        return bool(self._credential_hash)

    def check(self, candidate: Optional[str]) -> bool:
        if not self._credential_hash or not isinstance(candidate, str):
            return False
        return hmac.compare_digest(
            hash_credential(candidate).encode("ascii"),
            self._credential_hash.encode("ascii"),
        )

    def require(self, candidate: Optional[str], operation: str, resource_id: str = "") -> None:
        """Raise ``Unauthorized`` unless ``candidate`` matches the configured hash."""
        if self.check(candidate):
            return
        self.audit.record(operation, resource_id, "denied")
        logger.warning(
            f"Credential rejected for {operation}",
            error_code=Unauthorized.error_code,
            resource_id=resource_id,
        )
        raise Unauthorized(operation)

"""
certledger error taxonomy.

Every failure surfaced by the lifecycle engine is one of the exceptions
below. Each carries a stable ``error_code`` used in structured log records
and CLI output. The engine performs no local recovery: collaborator
failures are wrapped in ``LedgerError`` and precondition failures are raised
as-is to the caller.
"""

from __future__ import annotations

from typing import Any


class CertLedgerError(Exception):
    """Base exception for all certledger failures."""

    error_code = "CERTLEDGER_ERROR"


class NotFound(CertLedgerError):
    """No asset is stored under the requested id."""

    error_code = "NOT_FOUND"

    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__(f"the asset {asset_id} does not exist")


class AlreadyExists(CertLedgerError):
    """An asset is already stored under the derived id."""

    error_code = "ALREADY_EXISTS"

    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__(f"the asset {asset_id} already exists")


class Unauthorized(CertLedgerError):
    """The supplied credential does not match the configured hash."""

    error_code = "UNAUTHORIZED"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"credential rejected for privileged operation '{operation}'")


class InvalidTransition(CertLedgerError):
    """The asset is not in a state that allows the requested transition."""

    error_code = "INVALID_TRANSITION"

    def __init__(self, asset_id: str, message: str):
        self.asset_id = asset_id
        super().__init__(message)


class NotPending(InvalidTransition):
    error_code = "NOT_PENDING"

    def __init__(self, asset_id: str):
        super().__init__(asset_id, f"the asset {asset_id} is not awaiting evaluation")


class StillPending(InvalidTransition):
    error_code = "STILL_PENDING"

    def __init__(self, asset_id: str):
        super().__init__(asset_id, f"the asset {asset_id} has not been certified yet")


class NoRenewalRequest(InvalidTransition):
    error_code = "NO_RENEWAL_REQUEST"

    def __init__(self, asset_id: str):
        super().__init__(asset_id, f"the asset {asset_id} does not have a pending renewal request")


class DecodeError(CertLedgerError):
    """Stored bytes could not be parsed into an Asset."""

    error_code = "DECODE_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"cannot decode asset stored at {key}: {reason}")


class LedgerError(CertLedgerError):
    """Wraps a failure raised by the ledger collaborator."""

    error_code = "LEDGER_ERROR"


class ValidationError(CertLedgerError):
    """Malformed caller input."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

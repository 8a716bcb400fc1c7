"""
Tests for the access guard.

Run with: pytest tests/test_access.py -v
"""

import hashlib

import pytest

from certledger.access import AccessGuard, hash_credential
from certledger.errors import Unauthorized, ValidationError
from certledger.observability import AuditLogger

from conftest import ADMIN_SECRET


class TestHashCredential:
    """Tests for credential hashing."""

    def test_sha256_hex(self):
        assert hash_credential("pwd") == hashlib.sha256(b"pwd").hexdigest()


class TestAccessGuard:
    """Tests for credential checks."""

    def test_correct_credential(self, guard):
        assert guard.check(ADMIN_SECRET)

    def test_wrong_credential(self, guard):
        assert not guard.check("guess")

    def test_missing_credential(self, guard):
        assert not guard.check(None)
        assert not guard.check("")

    def test_uppercase_hash_accepted(self):
        guard = AccessGuard(hash_credential(ADMIN_SECRET).upper())
        assert guard.check(ADMIN_SECRET)

    def test_empty_hash_rejects_everything(self):
        guard = AccessGuard("")
        assert not guard.configured
        assert not guard.check("")
        assert not guard.check(ADMIN_SECRET)

    def test_malformed_hash(self):
        with pytest.raises(ValidationError) as exc_info:
            AccessGuard("not-a-hash")
        assert exc_info.value.field == "admin_credential_hash"

    def test_guards_are_independent(self):
        """Each guard holds its own hash; nothing is shared between instances."""
        first = AccessGuard(hash_credential("one"))
        second = AccessGuard(hash_credential("two"))
        assert first.check("one") and not first.check("two")
        assert second.check("two") and not second.check("one")


class TestRequire:
    """Tests for the raising check and its audit trail."""

    def test_require_passes(self, guard, audit):
        guard.require(ADMIN_SECRET, "evaluate", "abc")
        assert audit.events == []

    def test_require_denies(self, guard, audit):
        with pytest.raises(Unauthorized) as exc_info:
            guard.require("guess", "evaluate", "abc")

        assert exc_info.value.operation == "evaluate"
        assert exc_info.value.error_code == "UNAUTHORIZED"
        [event] = audit.events
        assert event.action == "evaluate"
        assert event.resource_id == "abc"
        assert event.outcome == "denied"

    def test_audit_never_records_candidate(self):
        audit = AuditLogger()
        guard = AccessGuard(hash_credential(ADMIN_SECRET), audit=audit)
        with pytest.raises(Unauthorized):
            guard.require("leaked-password", "invalidate", "abc")
        assert "leaked-password" not in repr(audit.export())

import logging
import pathlib
import sys
from datetime import date, datetime, timezone

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import certledger`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from certledger.access import AccessGuard, hash_credential  # noqa: E402
from certledger.ledger import InMemoryLedger  # noqa: E402
from certledger.lifecycle import LifecycleEngine  # noqa: E402
from certledger.observability import ROOT_LOGGER, AuditLogger  # noqa: E402
from certledger.queries import CertificateQueries  # noqa: E402

ADMIN_SECRET = "s3cret-certifier"
FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
TODAY = date(2026, 10, 19)

_CERTLEDGER_ENV = (
    "CERTLEDGER_LEDGER_PATH",
    "CERTLEDGER_ADMIN_CREDENTIAL_HASH",
    "CERTLEDGER_ADMIN_CREDENTIAL",
    "CERTLEDGER_VALIDITY_DAYS",
    "CERTLEDGER_LOG_LEVEL",
    "CERTLEDGER_LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Keep host CERTLEDGER_* variables and CLI log handlers out of tests."""
    for name in _CERTLEDGER_ENV:
        monkeypatch.delenv(name, raising=False)
    yield
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        if getattr(handler, "_certledger", False):
            root.removeHandler(handler)
    root.setLevel(logging.NOTSET)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
def guard(audit):
    return AccessGuard(hash_credential(ADMIN_SECRET), audit=audit)


@pytest.fixture
def engine(ledger, guard, clock):
    return LifecycleEngine(ledger, guard, clock=clock)


@pytest.fixture
def queries(engine, guard, clock):
    return CertificateQueries(engine.store, guard, clock=clock)

"""
certledger: certification ledger for protected-origin food products

Sellers submit products for a designation of origin (D.O.P., I.G.P.,
D.O.C., ...), a certifying authority approves or rejects them, and anyone
can check whether a product's certificate is currently valid.

Modules
───────

    core.py           Hashing, canonical JSON, file loading, default clock
    errors.py         Error taxonomy with stable error codes
    identifiers.py    Deterministic asset ids from (owner, product, cert type)
    models.py         Asset record, lifecycle states, ledger encoding
    schema.py         JSON Schema validation of stored records
    ledger.py         Key-value ledger gateway (in-memory and JSON file)
    store.py          Typed CRUD over Asset records
    access.py         Credential check for certifier operations
    lifecycle.py      Submission, evaluation, renewal and invalidation
    queries.py        Listings and display formatting
    observability.py  Structured logging and audit trail
    config.py         YAML and environment configuration
    cli.py            Command-line driver

Lifecycle
─────────

    submit ──► PENDING ──approve──► CERTIFIED ──request renewal──► RENEWAL_PENDING
                  │                    ▲                                │
                reject                 └────────────renew───────────────┘
                  ▼
              (deleted)

A certificate is valid while its expiry date lies strictly after today (UTC).
"""

__version__ = "1.0.0"


def __getattr__(name):
    """Lazy import certledger modules on first access."""

    if name in ("Asset", "AssetState", "PENDING_SENTINEL", "encode_asset", "decode_asset"):
        from certledger import models
        return getattr(models, name)

    if name in ("LedgerGateway", "InMemoryLedger", "JsonFileLedger"):
        from certledger import ledger
        return getattr(ledger, name)

    if name in ("LifecycleEngine", "SEED_ASSETS", "state_of"):
        from certledger import lifecycle
        return getattr(lifecycle, name)

    if name in ("CertificateQueries", "format_asset", "asset_row"):
        from certledger import queries
        return getattr(queries, name)

    if name in ("AccessGuard", "hash_credential"):
        from certledger import access
        return getattr(access, name)

    if name in ("AssetStore",):
        from certledger import store
        return getattr(store, name)

    if name in ("derive_asset_id",):
        from certledger import identifiers
        return getattr(identifiers, name)

    if name in ("CertLedgerError", "NotFound", "AlreadyExists", "Unauthorized",
                "InvalidTransition", "NotPending", "StillPending", "NoRenewalRequest",
                "DecodeError", "LedgerError", "ValidationError"):
        from certledger import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'certledger' has no attribute '{name}'")

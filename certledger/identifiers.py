"""Deterministic asset identifiers.

id = sha256_hex(utf8(owner + product + cert_type))

The three fields are concatenated without separators or normalization, so
the same submission always lands on the same ledger key. Every producer of
ids (submission, create, update, seed data) goes through ``derive_asset_id``.
"""

from __future__ import annotations

from certledger.core import sha256_text


def derive_asset_id(owner: str, product: str, cert_type: str) -> str:
    """Return the 64-char lowercase hex id for ``(owner, product, cert_type)``."""
    return sha256_text(owner + product + cert_type)

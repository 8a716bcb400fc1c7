"""Asset record model and its ledger encoding.

An Asset is a certification record: either a pending certification request
or an issued certificate. Its lifecycle state is derived from two stored
fields:

    expire_date == PENDING_SENTINEL        -> PENDING
    expire_date != sentinel, renew False   -> CERTIFIED (valid or expired)
    expire_date != sentinel, renew True    -> RENEWAL_PENDING

Validity is never stored. An asset is valid iff its expiry date is strictly
after today (UTC) and is not the sentinel.

Ledger encoding is a compact JSON object with a fixed key order:

    {"ID":...,"Owner":...,"Product":...,"CertType":...,"ExpireDate":"YYYY-MM-DD","Renew":false}

so independent writers produce byte-identical values for the same Asset.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any, Dict

from certledger.errors import DecodeError
from certledger.schema import ASSET_SCHEMA, validate_against_schema

PENDING_SENTINEL = date(1980, 1, 1)

RECORD_FIELDS = ("ID", "Owner", "Product", "CertType", "ExpireDate", "Renew")


class AssetState(Enum):
    """Lifecycle states of an Asset."""
    PENDING = "pending"
    CERTIFIED = "certified"
    RENEWAL_PENDING = "renewal_pending"


@dataclass(frozen=True)
class Asset:
    """A certification record held transiently during one operation."""
    id: str
    owner: str
    product: str
    cert_type: str
    expire_date: date
    renew: bool = False

    @property
    def state(self) -> AssetState:
        if self.expire_date == PENDING_SENTINEL:
            return AssetState.PENDING
        if self.renew:
            return AssetState.RENEWAL_PENDING
        return AssetState.CERTIFIED

    def is_valid(self, today: date) -> bool:
        """True iff the certificate is issued and expires strictly after ``today``."""
        return self.expire_date != PENDING_SENTINEL and self.expire_date > today

    def evolve(self, **changes: Any) -> "Asset":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    def to_record(self) -> Dict[str, Any]:
        """Mapping in canonical field order."""
        return {
            "ID": self.id,
            "Owner": self.owner,
            "Product": self.product,
            "CertType": self.cert_type,
            "ExpireDate": self.expire_date.isoformat(),
            "Renew": bool(self.renew),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Asset":
        return cls(
            id=record["ID"],
            owner=record["Owner"],
            product=record["Product"],
            cert_type=record["CertType"],
            expire_date=date.fromisoformat(record["ExpireDate"]),
            renew=bool(record.get("Renew", False)),
        )


def encode_asset(asset: Asset) -> bytes:
    """Serialize an Asset to its ledger bytes."""
    return json.dumps(
        asset.to_record(),
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def decode_asset(key: str, data: bytes) -> Asset:
    """Parse ledger bytes into an Asset.

    Raises:
        DecodeError: bytes are not UTF-8 JSON, fail the asset schema, carry
            an ID other than ``key``, or carry an impossible calendar date.
    """
    try:
        record = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(key, f"invalid JSON: {exc}") from exc

    errors = validate_against_schema(record, ASSET_SCHEMA)
    if errors:
        raise DecodeError(key, errors[0])
    if record["ID"] != key:
        raise DecodeError(key, "ID field does not match ledger key")

    try:
        return Asset.from_record(record)
    except ValueError as exc:
        raise DecodeError(key, f"invalid ExpireDate: {exc}") from exc

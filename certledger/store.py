"""Asset store: CRUD over Asset records keyed by derived id.

Each method is one logical step against the ledger gateway. Ledger
collaborator failures are wrapped in ``LedgerError``; record-level
failures raise ``NotFound``, ``AlreadyExists`` or ``DecodeError``.
"""

from __future__ import annotations

from datetime import date
from typing import List

from certledger.errors import AlreadyExists, CertLedgerError, LedgerError, NotFound
from certledger.identifiers import derive_asset_id
from certledger.ledger import LedgerGateway
from certledger.models import PENDING_SENTINEL, Asset, decode_asset, encode_asset
from certledger.observability import Layer, get_logger

logger = get_logger("store", Layer.STORE)


class AssetStore:
    """Typed access to Asset records held by a ``LedgerGateway``."""

    def __init__(self, ledger: LedgerGateway):
        self.ledger = ledger

    # -------------------------------------------------------------------------
    # Ledger I/O
    # -------------------------------------------------------------------------

    def _call(self, what: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except CertLedgerError:
            raise
        except Exception as exc:
            raise LedgerError(f"failed to {what}: {exc}") from exc

    def _read(self, asset_id: str):
        return self._call("read from world state", self.ledger.get, asset_id)

    # -------------------------------------------------------------------------
    # Primitive operations
    # -------------------------------------------------------------------------

    def exists(self, asset_id: str) -> bool:
        return self._read(asset_id) is not None

    def get(self, asset_id: str) -> Asset:
        data = self._read(asset_id)
        if data is None:
            raise NotFound(asset_id)
        return decode_asset(asset_id, data)

    def put(self, asset: Asset) -> None:
        self._call("put to world state", self.ledger.put, asset.id, encode_asset(asset))

    def delete(self, asset_id: str) -> None:
        if not self.exists(asset_id):
            raise NotFound(asset_id)
        self._call("delete from world state", self.ledger.delete, asset_id)
        logger.debug("Deleted asset", asset_id=asset_id)

    # -------------------------------------------------------------------------
    # Composite operations
    # -------------------------------------------------------------------------

    def create(self, owner: str, product: str, cert_type: str, expire_date: date) -> Asset:
        """Write a new Asset under the id derived from its fields."""
        asset_id = derive_asset_id(owner, product, cert_type)
        if self.exists(asset_id):
            raise AlreadyExists(asset_id)

        asset = Asset(
            id=asset_id,
            owner=owner,
            product=product,
            cert_type=cert_type,
            expire_date=expire_date,
            renew=False,
        )
        self.put(asset)
        logger.debug("Created asset", asset_id=asset_id, expire_date=expire_date.isoformat())
        return asset

    def update(
        self,
        asset_id: str,
        owner: str,
        product: str,
        cert_type: str,
        expire_date: date,
    ) -> Asset:
        """Replace the record at ``asset_id`` with one keyed by the new fields.

        The delete of the old key and the put of the new key are issued as a
        single ``write_batch`` so no reader can observe the asset missing
        under both ids. If the new id differs and is already taken the update
        is refused rather than overwriting the other asset.
        """
        old = self.get(asset_id)
        new_id = derive_asset_id(owner, product, cert_type)
        if new_id != asset_id and self.exists(new_id):
            raise AlreadyExists(new_id)

        renew = old.renew and expire_date != PENDING_SENTINEL
        asset = Asset(
            id=new_id,
            owner=owner,
            product=product,
            cert_type=cert_type,
            expire_date=expire_date,
            renew=renew,
        )
        deletes = [asset_id] if new_id != asset_id else []
        self._call(
            "update world state",
            self.ledger.write_batch,
            {new_id: encode_asset(asset)},
            deletes,
        )
        logger.debug("Updated asset", old_id=asset_id, new_id=new_id)
        return asset

    def transfer_owner(self, asset_id: str, new_owner: str) -> Asset:
        """Rewrite the owner field in place; the ledger key does not move."""
        asset = self.get(asset_id).evolve(owner=new_owner)
        self.put(asset)
        return asset

    def put_many(self, assets: List[Asset]) -> None:
        """Write several assets in one atomic batch."""
        self._call(
            "put to world state",
            self.ledger.write_batch,
            {a.id: encode_asset(a) for a in assets},
            [],
        )

    def list_all(self) -> List[Asset]:
        """Decode every record in ledger key order."""
        rows = self._call("scan world state", self.ledger.scan, "", "")
        return [decode_asset(key, value) for key, value in rows]

"""
Tests for the asset store.

Run with: pytest tests/test_store.py -v
"""

from datetime import date

import pytest

from certledger.errors import AlreadyExists, DecodeError, LedgerError, NotFound
from certledger.identifiers import derive_asset_id
from certledger.ledger import InMemoryLedger
from certledger.models import PENDING_SENTINEL, encode_asset
from certledger.store import AssetStore


class FailingLedger(InMemoryLedger):
    """Ledger whose reads blow up, as a broken collaborator would."""

    def get(self, key):
        raise RuntimeError("peer unreachable")


@pytest.fixture
def store(ledger):
    return AssetStore(ledger)


class TestAssetStoreCrud:
    """Tests for primitive store operations."""

    def test_create_and_get(self, store):
        asset = store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        assert asset.id == derive_asset_id("Mattia", "Pandoro", "D.O.P.")
        assert asset.renew is False
        assert store.get(asset.id) == asset
        assert store.exists(asset.id)

    def test_create_duplicate(self, store):
        store.create("Mattia", "Pandoro", "D.O.P.", PENDING_SENTINEL)
        with pytest.raises(AlreadyExists):
            store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))

    def test_get_missing(self, store):
        with pytest.raises(NotFound) as exc_info:
            store.get("nope")
        assert exc_info.value.asset_id == "nope"

    def test_get_undecodable(self, store, ledger):
        ledger.put("broken", b"{oops")
        with pytest.raises(DecodeError):
            store.get("broken")

    def test_put_overwrites(self, store):
        asset = store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        store.put(asset.evolve(renew=True))
        assert store.get(asset.id).renew is True

    def test_delete(self, store):
        asset = store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        store.delete(asset.id)
        assert not store.exists(asset.id)

    def test_delete_missing(self, store):
        with pytest.raises(NotFound):
            store.delete("nope")

    def test_ledger_failure_is_wrapped(self):
        store = AssetStore(FailingLedger())
        with pytest.raises(LedgerError) as exc_info:
            store.exists("anything")
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestAssetStoreUpdate:
    """Tests for id-changing updates."""

    def test_update_moves_record_to_new_id(self, store, ledger):
        old = store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        new = store.update(old.id, "Mattia", "Panettone", "D.O.P.", date(2028, 1, 1))

        assert new.id == derive_asset_id("Mattia", "Panettone", "D.O.P.")
        assert not store.exists(old.id)
        assert store.get(new.id).expire_date == date(2028, 1, 1)
        assert len(ledger) == 1

    def test_update_same_id_in_place(self, store):
        old = store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        new = store.update(old.id, "Mattia", "Pandoro", "D.O.P.", date(2030, 1, 1))
        assert new.id == old.id
        assert store.get(old.id).expire_date == date(2030, 1, 1)

    def test_update_missing(self, store):
        with pytest.raises(NotFound):
            store.update("nope", "a", "b", "c", date(2027, 1, 1))

    def test_update_refuses_to_clobber(self, store):
        first = store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        second = store.create("Simone", "Cotechino", "I.G.P.", date(2027, 1, 1))

        with pytest.raises(AlreadyExists):
            store.update(first.id, "Simone", "Cotechino", "I.G.P.", date(2030, 1, 1))

        assert store.get(first.id) == first
        assert store.get(second.id) == second

    def test_update_carries_renew_flag(self, store):
        old = store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        store.put(old.evolve(renew=True))
        new = store.update(old.id, "Mattia", "Panettone", "D.O.P.", date(2027, 1, 1))
        assert new.renew is True

    def test_update_to_sentinel_clears_renew(self, store):
        old = store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        store.put(old.evolve(renew=True))
        new = store.update(old.id, "Mattia", "Pandoro", "D.O.P.", PENDING_SENTINEL)
        assert new.renew is False


class TestAssetStoreBulk:
    """Tests for transfer, batch writes and listing."""

    def test_transfer_keeps_key(self, store):
        asset = store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        moved = store.transfer_owner(asset.id, "Simone")
        assert moved.id == asset.id
        assert store.get(asset.id).owner == "Simone"

    def test_transfer_missing(self, store):
        with pytest.raises(NotFound):
            store.transfer_owner("nope", "Simone")

    def test_put_many_and_list_in_key_order(self, store):
        a = store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        b = a.evolve(id=derive_asset_id("x", "y", "z"), owner="x", product="y", cert_type="z")
        c = a.evolve(id=derive_asset_id("u", "v", "w"), owner="u", product="v", cert_type="w")
        store.put_many([b, c])

        listed = store.list_all()
        assert [x.id for x in listed] == sorted([a.id, b.id, c.id])

    def test_list_all_fails_on_corrupt_record(self, store, ledger):
        store.create("Mattia", "Pandoro", "D.O.P.", date(2027, 1, 1))
        ledger.put("zz-corrupt", encode_asset(store.list_all()[0])[:-5])
        with pytest.raises(DecodeError):
            store.list_all()

"""Query and report layer.

Range-scan listings over the full keyspace. Results follow ledger key
order; no extra sort is applied. Display formatting works on decoded
``Asset`` values, never on serialized JSON text.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Dict, List, Optional

from certledger.access import AccessGuard
from certledger.core import utc_now
from certledger.lifecycle import Clock, utc_today
from certledger.models import Asset, AssetState
from certledger.observability import Layer, get_logger, timed_operation
from certledger.store import AssetStore

logger = get_logger("queries", Layer.QUERY)


class CertificateQueries:
    """Listings for sellers (certified) and the authority (all, work queue)."""

    def __init__(self, store: AssetStore, guard: AccessGuard, clock: Clock = utc_now):
        self.store = store
        self.guard = guard
        self.clock = clock

    def _select(self, keep: Callable[[Asset], bool]) -> List[Asset]:
        return [a for a in self.store.list_all() if keep(a)]

    @timed_operation(logger, "list_all")
    def list_all(self, *, credential: Optional[str]) -> List[Asset]:
        """Every record in the ledger, pending requests included."""
        self.guard.require(credential, "list_all")
        return self.store.list_all()

    @timed_operation(logger, "list_certified")
    def list_certified(self) -> List[Asset]:
        """Every asset that has been evaluated, valid or expired."""
        return self._select(lambda a: a.state is not AssetState.PENDING)

    @timed_operation(logger, "list_pending_or_renewal")
    def list_pending_or_renewal(self, *, credential: Optional[str]) -> List[Asset]:
        """The authority's work queue: pending submissions and renewal requests."""
        self.guard.require(credential, "list_pending_or_renewal")
        return self._select(
            lambda a: a.state in (AssetState.PENDING, AssetState.RENEWAL_PENDING)
        )

    def rows(self, assets: List[Asset]) -> List[Dict[str, Any]]:
        today = utc_today(self.clock)
        return [asset_row(a, today) for a in assets]


def asset_row(asset: Asset, today: date) -> Dict[str, Any]:
    """Flat display mapping for one asset."""
    pending = asset.state is AssetState.PENDING
    return {
        "id": asset.id,
        "owner": asset.owner,
        "product": asset.product,
        "cert_type": asset.cert_type,
        "expire_date": "" if pending else asset.expire_date.isoformat(),
        "state": asset.state.value,
        "renew": asset.renew,
        "valid": asset.is_valid(today),
    }


def format_asset(asset: Asset, today: date) -> str:
    """Human-readable multi-line description of one asset."""
    row = asset_row(asset, today)
    if asset.state is AssetState.PENDING:
        status = "awaiting evaluation"
    elif row["valid"]:
        status = f"valid until {row['expire_date']}"
    else:
        status = f"expired on {row['expire_date']}"
    if asset.state is AssetState.RENEWAL_PENDING:
        status += " (renewal requested)"

    return "\n".join([
        f"ID:            {asset.id}",
        f"Owner:         {asset.owner}",
        f"Product:       {asset.product}",
        f"Certification: {asset.cert_type}",
        f"Status:        {status}",
    ])

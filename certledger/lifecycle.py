"""Certificate lifecycle engine.

State machine over Asset records (see ``models.AssetState``):

    submit_product            (absent)          -> PENDING
    evaluate(approve=True)    PENDING           -> CERTIFIED, expires today + validity
    evaluate(approve=False)   PENDING           -> (deleted)
    request_renewal           CERTIFIED         -> RENEWAL_PENDING
    renew_certificate         RENEWAL_PENDING   -> CERTIFIED, expires max(today, old) + validity
    invalidate                any               -> expires yesterday

Privileged operations (evaluate, renew_certificate, invalidate and the
administrative create/update/delete/transfer) pass the access guard before
the ledger is touched. The engine holds no state between calls; every
operation reads the current record from the ledger, checks its
precondition and writes the result back.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterator, List, Optional

from certledger.access import AccessGuard
from certledger.core import utc_now
from certledger.errors import (
    CertLedgerError,
    NoRenewalRequest,
    NotFound,
    NotPending,
    StillPending,
    ValidationError,
)
from certledger.identifiers import derive_asset_id
from certledger.ledger import LedgerGateway
from certledger.models import PENDING_SENTINEL, Asset, AssetState
from certledger.observability import Layer, get_logger, timed_operation
from certledger.store import AssetStore

logger = get_logger("engine", Layer.LIFECYCLE)

DEFAULT_VALIDITY_DAYS = 365

# (owner, product, cert_type, expire_date) loaded by init_ledger
SEED_ASSETS = (
    ("Mattia", "Pandoro", "D.O.P.", date(2023, 12, 25)),
    ("Simone", "Cotechino", "I.G.P.", date(2024, 1, 1)),
    ("Antonella", "Aglianico beneventano", "D.O.C.", date(2023, 4, 9)),
)

Clock = Callable[[], datetime]


def _require_text(field: str, value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "must be a non-empty string", value)
    return value


def state_of(asset: Asset) -> AssetState:
    """Classify an asset as PENDING, CERTIFIED or RENEWAL_PENDING."""
    return asset.state


def utc_today(clock: Clock) -> date:
    """Calendar date of ``clock()`` in UTC; naive datetimes are taken as UTC."""
    now = clock()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(timezone.utc).date()


class LifecycleEngine:
    """Authorization-gated mutations and reads over certification records."""

    def __init__(
        self,
        ledger: LedgerGateway,
        guard: AccessGuard,
        clock: Clock = utc_now,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
    ):
        if validity_days <= 0:
            raise ValidationError("validity_days", "must be positive", validity_days)
        self.store = AssetStore(ledger)
        self.guard = guard
        self.clock = clock
        self.validity = timedelta(days=validity_days)

    @property
    def audit(self):
        return self.guard.audit

    def today(self) -> date:
        return utc_today(self.clock)

    @contextmanager
    def _privileged(
        self,
        operation: str,
        credential: Optional[str],
        resource_id: str = "",
    ) -> Iterator[None]:
        self.guard.require(credential, operation, resource_id)
        try:
            yield
        except CertLedgerError as exc:
            self.audit.record(operation, resource_id, "failure", error_code=exc.error_code)
            raise
        self.audit.record(operation, resource_id, "success")

    # =========================================================================
    # SELLER OPERATIONS (unauthenticated)
    # =========================================================================

    @timed_operation(logger, "submit_product")
    def submit_product(self, owner: str, product: str, cert_type: str) -> str:
        """Queue a product for certification and return its derived id.

        Raises ``AlreadyExists`` while an earlier submission of the same
        fields is pending or certified.
        """
        _require_text("owner", owner)
        _require_text("product", product)
        _require_text("cert_type", cert_type)
        asset = self.store.create(owner, product, cert_type, PENDING_SENTINEL)
        logger.info("Product submitted", asset_id=asset.id, owner=owner, product=product)
        return asset.id

    @timed_operation(logger, "request_renewal")
    def request_renewal(self, asset_id: str) -> Asset:
        _require_text("id", asset_id)
        asset = self.store.get(asset_id)
        if asset.state is AssetState.PENDING:
            raise StillPending(asset_id)

        renewed = asset.evolve(renew=True)
        self.store.put(renewed)
        logger.info("Renewal requested", asset_id=asset_id)
        return renewed

    @timed_operation(logger, "verify")
    def verify(self, asset_id: str) -> bool:
        """True iff the asset exists, is certified and has not expired.

        An unknown id is an ordinary "not valid" answer, not an error.
        """
        if not isinstance(asset_id, str) or not asset_id.strip():
            return False
        try:
            asset = self.store.get(asset_id)
        except NotFound:
            return False
        return asset.is_valid(self.today())

    def read_asset(self, asset_id: str) -> Asset:
        _require_text("id", asset_id)
        return self.store.get(asset_id)

    def asset_exists(self, asset_id: str) -> bool:
        _require_text("id", asset_id)
        return self.store.exists(asset_id)

    # =========================================================================
    # CERTIFIER OPERATIONS (privileged)
    # =========================================================================

    @timed_operation(logger, "evaluate")
    def evaluate(self, asset_id: str, approve: bool, *, credential: Optional[str]) -> Optional[Asset]:
        """Approve or reject a pending submission.

        Approval certifies the asset until today + validity and returns it;
        rejection deletes the record and returns None.
        """
        with self._privileged("evaluate", credential, asset_id):
            _require_text("id", asset_id)
            asset = self.store.get(asset_id)
            if asset.state is not AssetState.PENDING:
                raise NotPending(asset_id)

            if not approve:
                self.store.delete(asset_id)
                logger.info("Submission rejected", asset_id=asset_id)
                return None

            certified = asset.evolve(expire_date=self.today() + self.validity)
            self.store.put(certified)
            logger.info(
                "Submission approved",
                asset_id=asset_id,
                expire_date=certified.expire_date.isoformat(),
            )
            return certified

    @timed_operation(logger, "renew_certificate")
    def renew_certificate(self, asset_id: str, *, credential: Optional[str]) -> Asset:
        """Process an open renewal request.

        The new expiry counts from the later of today and the old expiry,
        so renewing early never shortens a certificate.
        """
        with self._privileged("renew_certificate", credential, asset_id):
            _require_text("id", asset_id)
            asset = self.store.get(asset_id)
            if asset.state is not AssetState.RENEWAL_PENDING:
                raise NoRenewalRequest(asset_id)

            base = max(self.today(), asset.expire_date)
            renewed = asset.evolve(expire_date=base + self.validity, renew=False)
            self.store.put(renewed)
            logger.info(
                "Certificate renewed",
                asset_id=asset_id,
                expire_date=renewed.expire_date.isoformat(),
            )
            return renewed

    @timed_operation(logger, "invalidate")
    def invalidate(self, asset_id: str, *, credential: Optional[str]) -> Asset:
        """Backdate the expiry to yesterday. The record is kept."""
        with self._privileged("invalidate", credential, asset_id):
            _require_text("id", asset_id)
            asset = self.store.get(asset_id)
            invalidated = asset.evolve(expire_date=self.today() - timedelta(days=1))
            self.store.put(invalidated)
            logger.info("Certificate invalidated", asset_id=asset_id)
            return invalidated

    # =========================================================================
    # ADMINISTRATIVE OPERATIONS (privileged)
    # =========================================================================

    @timed_operation(logger, "create_asset")
    def create_asset(
        self,
        owner: str,
        product: str,
        cert_type: str,
        expire_date: date,
        *,
        credential: Optional[str],
    ) -> Asset:
        with self._privileged("create_asset", credential):
            _require_text("owner", owner)
            _require_text("product", product)
            _require_text("cert_type", cert_type)
            return self.store.create(owner, product, cert_type, expire_date)

    @timed_operation(logger, "update_asset")
    def update_asset(
        self,
        asset_id: str,
        owner: str,
        product: str,
        cert_type: str,
        expire_date: date,
        *,
        credential: Optional[str],
    ) -> Asset:
        """Rewrite an asset's fields; the returned asset carries the re-derived id."""
        with self._privileged("update_asset", credential, asset_id):
            _require_text("id", asset_id)
            _require_text("owner", owner)
            _require_text("product", product)
            _require_text("cert_type", cert_type)
            return self.store.update(asset_id, owner, product, cert_type, expire_date)

    @timed_operation(logger, "delete_asset")
    def delete_asset(self, asset_id: str, *, credential: Optional[str]) -> None:
        """Physically remove a record (distinct from ``invalidate``)."""
        with self._privileged("delete_asset", credential, asset_id):
            _require_text("id", asset_id)
            self.store.delete(asset_id)

    @timed_operation(logger, "transfer_asset")
    def transfer_asset(self, asset_id: str, new_owner: str, *, credential: Optional[str]) -> Asset:
        with self._privileged("transfer_asset", credential, asset_id):
            _require_text("id", asset_id)
            _require_text("new_owner", new_owner)
            return self.store.transfer_owner(asset_id, new_owner)

    # =========================================================================
    # BOOTSTRAP
    # =========================================================================

    def init_ledger(self) -> List[Asset]:
        """Write the example assets in one batch.

        Callers decide whether the ledger needs seeding; this overwrites any
        record already stored under a seed id.
        """
        assets = [
            Asset(
                id=derive_asset_id(owner, product, cert_type),
                owner=owner,
                product=product,
                cert_type=cert_type,
                expire_date=expire_date,
            )
            for owner, product, cert_type, expire_date in SEED_ASSETS
        ]
        self.store.put_many(assets)
        logger.info("Ledger seeded", count=len(assets))
        return assets

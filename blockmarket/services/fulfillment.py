"""Fulfillment: turn a confirmed payment into a PAID purchase with licenses.

The service runs inside one database session. Callers open it with
``Database.session()`` so the status change, the license rows and the
sold-count increments commit together or not at all.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from blockmarket.errors import InvalidStateTransition
from blockmarket.logging import get_logger
from blockmarket.logging.audit import AuditLogger
from blockmarket.models.license import License
from blockmarket.models.purchase import Purchase, PurchaseStatus
from blockmarket.services.license_minter import LicenseMinter
from blockmarket.services.purchase_ledger import PurchaseLedger
from blockmarket.storage.postgres_catalog_repo import PostgresCatalogRepository
from blockmarket.storage.postgres_license_repo import PostgresLicenseRepository

logger = get_logger(__name__)


@dataclass
class FulfillmentResult:
    """Purchase state after fulfillment."""

    purchase: Purchase
    licenses: list[License] = field(default_factory=list)
    newly_fulfilled: bool = False


class FulfillmentService:
    """Idempotent PENDING -> PAID transition plus license minting."""

    def __init__(
        self,
        ledger: PurchaseLedger,
        license_repo: PostgresLicenseRepository,
        catalog_repo: PostgresCatalogRepository,
        minter: LicenseMinter | None = None,
    ):
        self.ledger = ledger
        self.license_repo = license_repo
        self.catalog_repo = catalog_repo
        self.minter = minter or LicenseMinter()

    async def fulfill_purchase(
        self,
        purchase_id: UUID,
        payment_reference: str,
        charge_id: Optional[str] = None,
    ) -> FulfillmentResult:
        """
        Mark a purchase PAID and mint one license per line item.

        Safe to call repeatedly and concurrently for the same purchase: the
        row lock and the status-guarded update let exactly one caller mint;
        every other caller gets the existing result back.

        Args:
            purchase_id: Purchase to fulfill
            payment_reference: Gateway payment intent id
            charge_id: Latest charge of the payment intent, if known

        Returns:
            FulfillmentResult; ``newly_fulfilled`` is False on redelivery

        Raises:
            PurchaseNotFound: Unknown purchase
            InvalidStateTransition: Purchase is FAILED or REFUNDED
        """
        purchase = await self.ledger.get_purchase(purchase_id, for_update=True)

        if purchase.status == PurchaseStatus.PAID:
            return await self._already_fulfilled(purchase, payment_reference)

        fields = {
            "paid_at": datetime.utcnow(),
            "external_payment_reference": payment_reference,
        }
        if charge_id:
            fields["stripe_charge_id"] = charge_id

        paid = await self.ledger.transition(
            purchase_id, PurchaseStatus.PAID, expected=purchase.status, **fields
        )
        if paid is None:
            current = await self.ledger.get_purchase(purchase_id)
            if current.status != PurchaseStatus.PAID:
                raise InvalidStateTransition(
                    "Purchase", current.status.value, PurchaseStatus.PAID.value
                )
            return await self._already_fulfilled(current, payment_reference)

        licenses = self.minter.mint_licenses_for_purchase(paid)
        await self.license_repo.create_many(licenses)

        for item in paid.line_items:
            await self.catalog_repo.increment_sold_count(item.block_id, by=item.quantity)

        AuditLogger.log_purchase_paid(
            buyer_id=paid.buyer_id,
            purchase_id=paid.id,
            payment_reference=payment_reference,
            license_count=len(licenses),
        )

        return FulfillmentResult(purchase=paid, licenses=licenses, newly_fulfilled=True)

    async def _already_fulfilled(
        self, purchase: Purchase, payment_reference: str
    ) -> FulfillmentResult:
        if purchase.external_payment_reference != payment_reference:
            logger.warning(
                "fulfillment_payment_reference_mismatch",
                purchase_id=str(purchase.id),
                recorded=purchase.external_payment_reference,
                received=payment_reference,
            )

        AuditLogger.log_duplicate_fulfillment(purchase.id, payment_reference)
        licenses = await self.license_repo.get_by_purchase(purchase.id)
        return FulfillmentResult(purchase=purchase, licenses=licenses, newly_fulfilled=False)

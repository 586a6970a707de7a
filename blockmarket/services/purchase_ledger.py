"""Purchase ledger: pending purchase creation and guarded status transitions."""

from decimal import Decimal
from typing import Any, Iterable, Optional
from uuid import UUID

from blockmarket.errors import EmptyCart, InvalidStateTransition, NoBlocksFound, PurchaseNotFound
from blockmarket.logging import get_logger
from blockmarket.logging.audit import AuditLogger
from blockmarket.models.purchase import LicenseType, LineItem, Purchase, PurchaseStatus
from blockmarket.services.money import from_minor_units, to_minor_units
from blockmarket.services.pricing import FeePolicy, price_checkout
from blockmarket.storage.postgres_catalog_repo import PostgresCatalogRepository
from blockmarket.storage.postgres_license_repo import PostgresLicenseRepository
from blockmarket.storage.postgres_purchase_repo import PostgresPurchaseRepository

logger = get_logger(__name__)


def _unique_in_order(ids: Iterable[UUID]) -> list[UUID]:
    seen: set[UUID] = set()
    unique = []
    for block_id in ids:
        if block_id not in seen:
            seen.add(block_id)
            unique.append(block_id)
    return unique


class PurchaseLedger:
    """Creates pending purchases and owns the status transition primitive."""

    def __init__(
        self,
        catalog_repo: PostgresCatalogRepository,
        purchase_repo: PostgresPurchaseRepository,
        license_repo: PostgresLicenseRepository,
        fee_policy: FeePolicy = FeePolicy(),
    ):
        """
        Initialize purchase ledger.

        Args:
            catalog_repo: Source of block price snapshots
            purchase_repo: Purchase persistence
            license_repo: Used to revoke licenses on refund
            fee_policy: Flat checkout fee
        """
        self.catalog_repo = catalog_repo
        self.purchase_repo = purchase_repo
        self.license_repo = license_repo
        self.fee_policy = fee_policy

    async def create_pending_purchase(
        self,
        buyer_id: str,
        block_ids: Iterable[UUID],
        license_type: LicenseType = LicenseType.PERSONAL,
    ) -> Purchase:
        """
        Price the cart at current catalog prices and persist a PENDING purchase.

        Args:
            buyer_id: Requester's user id
            block_ids: Blocks to buy; repeated ids count once
            license_type: License tier applied to every line item

        Returns:
            The persisted Purchase

        Raises:
            EmptyCart: No block ids
            NoBlocksFound: Some or all ids are unknown or not purchasable
            CurrencyMismatch: Blocks priced in different currencies
        """
        requested = _unique_in_order(block_ids)
        if not requested:
            raise EmptyCart()

        quotes = {block.id: block for block in await self.catalog_repo.get_blocks_by_ids(requested)}
        if not quotes:
            raise NoBlocksFound()

        missing = [block_id for block_id in requested if block_id not in quotes]
        if missing:
            raise NoBlocksFound(missing)

        blocks = [quotes[block_id] for block_id in requested]
        pricing = price_checkout(blocks, self.fee_policy)

        purchase = Purchase(
            buyer_id=buyer_id,
            status=PurchaseStatus.PENDING,
            currency=pricing.currency,
            line_items=[
                LineItem(
                    block_id=block.id,
                    unit_price=from_minor_units(to_minor_units(block.price)),
                    license_type=license_type,
                )
                for block in blocks
            ],
            subtotal_amount=pricing.subtotal,
            platform_fee_amount=pricing.platform_fee,
            total_amount=pricing.total,
        )
        await self.purchase_repo.create(purchase)

        AuditLogger.log_purchase_created(
            buyer_id=buyer_id,
            purchase_id=purchase.id,
            total_amount=purchase.total_amount,
            currency=purchase.currency,
            item_count=len(purchase.line_items),
        )

        return purchase

    async def get_purchase(self, purchase_id: UUID, for_update: bool = False) -> Purchase:
        purchase = await self.purchase_repo.get_by_id(purchase_id, for_update=for_update)
        if purchase is None:
            raise PurchaseNotFound(purchase_id)
        return purchase

    async def transition(
        self,
        purchase_id: UUID,
        target: PurchaseStatus,
        expected: Optional[PurchaseStatus] = None,
        **fields: Any,
    ) -> Optional[Purchase]:
        """
        Move a purchase to ``target`` if the state machine allows it.

        Args:
            purchase_id: Purchase to move
            target: New status
            expected: Status the caller already observed; read from the
                repository when omitted
            **fields: Columns set together with the status

        Returns:
            The updated Purchase, or None when a concurrent writer changed the
            status between the check and the update

        Raises:
            PurchaseNotFound: Unknown purchase
            InvalidStateTransition: No edge from the current status to ``target``
        """
        if expected is None:
            expected = (await self.get_purchase(purchase_id)).status
        expected.transition_to(target)

        transitioned = await self.purchase_repo.transition_status(
            purchase_id, expected, target, **fields
        )
        if not transitioned:
            logger.info(
                "purchase_transition_lost_race",
                purchase_id=str(purchase_id),
                target=target.value,
            )
            return None

        return await self.get_purchase(purchase_id)

    async def mark_failed(self, purchase_id: UUID, reason: str = "payment_failed") -> Purchase:
        """PENDING -> FAILED. A purchase that is already FAILED is returned unchanged."""
        purchase = await self.get_purchase(purchase_id)
        if purchase.status == PurchaseStatus.FAILED:
            return purchase

        updated = await self.transition(
            purchase_id, PurchaseStatus.FAILED, expected=purchase.status
        )
        if updated is None:
            updated = await self.get_purchase(purchase_id)
            if updated.status != PurchaseStatus.FAILED:
                raise InvalidStateTransition(
                    "Purchase", updated.status.value, PurchaseStatus.FAILED.value
                )
            return updated

        AuditLogger.log_purchase_failed(purchase_id, reason)
        return updated

    async def mark_refunded(self, purchase_id: UUID) -> Purchase:
        """PAID -> REFUNDED and revoke the purchase's licenses."""
        purchase = await self.get_purchase(purchase_id)
        if purchase.status == PurchaseStatus.REFUNDED:
            return purchase

        updated = await self.transition(
            purchase_id, PurchaseStatus.REFUNDED, expected=purchase.status
        )
        if updated is None:
            updated = await self.get_purchase(purchase_id)
            if updated.status != PurchaseStatus.REFUNDED:
                raise InvalidStateTransition(
                    "Purchase", updated.status.value, PurchaseStatus.REFUNDED.value
                )
            return updated

        revoked = await self.license_repo.revoke_for_purchase(purchase_id)
        AuditLogger.log_purchase_refunded(purchase_id, revoked)
        return updated

    async def attach_checkout_session(self, purchase_id: UUID, session_id: str) -> None:
        if not await self.purchase_repo.update_informational(
            purchase_id, checkout_session_id=session_id
        ):
            raise PurchaseNotFound(purchase_id)

    async def record_stripe_fee(self, purchase_id: UUID, amount: Decimal) -> None:
        """Store the gateway's processing fee; informational, any status."""
        fee = from_minor_units(to_minor_units(amount))
        if fee < 0:
            raise ValueError("Stripe fee cannot be negative")

        if not await self.purchase_repo.update_informational(
            purchase_id, stripe_fee_amount=fee
        ):
            raise PurchaseNotFound(purchase_id)

        logger.info(
            "stripe_fee_recorded",
            purchase_id=str(purchase_id),
            amount=str(fee),
        )

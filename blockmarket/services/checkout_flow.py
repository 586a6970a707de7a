"""Checkout flow orchestration service.

Creates the pending purchase and the hosted checkout session the buyer is
redirected to. Both happen in the caller's unit of work, so a gateway
failure leaves no pending purchase behind.
"""

from dataclasses import dataclass
from typing import Iterable
from uuid import UUID

from blockmarket.logging import get_logger
from blockmarket.models.purchase import LicenseType, Purchase
from blockmarket.services.purchase_ledger import PurchaseLedger
from blockmarket.services.stripe_gateway import StripeCheckoutService
from blockmarket.storage.postgres_catalog_repo import PostgresCatalogRepository

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    """Result of checkout flow."""

    purchase: Purchase
    checkout_url: str


class CheckoutFlowService:
    """Orchestrates checkout: pricing, persistence and the payment session."""

    def __init__(
        self,
        ledger: PurchaseLedger,
        catalog_repo: PostgresCatalogRepository,
        stripe_service: StripeCheckoutService,
    ):
        """
        Initialize checkout flow service.

        Args:
            ledger: Creates the pending purchase
            catalog_repo: Block titles for the payment page
            stripe_service: Hosted checkout sessions
        """
        self.ledger = ledger
        self.catalog_repo = catalog_repo
        self.stripe_service = stripe_service

    async def create_checkout(
        self,
        buyer_id: str,
        block_ids: Iterable[UUID],
        license_type: LicenseType = LicenseType.PERSONAL,
    ) -> CheckoutResult:
        """
        Create a pending purchase and its checkout session.

        Args:
            buyer_id: Requester's user id
            block_ids: Blocks in the cart
            license_type: License tier for every line item

        Returns:
            CheckoutResult with the pending purchase and the redirect URL
        """
        purchase = await self.ledger.create_pending_purchase(buyer_id, block_ids, license_type)

        blocks = await self.catalog_repo.get_blocks_by_ids(
            purchase.block_ids, purchasable_only=False
        )
        titles = {block.id: block.title for block in blocks}

        session_id, checkout_url = await self.stripe_service.create_checkout_session(
            purchase, titles
        )
        await self.ledger.attach_checkout_session(purchase.id, session_id)
        purchase = purchase.model_copy(update={"checkout_session_id": session_id})

        logger.info(
            "checkout_created",
            purchase_id=str(purchase.id),
            buyer_id=buyer_id,
            total=str(purchase.total_amount),
        )

        return CheckoutResult(purchase=purchase, checkout_url=checkout_url)

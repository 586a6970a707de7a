"""Service wiring shared by the HTTP handlers."""

from dataclasses import dataclass, field
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, Header, Request

from blockmarket.config.settings import Settings
from blockmarket.errors import AuthenticationRequired
from blockmarket.models.payout import PayoutReport
from blockmarket.security.permissions import PermissionChecker
from blockmarket.services.checkout_flow import CheckoutFlowService
from blockmarket.services.fulfillment import FulfillmentService
from blockmarket.services.license_minter import LicenseMinter
from blockmarket.services.payout_aggregator import PayoutAggregator, TransferGateway, payout_lock
from blockmarket.services.pricing import FeePolicy
from blockmarket.services.purchase_ledger import PurchaseLedger
from blockmarket.services.stripe_gateway import StripeCheckoutService
from blockmarket.storage.database import Database
from blockmarket.storage.redis_locks import RedisLockHelper
from blockmarket.storage.repositories import Repositories


@dataclass
class AppServices:
    """Process-wide collaborators, built once by the application lifespan.

    Per-request services are built from a ``Repositories`` bundle so they
    share that request's session.
    """

    settings: Settings
    database: Database
    checkout_service: StripeCheckoutService
    transfer_gateway: TransferGateway
    lock_helper: Optional[RedisLockHelper] = None
    permission_checker: PermissionChecker = field(default_factory=PermissionChecker)
    minter: LicenseMinter = field(default_factory=LicenseMinter)

    @property
    def fee_policy(self) -> FeePolicy:
        return FeePolicy(rate_bps=self.settings.platform_fee_bps)

    def ledger(self, repos: Repositories) -> PurchaseLedger:
        return PurchaseLedger(repos.catalog, repos.purchases, repos.licenses, self.fee_policy)

    def fulfillment(self, repos: Repositories) -> FulfillmentService:
        return FulfillmentService(self.ledger(repos), repos.licenses, repos.catalog, self.minter)

    def payout_aggregator(self, repos: Repositories) -> PayoutAggregator:
        return PayoutAggregator(repos.purchases, repos.payouts, self.transfer_gateway)

    async def payout_creators(self, purchase_id: UUID) -> PayoutReport:
        """Run payouts in their own transaction, committed before the payout lock is released."""
        async with payout_lock(self.lock_helper, purchase_id):
            async with self.database.session() as session:
                return await self.payout_aggregator(
                    Repositories.for_session(session)
                ).payout_creators_for_purchase(purchase_id)

    def checkout_flow(self, repos: Repositories) -> CheckoutFlowService:
        return CheckoutFlowService(self.ledger(repos), repos.catalog, self.checkout_service)


def get_services(request: Request) -> AppServices:
    return request.app.state.services


async def get_requester_id(
    x_user_id: Annotated[Optional[str], Header(alias="X-User-Id")] = None,
) -> str:
    """Requester identity, set by the authentication layer in front of the API."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationRequired()
    return x_user_id.strip()


Services = Annotated[AppServices, Depends(get_services)]
RequesterId = Annotated[str, Depends(get_requester_id)]

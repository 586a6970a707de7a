"""Purchase detail endpoint."""

from uuid import UUID

from fastapi import APIRouter

from blockmarket.api.dependencies import RequesterId, Services
from blockmarket.errors import PermissionDenied
from blockmarket.handlers.purchasing.schemas import PurchaseResponse
from blockmarket.logging.audit import AuditLogger
from blockmarket.storage.repositories import Repositories

router = APIRouter()


@router.get("/purchases/{purchase_id}", response_model=PurchaseResponse)
async def get_purchase(
    purchase_id: UUID,
    requester_id: RequesterId,
    services: Services,
) -> PurchaseResponse:
    """Purchase with line items and licenses; visible to its buyer only."""
    async with services.database.session() as session:
        repos = Repositories.for_session(session)
        purchase = await services.ledger(repos).get_purchase(purchase_id)

        if not services.permission_checker.can_view_purchase(requester_id, purchase):
            AuditLogger.log_permission_denied(
                actor_id=requester_id,
                resource_type="purchase",
                resource_id=purchase_id,
                attempted_action="view_purchase",
            )
            raise PermissionDenied()

        licenses = await repos.licenses.get_by_purchase(purchase_id)

    return PurchaseResponse.from_domain(purchase, licenses)

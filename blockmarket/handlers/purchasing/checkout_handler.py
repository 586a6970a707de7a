"""Checkout endpoint: price the cart and open a payment session."""

from fastapi import APIRouter, status

from blockmarket.api.dependencies import RequesterId, Services
from blockmarket.handlers.purchasing.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    PurchaseResponse,
)
from blockmarket.logging import get_logger
from blockmarket.storage.repositories import Repositories

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_checkout(
    body: CheckoutRequest,
    buyer_id: RequesterId,
    services: Services,
) -> CheckoutResponse:
    """
    Create a pending purchase for the cart and return the payment page URL.

    Empty carts, unknown or unpublished blocks and mixed currencies are
    rejected with 400.
    """
    logger.info(
        "checkout_requested",
        buyer_id=buyer_id,
        block_count=len(body.block_ids),
        license_type=body.license_type.value,
    )

    async with services.database.session() as session:
        repos = Repositories.for_session(session)
        result = await services.checkout_flow(repos).create_checkout(
            buyer_id, body.block_ids, body.license_type
        )

    return CheckoutResponse(
        purchase=PurchaseResponse.from_domain(result.purchase),
        checkout_url=result.checkout_url,
    )

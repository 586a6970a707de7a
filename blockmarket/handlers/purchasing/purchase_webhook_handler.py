"""Stripe webhook endpoint and event processing.

Every delivery is recorded in the webhook event ledger before it is acted
on. Events already PROCESSED or IGNORED are acknowledged without work;
RECEIVED and FAILED events are processed again on redelivery, which is safe
because fulfillment and payouts are idempotent.
"""

from dataclasses import dataclass, field
from typing import Annotated, Any, Optional
from uuid import UUID

import stripe
from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from blockmarket.api.dependencies import AppServices, Services
from blockmarket.errors import ConflictError, InvalidStateTransition, PayoutError, PurchaseNotFound
from blockmarket.logging import get_logger
from blockmarket.logging.audit import AuditLogger
from blockmarket.models.webhook_event import WebhookEventStatus
from blockmarket.services.stripe_gateway import PURCHASE_ID_KEY, verify_webhook
from blockmarket.storage.repositories import Repositories

logger = get_logger(__name__)

router = APIRouter()

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_FAILURE_EVENTS = frozenset(
    {
        "checkout.session.async_payment_failed",
        "checkout.session.expired",
        "payment_intent.payment_failed",
    }
)


@dataclass
class WebhookOutcome:
    """Response body plus the ledger status the event ends in."""

    body: dict[str, Any] = field(default_factory=lambda: {"received": True})
    event_status: WebhookEventStatus = WebhookEventStatus.PROCESSED
    error: Optional[str] = None
    status_code: int = 200


async def handle_stripe_event(event: dict[str, Any], services: AppServices) -> WebhookOutcome:
    """
    Process one verified Stripe event.

    Args:
        event: Decoded event payload
        services: Application services

    Returns:
        WebhookOutcome; ``status_code`` 500 asks Stripe to redeliver
    """
    event_id = event["id"]
    event_type = event["type"]

    logger.info("stripe_webhook_received", event_type=event_type, event_id=event_id)

    async with services.database.session() as session:
        recorded, _ = await Repositories.for_session(session).webhook_events.register(
            event_id, event_type, event.get("data", {})
        )

    if recorded.status.is_settled:
        logger.info("stripe_webhook_duplicate", event_id=event_id, status=recorded.status.value)
        return WebhookOutcome(body={"received": True, "idempotent": True})

    try:
        if event_type == CHECKOUT_COMPLETED:
            outcome = await _handle_checkout_completed(event, services)
        elif event_type in PAYMENT_FAILURE_EVENTS:
            outcome = await _handle_payment_failed(event, services)
        else:
            logger.info("stripe_webhook_ignored", event_type=event_type)
            outcome = WebhookOutcome(
                body={"received": True, "ignored": True},
                event_status=WebhookEventStatus.IGNORED,
            )

    except ConflictError as e:
        # Redelivery cannot fix a purchase that is already FAILED or REFUNDED
        logger.error(
            "stripe_webhook_conflict",
            event_id=event_id,
            event_type=event_type,
            error=str(e),
        )
        outcome = WebhookOutcome(
            body={"received": True, "conflict": True},
            event_status=WebhookEventStatus.FAILED,
            error=str(e),
        )

    except Exception as e:
        logger.error(
            "stripe_webhook_processing_failed",
            event_id=event_id,
            event_type=event_type,
            error=str(e),
            exc_info=True,
        )
        outcome = WebhookOutcome(
            body={"received": False, "message": str(e)},
            event_status=WebhookEventStatus.FAILED,
            error=str(e),
            status_code=500,
        )

    async with services.database.session() as session:
        await Repositories.for_session(session).webhook_events.mark(
            event_id, outcome.event_status, error=outcome.error
        )

    return outcome


def _purchase_id_from(obj: dict[str, Any]) -> Optional[UUID]:
    raw = (obj.get("metadata") or {}).get(PURCHASE_ID_KEY)
    if not raw:
        return None
    return UUID(raw)


async def _handle_checkout_completed(event: dict[str, Any], services: AppServices) -> WebhookOutcome:
    """Fulfill the purchase, then pay its creators."""
    checkout_session = event["data"]["object"]

    purchase_id = _purchase_id_from(checkout_session)
    if purchase_id is None:
        raise ValueError("Missing purchaseId in session metadata")

    payment_intent_id = checkout_session.get("payment_intent")
    if not isinstance(payment_intent_id, str) or not payment_intent_id:
        raise ValueError("Missing payment_intent in session")

    charge_id = await services.checkout_service.retrieve_latest_charge(payment_intent_id)

    async with services.database.session() as session:
        repos = Repositories.for_session(session)
        await services.ledger(repos).attach_checkout_session(purchase_id, checkout_session["id"])
        result = await services.fulfillment(repos).fulfill_purchase(
            purchase_id, payment_intent_id, charge_id
        )

    logger.info(
        "checkout_completed",
        purchase_id=str(purchase_id),
        session_id=checkout_session["id"],
        newly_fulfilled=result.newly_fulfilled,
        license_count=len(result.licenses),
    )

    body: dict[str, Any] = {
        "received": True,
        "purchaseId": str(purchase_id),
        "newlyFulfilled": result.newly_fulfilled,
    }

    try:
        report = await services.payout_creators(purchase_id)
    except PayoutError as e:
        # The buyer's side succeeded; payouts need an operator
        logger.error("creator_payout_failed", purchase_id=str(purchase_id), error=str(e))
        AuditLogger.log_payout_failed(purchase_id, str(e))
        body["payoutFailed"] = True
        return WebhookOutcome(body=body, event_status=WebhookEventStatus.FAILED, error=str(e))

    body["transfers"] = report.transfer_count
    return WebhookOutcome(body=body)


async def _handle_payment_failed(event: dict[str, Any], services: AppServices) -> WebhookOutcome:
    """Mark the purchase FAILED when Stripe reports a declined or abandoned payment."""
    obj = event["data"]["object"]

    purchase_id = _purchase_id_from(obj)
    if purchase_id is None:
        logger.warning("payment_failure_without_purchase", event_id=event["id"])
        return WebhookOutcome()

    try:
        async with services.database.session() as session:
            await services.ledger(Repositories.for_session(session)).mark_failed(
                purchase_id, reason=event["type"]
            )
    except InvalidStateTransition as e:
        logger.info(
            "payment_failure_ignored",
            purchase_id=str(purchase_id),
            reason=str(e),
        )
    except PurchaseNotFound:
        logger.warning("payment_failure_unknown_purchase", purchase_id=str(purchase_id))

    return WebhookOutcome(body={"received": True, "purchaseId": str(purchase_id)})


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    services: Services,
    stripe_signature: Annotated[Optional[str], Header(alias="Stripe-Signature")] = None,
) -> JSONResponse:
    """Verify the Stripe signature and process the event."""
    if not stripe_signature:
        return JSONResponse({"message": "Missing Stripe-Signature"}, status_code=400)

    payload = await request.body()
    try:
        event = verify_webhook(payload, stripe_signature, services.settings.stripe_webhook_secret)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning("stripe_webhook_rejected", error=str(e))
        return JSONResponse({"message": "Invalid Stripe signature"}, status_code=400)

    outcome = await handle_stripe_event(event, services)
    return JSONResponse(outcome.body, status_code=outcome.status_code)

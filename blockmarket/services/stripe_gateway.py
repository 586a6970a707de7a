"""Stripe adapters: checkout sessions, payment lookups, transfers and webhooks."""

import asyncio
import json
from typing import Any, Mapping, Optional
from uuid import UUID

import stripe

from blockmarket.logging import get_logger
from blockmarket.models.payout import TransferRecord
from blockmarket.models.purchase import Purchase
from blockmarket.services.money import to_minor_units

logger = get_logger(__name__)

PURCHASE_ID_KEY = "purchaseId"
BUYER_ID_KEY = "buyerId"
CREATOR_ID_KEY = "creatorId"


def configure_stripe(secret_key: str) -> None:
    stripe.api_key = secret_key


def verify_webhook(payload: bytes, signature: str, secret: str) -> dict[str, Any]:
    """
    Check the Stripe-Signature header and return the decoded event.

    Raises:
        stripe.SignatureVerificationError: Signature does not match
        ValueError: Payload is not valid JSON
    """
    stripe.Webhook.construct_event(payload, signature, secret)
    return json.loads(payload)


class StripeCheckoutService:
    """Service for creating Stripe checkout sessions."""

    def __init__(self, secret_key: str, success_url: str, cancel_url: str):
        """Initialize Stripe service."""
        configure_stripe(secret_key)
        self.success_url = success_url
        self.cancel_url = cancel_url

    async def create_checkout_session(
        self,
        purchase: Purchase,
        titles: Mapping[UUID, str],
    ) -> tuple[str, str]:
        """
        Create a hosted checkout session for a pending purchase.

        Each block is charged at its snapshot price and the platform fee is
        a separate line, so the session total equals ``purchase.total_amount``.

        Returns:
            (session_id, checkout_url)
        """
        currency = purchase.currency.lower()
        line_items = [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": titles.get(item.block_id) or f"Block {item.block_id}"},
                    "unit_amount": to_minor_units(item.unit_price),
                },
                "quantity": item.quantity,
            }
            for item in purchase.line_items
        ]
        fee_minor = to_minor_units(purchase.platform_fee_amount)
        if fee_minor > 0:
            line_items.append(
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": "Platform fee"},
                        "unit_amount": fee_minor,
                    },
                    "quantity": 1,
                }
            )

        metadata = {
            PURCHASE_ID_KEY: str(purchase.id),
            BUYER_ID_KEY: purchase.buyer_id,
        }

        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            mode="payment",
            payment_method_types=["card"],
            line_items=line_items,
            payment_intent_data={
                "transfer_group": str(purchase.id),
                "metadata": metadata,
            },
            success_url=f"{self.success_url}?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=self.cancel_url,
            metadata=metadata,
            idempotency_key=f"checkout-{purchase.id}",
        )

        if not session.url:
            raise RuntimeError("Stripe session URL missing")

        logger.info(
            "stripe_checkout_session_created",
            purchase_id=str(purchase.id),
            session_id=session.id,
        )

        return session.id, session.url

    async def retrieve_latest_charge(self, payment_intent_id: str) -> Optional[str]:
        """Id of the most recent charge of a payment intent."""
        intent = await asyncio.to_thread(stripe.PaymentIntent.retrieve, payment_intent_id)
        latest_charge = intent.get("latest_charge")
        if isinstance(latest_charge, Mapping):
            return latest_charge.get("id")
        return latest_charge


def _destination_id(destination: Any) -> str:
    if isinstance(destination, str):
        return destination
    if destination is None:
        return ""
    return destination.get("id", "") if isinstance(destination, Mapping) else ""


def _to_record(transfer: Mapping[str, Any]) -> TransferRecord:
    return TransferRecord(
        id=transfer["id"],
        amount=transfer["amount"],
        currency=str(transfer["currency"]).upper(),
        destination=_destination_id(transfer.get("destination")),
    )


class StripeTransferGateway:
    """Connect transfers from the platform balance to creator accounts."""

    def __init__(self, secret_key: str):
        configure_stripe(secret_key)

    async def create_transfer(
        self,
        amount_minor: int,
        currency: str,
        destination: str,
        group_key: str,
        metadata: Mapping[str, str],
        idempotency_key: Optional[str] = None,
    ) -> TransferRecord:
        transfer = await asyncio.to_thread(
            stripe.Transfer.create,
            amount=amount_minor,
            currency=currency.lower(),
            destination=destination,
            transfer_group=group_key,
            metadata=dict(metadata),
            idempotency_key=idempotency_key,
        )

        logger.info(
            "stripe_transfer_created",
            transfer_id=transfer["id"],
            group_key=group_key,
            amount_minor=amount_minor,
        )

        return _to_record(transfer)

    async def list_transfers_by_group(self, group_key: str) -> list[TransferRecord]:
        """All transfers tagged with ``group_key``, across every result page."""

        def _list() -> list[TransferRecord]:
            page = stripe.Transfer.list(transfer_group=group_key, limit=100)
            return [_to_record(transfer) for transfer in page.auto_paging_iter()]

        return await asyncio.to_thread(_list)

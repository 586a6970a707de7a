"""Models package - Pydantic domain models."""

from .block import BlockQuote, BlockStatus, CreatorAccount, StripeAccountStatus
from .license import DeliveryStatus, License, LicenseStatus, LicenseSummary
from .payout import CreatorPayout, Payout, PayoutReport, TransferRecord
from .purchase import LicenseType, LineItem, Purchase, PurchaseStatus
from .webhook_event import WebhookEvent, WebhookEventStatus

__all__ = [
    "BlockQuote",
    "BlockStatus",
    "CreatorAccount",
    "StripeAccountStatus",
    "DeliveryStatus",
    "License",
    "LicenseStatus",
    "LicenseSummary",
    "CreatorPayout",
    "Payout",
    "PayoutReport",
    "TransferRecord",
    "LicenseType",
    "LineItem",
    "Purchase",
    "PurchaseStatus",
    "WebhookEvent",
    "WebhookEventStatus",
]

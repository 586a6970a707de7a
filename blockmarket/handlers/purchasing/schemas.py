"""Request and response bodies for the purchase endpoints (camelCase on the wire)."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from blockmarket.models.license import License, LicenseSummary
from blockmarket.models.purchase import LicenseType, Purchase


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckoutRequest(CamelModel):
    """Cart submitted by the buyer."""

    block_ids: list[UUID]
    license_type: LicenseType = LicenseType.PERSONAL


class LineItemResponse(CamelModel):
    id: UUID
    block_id: UUID
    unit_price: Decimal
    license_type: LicenseType
    quantity: int


class LicenseResponse(CamelModel):
    id: UUID
    block_id: UUID
    type: LicenseType
    status: str
    delivery_status: str
    delivery_ready_at: Optional[datetime] = None
    transaction_hash: str
    created_at: datetime

    @classmethod
    def from_domain(cls, lic: License) -> "LicenseResponse":
        return cls(
            id=lic.id,
            block_id=lic.block_id,
            type=lic.type,
            status=lic.status.value,
            delivery_status=lic.delivery_status.value,
            delivery_ready_at=lic.delivery_ready_at,
            transaction_hash=lic.transaction_hash,
            created_at=lic.created_at,
        )


class PurchaseResponse(CamelModel):
    """Purchase with its line items and minted licenses."""

    id: UUID
    status: str
    currency: str
    subtotal_amount: Decimal
    platform_fee_amount: Decimal
    total_amount: Decimal
    paid_at: Optional[datetime] = None
    items: list[LineItemResponse]
    licenses: list[LicenseResponse] = []

    @classmethod
    def from_domain(
        cls, purchase: Purchase, licenses: list[License] | None = None
    ) -> "PurchaseResponse":
        return cls(
            id=purchase.id,
            status=purchase.status.value,
            currency=purchase.currency,
            subtotal_amount=purchase.subtotal_amount,
            platform_fee_amount=purchase.platform_fee_amount,
            total_amount=purchase.total_amount,
            paid_at=purchase.paid_at,
            items=[
                LineItemResponse(
                    id=item.id,
                    block_id=item.block_id,
                    unit_price=item.unit_price,
                    license_type=item.license_type,
                    quantity=item.quantity,
                )
                for item in purchase.line_items
            ],
            licenses=[LicenseResponse.from_domain(lic) for lic in licenses or []],
        )


class CheckoutResponse(CamelModel):
    purchase: PurchaseResponse
    checkout_url: str


class LicensedBlock(CamelModel):
    id: UUID
    title: str
    slug: str


class LicensePurchase(CamelModel):
    id: UUID
    status: str
    paid_at: Optional[datetime] = None


class LicenseListItem(CamelModel):
    """One entry of the buyer's license library."""

    id: UUID
    type: LicenseType
    status: str
    delivery_status: str
    created_at: datetime
    block: LicensedBlock
    purchase: LicensePurchase

    @classmethod
    def from_summary(cls, summary: LicenseSummary) -> "LicenseListItem":
        lic = summary.license
        return cls(
            id=lic.id,
            type=lic.type,
            status=lic.status.value,
            delivery_status=lic.delivery_status.value,
            created_at=lic.created_at,
            block=LicensedBlock(id=lic.block_id, title=summary.block_title, slug=summary.block_slug),
            purchase=LicensePurchase(
                id=lic.purchase_id,
                status=summary.purchase_status,
                paid_at=summary.purchase_paid_at,
            ),
        )

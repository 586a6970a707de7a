"""Purchase domain models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from blockmarket.errors import InvalidStateTransition


class PurchaseStatus(str, Enum):
    """Purchase lifecycle status.

    PENDING -> PAID -> REFUNDED, or PENDING -> FAILED. ``transition_to`` is
    the only place that decides whether a status change is legal.
    """

    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return not _PURCHASE_TRANSITIONS[self]

    def can_transition_to(self, target: "PurchaseStatus") -> bool:
        return target in _PURCHASE_TRANSITIONS[self]

    def transition_to(self, target: "PurchaseStatus") -> "PurchaseStatus":
        """Return ``target`` if the edge exists, raise InvalidStateTransition otherwise."""
        if not self.can_transition_to(target):
            raise InvalidStateTransition("Purchase", self.value, target.value)
        return target


_PURCHASE_TRANSITIONS: dict[PurchaseStatus, frozenset[PurchaseStatus]] = {
    PurchaseStatus.PENDING: frozenset({PurchaseStatus.PAID, PurchaseStatus.FAILED}),
    PurchaseStatus.PAID: frozenset({PurchaseStatus.REFUNDED}),
    PurchaseStatus.REFUNDED: frozenset(),
    PurchaseStatus.FAILED: frozenset(),
}


class LicenseType(str, Enum):
    """License tiers a buyer can purchase."""

    PERSONAL = "PERSONAL"
    TEAM = "TEAM"
    ENTERPRISE = "ENTERPRISE"


class LineItem(BaseModel):
    """Priced snapshot of one purchased block (value object)."""

    id: UUID = Field(default_factory=uuid4)
    block_id: UUID
    unit_price: Decimal = Field(ge=0)
    license_type: LicenseType = LicenseType.PERSONAL
    quantity: int = Field(default=1, gt=0)


class Purchase(BaseModel):
    """Purchase aggregate root."""

    id: UUID = Field(default_factory=uuid4)
    buyer_id: str = Field(min_length=1)
    status: PurchaseStatus = PurchaseStatus.PENDING
    currency: str = Field(default="USD", min_length=3, max_length=3)
    line_items: list[LineItem] = Field(min_length=1)
    subtotal_amount: Decimal = Field(ge=0)
    platform_fee_amount: Decimal = Field(ge=0)
    stripe_fee_amount: Decimal = Field(default=Decimal("0"), ge=0)
    total_amount: Decimal = Field(ge=0)
    external_payment_reference: Optional[str] = None
    stripe_charge_id: Optional[str] = None
    checkout_session_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("total_amount")
    @classmethod
    def validate_total(cls, v: Decimal, info) -> Decimal:
        """Ensure total equals subtotal plus platform fee."""
        values = info.data
        if "subtotal_amount" in values and "platform_fee_amount" in values:
            expected = values["subtotal_amount"] + values["platform_fee_amount"]
            if v != expected:
                raise ValueError(
                    f"total_amount {v} does not match subtotal + platform fee {expected}"
                )
        return v

    @property
    def block_ids(self) -> list[UUID]:
        return [item.block_id for item in self.line_items]

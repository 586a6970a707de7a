"""Catalog snapshots consumed by the purchase core."""

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class BlockStatus(str, Enum):
    """Catalog publication status."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class StripeAccountStatus(str, Enum):
    """Connected account onboarding status."""

    PENDING = "PENDING"
    ENABLED = "ENABLED"
    RESTRICTED = "RESTRICTED"
    DISABLED = "DISABLED"


class CreatorAccount(BaseModel):
    """Payout destination of a block's creator."""

    id: UUID
    stripe_account_id: Optional[str] = None
    stripe_account_status: StripeAccountStatus = StripeAccountStatus.PENDING

    @property
    def can_receive_payouts(self) -> bool:
        return (
            self.stripe_account_status == StripeAccountStatus.ENABLED
            and bool(self.stripe_account_id)
        )


class BlockQuote(BaseModel):
    """Price snapshot of a block at the moment it is read from the catalog."""

    id: UUID
    title: str = ""
    price: Decimal = Field(ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    platform_fee_bps: int = 0
    creator: CreatorAccount

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()

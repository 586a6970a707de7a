"""License domain models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from blockmarket.errors import InvalidStateTransition
from blockmarket.models.purchase import LicenseType


class LicenseStatus(str, Enum):
    """License validity."""

    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"

    def transition_to(self, target: "LicenseStatus") -> "LicenseStatus":
        if not (self == LicenseStatus.ACTIVE and target == LicenseStatus.REVOKED):
            raise InvalidStateTransition("License", self.value, target.value)
        return target


class DeliveryStatus(str, Enum):
    """Whether the buyer can download the licensed block."""

    NOT_READY = "NOT_READY"
    READY = "READY"
    REVOKED = "REVOKED"


class License(BaseModel):
    """Right of a buyer to use one block, minted on fulfillment."""

    id: UUID = Field(default_factory=uuid4)
    purchase_id: UUID
    buyer_id: str
    block_id: UUID
    type: LicenseType
    status: LicenseStatus = LicenseStatus.ACTIVE
    delivery_status: DeliveryStatus = DeliveryStatus.NOT_READY
    delivery_ready_at: Optional[datetime] = None
    transaction_hash: str = Field(min_length=64, max_length=64, pattern=r"^[0-9a-f]{64}$")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class LicenseSummary(BaseModel):
    """License joined with its block and purchase, for buyer listings."""

    license: License
    block_title: str
    block_slug: str
    purchase_status: str
    purchase_paid_at: Optional[datetime] = None

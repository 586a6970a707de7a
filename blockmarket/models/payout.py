"""Payout domain models."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Payout(BaseModel):
    """Recorded fund transfer from the platform to a creator."""

    id: UUID = Field(default_factory=uuid4)
    creator_id: UUID
    purchase_id: UUID
    currency: str = Field(min_length=3, max_length=3)
    amount: Decimal = Field(ge=0)
    external_transfer_reference: str
    period_start: datetime
    period_end: datetime
    paid_at: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TransferRecord(BaseModel):
    """Transfer as reported by the transfer gateway."""

    id: str
    amount: int
    currency: str
    destination: str


@dataclass
class CreatorPayout:
    """Net amount owed to one creator for one purchase."""

    creator_id: UUID
    destination: str
    currency: str
    amount_minor: int = 0
    block_ids: list[UUID] = field(default_factory=list)


@dataclass
class PayoutReport:
    """Outcome of one payout run."""

    purchase_id: UUID
    transferred: list[Payout] = field(default_factory=list)
    skipped_creator_ids: list[UUID] = field(default_factory=list)
    backfilled: list[Payout] = field(default_factory=list)

    @property
    def transfer_count(self) -> int:
        return len(self.transferred)

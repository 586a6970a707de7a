"""Inbound gateway event ledger model."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class WebhookEventStatus(str, Enum):
    """Processing status of a received gateway event."""

    RECEIVED = "RECEIVED"
    PROCESSED = "PROCESSED"
    IGNORED = "IGNORED"
    FAILED = "FAILED"

    @property
    def is_settled(self) -> bool:
        """Settled events are not processed again on redelivery."""
        return self in (WebhookEventStatus.PROCESSED, WebhookEventStatus.IGNORED)


class WebhookEvent(BaseModel):
    """One delivery of a gateway event, keyed by the gateway's event id."""

    id: UUID = Field(default_factory=uuid4)
    provider: str = "STRIPE"
    external_id: str
    event_type: str
    status: WebhookEventStatus = WebhookEventStatus.RECEIVED
    payload: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    received_at: datetime = Field(default_factory=datetime.utcnow)
    processed_at: Optional[datetime] = None

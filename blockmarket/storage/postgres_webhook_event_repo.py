"""PostgreSQL repository for received gateway events."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from blockmarket.logging import get_logger
from blockmarket.models.webhook_event import WebhookEvent, WebhookEventStatus
from blockmarket.storage.db_models import WebhookEventTable

logger = get_logger(__name__)


class PostgresWebhookEventRepository:
    """Event ledger keyed by the gateway's event id."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_by_external_id(self, external_id: str) -> Optional[WebhookEvent]:
        stmt = select(WebhookEventTable).where(WebhookEventTable.external_id == external_id)
        result = await self.session.execute(stmt)
        db_event = result.scalar_one_or_none()
        return self._to_domain_model(db_event) if db_event else None

    async def register(
        self,
        external_id: str,
        event_type: str,
        payload: dict[str, Any],
        provider: str = "STRIPE",
    ) -> tuple[WebhookEvent, bool]:
        """
        Record an event delivery.

        Returns:
            (event, created) where ``created`` is False for a redelivery
        """
        existing = await self.get_by_external_id(external_id)
        if existing is not None:
            return existing, False

        db_event = WebhookEventTable(
            provider=provider,
            external_id=external_id,
            event_type=event_type,
            status=WebhookEventStatus.RECEIVED,
            payload=payload,
            received_at=datetime.utcnow(),
        )
        try:
            async with self.session.begin_nested():
                self.session.add(db_event)
        except IntegrityError:
            # A concurrent delivery inserted the same event id first
            logger.info("webhook_event_insert_raced", external_id=external_id)
            existing = await self.get_by_external_id(external_id)
            if existing is None:
                raise
            return existing, False

        return self._to_domain_model(db_event), True

    async def mark(
        self,
        external_id: str,
        status: WebhookEventStatus,
        error: Optional[str] = None,
    ) -> None:
        """Set the processing outcome of an event."""
        stmt = (
            update(WebhookEventTable)
            .where(WebhookEventTable.external_id == external_id)
            .values(status=status, error=error, processed_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

        logger.info(
            "webhook_event_marked",
            external_id=external_id,
            status=status.value,
        )

    def _to_domain_model(self, db_event: WebhookEventTable) -> WebhookEvent:
        """Convert database model to domain model."""
        return WebhookEvent(
            id=db_event.id,
            provider=db_event.provider,
            external_id=db_event.external_id,
            event_type=db_event.event_type,
            status=db_event.status,
            payload=db_event.payload or {},
            error=db_event.error,
            received_at=db_event.received_at,
            processed_at=db_event.processed_at,
        )
